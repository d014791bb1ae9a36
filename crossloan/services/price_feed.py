"""Oracle price polling against the origin lending contract."""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import replace
from decimal import Decimal

from ..errors import CrossLoanError
from ..models import PriceSnapshot
from ..scheduler import PeriodicTask, Scheduler
from ..session import Session, SessionManager

logger = logging.getLogger(__name__)


class PriceFeedPoller:
    """Keep the last-known MATIC/USD and ETH/USD prices.

    A poll that finishes after the session it started under was replaced is
    discarded. A failed poll keeps the last prices and sets ``error``.
    """

    def __init__(
        self,
        sessions: SessionManager,
        interval: float = 30.0,
        scale: int = 10**8,
    ) -> None:
        self._sessions = sessions
        self.interval = interval
        self._scale = Decimal(scale)
        self._latest: PriceSnapshot | None = None
        self._task: PeriodicTask | None = None

    @property
    def latest(self) -> PriceSnapshot | None:
        return self._latest

    def is_stale(self, now: float | None = None) -> bool:
        """True when there is no price, it errored, or it is older than two intervals."""
        if self._latest is None or self._latest.error:
            return True
        if self._latest.chain_id != self._sessions.current.chain_id:
            return True
        now = time.time() if now is None else now
        return now - self._latest.fetched_at > 2 * self.interval

    async def poll_once(self, session: Session | None = None) -> PriceSnapshot | None:
        session = session or self._sessions.current
        bindings = session.bindings
        if bindings is None or bindings.origin is None:
            logger.debug("No origin binding on chain %s; skipping price poll", session.chain_id)
            return self._latest

        origin = bindings.origin
        try:
            matic_raw, eth_raw = await asyncio.gather(
                origin.get_matic_price(), origin.get_eth_price()
            )
            snapshot = PriceSnapshot(
                chain_id=session.chain_id,
                matic_usd=Decimal(matic_raw) / self._scale,
                eth_usd=Decimal(eth_raw) / self._scale,
                fetched_at=time.time(),
            )
        except CrossLoanError as e:
            logger.error("Error fetching prices: %s", e)
            if self._latest is not None and self._latest.chain_id == session.chain_id:
                snapshot = replace(self._latest, error=str(e))
            else:
                snapshot = PriceSnapshot(
                    chain_id=session.chain_id,
                    matic_usd=Decimal(0),
                    eth_usd=Decimal(0),
                    fetched_at=time.time(),
                    error=str(e),
                )

        if not self._sessions.is_current(session):
            logger.debug("Discarding price poll from superseded session %d", session.generation)
            return self._latest

        self._latest = snapshot
        if snapshot.error is None:
            logger.info(
                "Prices: MATIC $%.4f  ETH $%.2f", snapshot.matic_usd, snapshot.eth_usd
            )
        return snapshot

    def start(self, scheduler: Scheduler) -> PeriodicTask:
        if self._task is None or not self._task.running:
            self._task = scheduler.every(self.interval, self.poll_once, name="price-feed")
        return self._task

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None
