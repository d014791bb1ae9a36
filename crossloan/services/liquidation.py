"""Liquidation scanning by replaying ``LoanRequested`` logs, and the liquidate action."""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from decimal import Decimal

from eth_utils import from_wei, to_checksum_address

from ..chains.evm.abi import DestinationAbi
from ..contracts import DestinationLendingContract, OriginLendingContract
from ..errors import CrossLoanError, DecodeFailure, WorkflowStateError
from ..models import ChainRole, LedgerEntry, LoanRequestedEvent, RiskPosition, Token, TxType
from ..session import Session
from .transactions import TransactionSubmitter

logger = logging.getLogger(__name__)


def decode_loan_requested(logs: list[dict]) -> list[LoanRequestedEvent]:
    """Decode raw logs; entries that fail to decode are skipped."""
    events: list[LoanRequestedEvent] = []
    for log in logs:
        try:
            fields = DestinationAbi.LOAN_REQUESTED.decode(log)
            block = log.get("blockNumber") or "0x0"
            events.append(
                LoanRequestedEvent(
                    borrower=fields["borrower"],
                    amount=fields["amount"],
                    interest_rate=fields["interest_rate"],
                    block_number=int(block, 16) if isinstance(block, str) else int(block),
                )
            )
        except (DecodeFailure, ValueError) as e:
            logger.warning("Skipping undecodable LoanRequested log: %s", e)
    return events


def is_overdue(due_timestamp: int, now_ms: int) -> bool:
    """Strictly past due: a loan due exactly now is not yet overdue."""
    return now_ms > due_timestamp * 1000


@dataclass
class _LogCache:
    last_block: int = -1
    events: list[LoanRequestedEvent] = field(default_factory=list)


class LiquidationScanner:
    """Rebuild the set of at-risk destination loans from event history.

    There is no indexer, so every scan replays request events from
    ``from_block`` and joins each borrower to the current on-chain record.
    With ``cache_logs`` the decoded events are kept in memory and only new
    blocks are fetched; the risk set itself is still rebuilt every time.

    Borrowers with several request events are looked up once. The web client
    this replaces joined every event separately; the risk set is the same
    because each lookup reads the same current record.
    """

    def __init__(
        self,
        from_block: int = 0,
        max_block_range: int = 0,
        cache_logs: bool = False,
        origin: OriginLendingContract | None = None,
    ) -> None:
        self._from_block = from_block
        self._max_block_range = max_block_range
        self._cache_logs = cache_logs
        self._origin = origin
        self._caches: dict[tuple[int, str], _LogCache] = {}
        self._last: list[RiskPosition] = []

    @property
    def last_result(self) -> list[RiskPosition]:
        return list(self._last)

    # ------------------------------------------------------------------
    # Event history
    # ------------------------------------------------------------------

    async def _fetch_range(
        self, destination: DestinationLendingContract, start: int, end: int | None
    ) -> list[dict]:
        if not self._max_block_range or end is None:
            return await destination.loan_requested_logs(start, end)

        logs: list[dict] = []
        window_start = start
        while window_start <= end:
            window_end = min(window_start + self._max_block_range - 1, end)
            logs.extend(await destination.loan_requested_logs(window_start, window_end))
            window_start = window_end + 1
        return logs

    async def fetch_events(
        self, destination: DestinationLendingContract, chain_id: int
    ) -> list[LoanRequestedEvent]:
        """All request events from ``from_block`` to the latest block."""
        if not self._cache_logs and not self._max_block_range:
            return decode_loan_requested(
                await destination.loan_requested_logs(self._from_block, None)
            )

        latest = await destination.client.block_number()
        if not self._cache_logs:
            return decode_loan_requested(
                await self._fetch_range(destination, self._from_block, latest)
            )

        cache = self._caches.setdefault((chain_id, destination.address), _LogCache())
        start = max(self._from_block, cache.last_block + 1)
        if start <= latest:
            new_events = decode_loan_requested(
                await self._fetch_range(destination, start, latest)
            )
            cache.events.extend(new_events)
            cache.last_block = latest
            logger.debug(
                "Scanned blocks %d-%d: %d new request events", start, latest, len(new_events)
            )
        return list(cache.events)

    # ------------------------------------------------------------------
    # Risk set
    # ------------------------------------------------------------------

    async def _collateral_of(self, borrower: str) -> int | None:
        if self._origin is None:
            return None
        try:
            return (await self._origin.get_loan_details(borrower)).collateral_amount
        except CrossLoanError as e:
            logger.warning("Origin collateral lookup for %s failed: %s", borrower, e)
            return None

    async def _position_for(
        self, destination: DestinationLendingContract, borrower: str, now_ms: int
    ) -> RiskPosition | None:
        try:
            details = await destination.get_loan_details(borrower)
            if not (details.active and details.funded):
                return None
            total_due = await destination.calculate_total_due(borrower)
        except CrossLoanError as e:
            logger.error("Loan lookup for %s failed, excluding it: %s", borrower, e)
            return None

        return RiskPosition(
            borrower=borrower,
            collateral_amount=await self._collateral_of(borrower),
            repaid_amount=details.repaid_amount,
            total_due=total_due,
            due_timestamp=details.due_timestamp,
            overdue=is_overdue(details.due_timestamp, now_ms),
            loan_amount=details.amount,
        )

    async def positions(self, session: Session, now_ms: int | None = None) -> list[RiskPosition]:
        """Every active, funded loan with a request on record, sorted by borrower."""
        bindings = session.bindings
        if bindings is None or bindings.destination is None:
            logger.debug("No destination binding on chain %s; nothing to scan", session.chain_id)
            return []

        destination = bindings.destination
        now_ms = int(time.time() * 1000) if now_ms is None else now_ms

        try:
            events = await self.fetch_events(destination, session.chain_id)
        except CrossLoanError as e:
            logger.error("Error loading LoanRequested history: %s", e)
            return []

        # The current record supersedes every historical request amount, so a
        # borrower with several requests is looked up once.
        borrowers = sorted({to_checksum_address(e.borrower) for e in events}, key=str.lower)
        logger.info(
            "Replayed %d LoanRequested events for %d borrowers", len(events), len(borrowers)
        )

        results = await asyncio.gather(
            *(self._position_for(destination, b, now_ms) for b in borrowers)
        )
        return [p for p in results if p is not None]

    async def scan(self, session: Session, now_ms: int | None = None) -> list[RiskPosition]:
        """Overdue, active, funded loans. Never raises."""
        at_risk = [p for p in await self.positions(session, now_ms) if p.overdue]
        self._last = at_risk
        logger.info("Liquidation scan: %d overdue loans", len(at_risk))
        return at_risk


class Liquidator:
    """Send ``liquidateLoan`` for an overdue borrower."""

    def __init__(self, submitter: TransactionSubmitter) -> None:
        self._submitter = submitter

    async def liquidate(self, session: Session, borrower: str) -> LedgerEntry:
        bindings = session.bindings
        if bindings is None or bindings.destination is None:
            raise WorkflowStateError("Liquidation requires the destination chain")

        destination = bindings.destination
        try:
            total_due = await destination.calculate_total_due(borrower)
        except CrossLoanError as e:
            logger.warning("Total due for %s unavailable: %s", borrower, e)
            total_due = 0

        return await self._submitter.submit(
            session,
            destination.liquidate_loan(borrower),
            chain=ChainRole.DESTINATION,
            tx_type=TxType.LIQUIDATE,
            amount=Decimal(from_wei(total_due, "ether")),
            token=Token.MATIC,
        )
