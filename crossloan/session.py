"""Immutable session and the manager that rebuilds it on account/network change."""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from eth_utils import is_address, to_checksum_address

from .interfaces.chain import ChainClient
from .registry import BindingSet, ContractBindingRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Session:
    """Everything a component needs to talk to the currently selected chain."""

    chain_id: int = 0
    account: str = ""
    connection: ChainClient | None = None
    bindings: BindingSet | None = None
    generation: int = 0

    @property
    def available(self) -> bool:
        return self.bindings is not None and bool(self.account)


SessionListener = Callable[[Session], None]


class SessionManager:
    """Holds the current ``Session`` and notifies subscribers on replacement."""

    def __init__(self, registry: ContractBindingRegistry) -> None:
        self._registry = registry
        self._current = Session()
        self._listeners: list[SessionListener] = []

    @property
    def current(self) -> Session:
        return self._current

    def is_current(self, session: Session) -> bool:
        return session.generation == self._current.generation

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register ``listener``; the returned callable unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def switch(
        self,
        chain_id: int | None = None,
        account: str | None = None,
        verify: bool = True,
    ) -> Session:
        """Rebuild the session for a new chain and/or account."""
        chain_id = self._current.chain_id if chain_id is None else chain_id
        account = self._current.account if account is None else account
        if account and is_address(account):
            account = to_checksum_address(account)

        bindings = await self._registry.rebind(chain_id, verify=verify)
        session = Session(
            chain_id=chain_id,
            account=account,
            connection=self._registry.client_for(chain_id),
            bindings=bindings,
            generation=self._current.generation + 1,
        )
        self._current = session
        logger.debug("Session %d: chain %s account %s", session.generation, chain_id, account)

        for listener in list(self._listeners):
            try:
                listener(session)
            except Exception as e:
                logger.error("Session listener failed: %s", e)
        return session

    async def on_chain_changed(self, chain_id: int) -> Session:
        return await self.switch(chain_id=chain_id)

    async def on_accounts_changed(self, accounts: list[str]) -> Session:
        return await self.switch(account=accounts[0] if accounts else "")

    def close(self) -> None:
        self._listeners.clear()
        self._current = Session(generation=self._current.generation + 1)
