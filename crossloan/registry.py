"""Contract binding registry: which contract handles are valid on which chain."""
from __future__ import annotations

import logging
from dataclasses import dataclass

from .config import AppConfig
from .contracts import DestinationLendingContract, OriginLendingContract, TokenContract
from .errors import TransientReadFailure
from .interfaces.chain import ChainClient
from .models import ChainRole

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BindingSet:
    """Contract handles for one chain. Origin chains carry ``origin`` only."""

    chain_id: int
    role: ChainRole
    origin: OriginLendingContract | None = None
    destination: DestinationLendingContract | None = None
    token: TokenContract | None = None


class ContractBindingRegistry:
    """Resolve chain ids to binding sets.

    ``current`` is only ever replaced as a whole, so a half-rebound state is
    never visible.
    """

    def __init__(self, config: AppConfig, clients: dict[int, ChainClient]) -> None:
        self._config = config
        self._clients = dict(clients)
        self._current: BindingSet | None = None

    @property
    def current(self) -> BindingSet | None:
        return self._current

    def client_for(self, chain_id: int) -> ChainClient | None:
        return self._clients.get(chain_id)

    def bind(self, chain_id: int) -> BindingSet | None:
        """Build the binding set for ``chain_id``; ``None`` if unrecognised."""
        chain = self._config.chain_by_id(chain_id)
        client = self._clients.get(chain_id)
        if chain is None or client is None:
            logger.debug("No binding for chain id %s", chain_id)
            return None

        contracts = self._config.contracts
        if chain.role == ChainRole.DESTINATION:
            return BindingSet(
                chain_id=chain_id,
                role=chain.role,
                destination=DestinationLendingContract(client, contracts.destination),
                token=TokenContract(client, contracts.token),
            )
        return BindingSet(
            chain_id=chain_id,
            role=chain.role,
            origin=OriginLendingContract(client, contracts.origin),
        )

    async def bind_live(self, chain_id: int) -> BindingSet | None:
        """Bind only if the live connection really is on ``chain_id``."""
        client = self._clients.get(chain_id)
        if client is None:
            return None
        try:
            live_chain_id = await client.chain_id()
        except TransientReadFailure as e:
            logger.warning("Cannot verify chain id of %s: %s", client.name, e)
            return None
        if live_chain_id != chain_id:
            logger.error(
                "Connection %s reports chain id %s, expected %s; refusing to bind",
                client.name, live_chain_id, chain_id,
            )
            return None
        return self.bind(chain_id)

    async def rebind(self, chain_id: int, verify: bool = True) -> BindingSet | None:
        """Replace the current binding set in one step."""
        bindings = await self.bind_live(chain_id) if verify else self.bind(chain_id)
        self._current = bindings
        logger.info(
            "Bound chain %s: %s",
            chain_id,
            bindings.role.value if bindings else "no position on this chain",
        )
        return bindings
