"""Wallet protocol: signs and broadcasts transactions for one account."""
from typing import Protocol

from ..chains.evm.abi import ContractCall
from .chain import ChainClient


class Wallet(Protocol):
    """Abstract signer. Nonce management is the wallet's own concern."""

    @property
    def address(self) -> str: ...

    async def send(self, client: ChainClient, call: ContractCall) -> str:
        """Sign and broadcast ``call``; return the transaction hash.

        Raises ``TransactionRejected`` when the user or the node refuses it.
        """
        ...
