"""Shared plumbing for contract handles."""
from __future__ import annotations

from typing import Any

from eth_utils import to_checksum_address

from ..chains.evm.abi import ContractCall, ContractMethod
from ..interfaces.chain import ChainClient


class ContractHandle:
    """A contract address bound to the connection of the chain it lives on."""

    def __init__(self, client: ChainClient, address: str) -> None:
        self.client = client
        self.address = to_checksum_address(address)

    async def _read(self, method: ContractMethod, *args: Any) -> dict[str, Any]:
        data = await self.client.call(self.address, method.encode(*args))
        return method.decode(data)

    def _write(
        self, method: ContractMethod, *args: Any, value: int = 0
    ) -> ContractCall:
        if value and not method.payable:
            raise ValueError(f"{method.signature} is not payable")
        return ContractCall(
            to=self.address,
            data=method.encode(*args),
            value=value,
            description=method.signature,
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.address})"
