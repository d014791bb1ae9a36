"""Destination-local ERC-20 token (the borrowed asset)."""
from __future__ import annotations

from eth_utils import to_checksum_address

from ..chains.evm.abi import TokenAbi
from .base import ContractHandle


class TokenContract(ContractHandle):
    async def balance_of(self, owner: str) -> int:
        fields = await self._read(TokenAbi.BALANCE_OF, to_checksum_address(owner))
        return fields["balance"]
