"""Origin-chain lending contract (holds collateral, quotes prices)."""
from __future__ import annotations

from eth_utils import to_checksum_address

from ..chains.evm.abi import ContractCall, OriginAbi
from ..models import OriginLoanDetails
from .base import ContractHandle


class OriginLendingContract(ContractHandle):
    async def get_loan_details(self, borrower: str) -> OriginLoanDetails:
        fields = await self._read(
            OriginAbi.GET_LOAN_DETAILS, to_checksum_address(borrower)
        )
        return OriginLoanDetails(**fields)

    async def calculate_required_collateral(self, loan_amount: int) -> int:
        fields = await self._read(OriginAbi.CALCULATE_REQUIRED_COLLATERAL, loan_amount)
        return fields["amount"]

    async def get_matic_price(self) -> int:
        """MATIC/USD scaled by 1e8."""
        return (await self._read(OriginAbi.GET_MATIC_PRICE))["price"]

    async def get_eth_price(self) -> int:
        """ETH/USD scaled by 1e8."""
        return (await self._read(OriginAbi.GET_ETH_PRICE))["price"]

    def request_loan(
        self, amount: int, destination_chain_id: int, duration_days: int
    ) -> ContractCall:
        return self._write(
            OriginAbi.REQUEST_LOAN, amount, destination_chain_id, duration_days
        )

    def deposit_collateral(self, value: int) -> ContractCall:
        return self._write(OriginAbi.DEPOSIT_COLLATERAL, value=value)
