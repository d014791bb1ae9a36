"""Destination-chain lending contract (issues and settles the loan)."""
from __future__ import annotations

from typing import Any

from eth_utils import to_checksum_address

from ..chains.evm.abi import ContractCall, DestinationAbi
from ..models import DestinationLoanDetails
from .base import ContractHandle


class DestinationLendingContract(ContractHandle):
    async def get_loan_details(self, borrower: str) -> DestinationLoanDetails:
        fields = await self._read(
            DestinationAbi.GET_LOAN_DETAILS, to_checksum_address(borrower)
        )
        return DestinationLoanDetails(**fields)

    async def calculate_total_due(self, borrower: str) -> int:
        fields = await self._read(
            DestinationAbi.CALCULATE_TOTAL_DUE, to_checksum_address(borrower)
        )
        return fields["amount"]

    async def loan_requested_logs(
        self, from_block: int = 0, to_block: int | None = None
    ) -> list[dict[str, Any]]:
        """Raw ``LoanRequested`` log entries in ``[from_block, to_block]``."""
        return await self.client.get_logs(
            self.address,
            [DestinationAbi.LOAN_REQUESTED.topic],
            from_block=from_block,
            to_block=to_block,
        )

    def repay_loan(self, amount: int) -> ContractCall:
        return self._write(DestinationAbi.REPAY_LOAN, amount)

    def liquidate_loan(self, borrower: str) -> ContractCall:
        return self._write(DestinationAbi.LIQUIDATE_LOAN, to_checksum_address(borrower))
