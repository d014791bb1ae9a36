"""Required-collateral quotes, delegated to the origin contract."""
from __future__ import annotations

import logging

from ..contracts import OriginLendingContract

logger = logging.getLogger(__name__)


class CollateralCalculator:
    """Quote the collateral needed for a loan amount.

    Ratio and price logic live in the contract. Amounts in and out are in the
    smallest unit; the result is in the origin chain's native unit already.
    """

    def __init__(self, origin: OriginLendingContract) -> None:
        self._origin = origin

    async def required_collateral(self, loan_amount: int) -> int:
        if loan_amount <= 0:
            return 0
        required = await self._origin.calculate_required_collateral(loan_amount)
        logger.debug("Required collateral for %d: %d", loan_amount, required)
        return required
