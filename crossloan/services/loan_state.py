"""Origin-chain loan state synchronisation and collateral-status derivation."""
from __future__ import annotations

import logging

from ..errors import CrossLoanError
from ..models import CollateralStatus, LoanRecord, LoanSnapshot, OriginLoanDetails
from ..session import Session
from .collateral import CollateralCalculator

logger = logging.getLogger(__name__)


async def derive_snapshot(
    borrower: str,
    chain_id: int,
    details: OriginLoanDetails,
    calculator: CollateralCalculator,
) -> LoanSnapshot:
    """Apply the derivation rules, in order, to a freshly read record.

    1. (handled by the caller) no binding or no borrower: unavailable.
    2. inactive, no collateral: no loan; loan amount normalised to 0.
    3. inactive with collateral: requested but short; quote the requirement.
    4. active: fully collateralised, whatever the collateral amount.
    """
    record = LoanRecord(
        collateral_amount=details.collateral_amount,
        loan_amount=details.loan_amount,
        destination_chain_id=details.destination_chain_id,
        interest_rate_bps=details.interest_rate_bps,
        credit_score=details.credit_score,
        duration_days=details.duration_days,
        active=details.active,
    )

    if not details.active and details.collateral_amount == 0:
        status = CollateralStatus(is_fully_collateralized=False, required_collateral=0)
        record = LoanRecord(
            collateral_amount=0,
            loan_amount=0,
            destination_chain_id=details.destination_chain_id,
            interest_rate_bps=details.interest_rate_bps,
            credit_score=details.credit_score,
            duration_days=details.duration_days,
            active=False,
        )
    elif not details.active:
        required = await calculator.required_collateral(details.loan_amount)
        status = CollateralStatus(is_fully_collateralized=False, required_collateral=required)
    else:
        status = CollateralStatus(is_fully_collateralized=True, required_collateral=0)

    return LoanSnapshot(
        borrower=borrower,
        chain_id=chain_id,
        record=record,
        status=status,
        requested_amount=details.loan_amount,
    )


class LoanStateSynchronizer:
    """Pull the current account's origin loan record.

    Every pull replaces the held snapshot wholesale; when pulls for the same
    account and chain overlap, the one that completes last wins. A pull
    started before the account or chain changed is discarded.
    """

    def __init__(self) -> None:
        self._snapshot: LoanSnapshot | None = None
        self._requested: tuple[str, int] | None = None

    @property
    def snapshot(self) -> LoanSnapshot | None:
        return self._snapshot

    @property
    def record(self) -> LoanRecord | None:
        return self._snapshot.record if self._snapshot else None

    @property
    def status(self) -> CollateralStatus | None:
        return self._snapshot.status if self._snapshot else None

    async def sync(self, session: Session) -> LoanSnapshot | None:
        """Return a fresh snapshot, or ``None`` when unavailable. Never raises."""
        key = (session.account.lower(), session.chain_id)
        self._requested = key

        bindings = session.bindings
        if bindings is None or bindings.origin is None or not session.account:
            logger.debug("Loan state unavailable for chain %s", session.chain_id)
            self._snapshot = None
            return None

        origin = bindings.origin
        try:
            details = await origin.get_loan_details(session.account)
            snapshot = await derive_snapshot(
                session.account, session.chain_id, details, CollateralCalculator(origin)
            )
        except (CrossLoanError, ValueError) as e:
            logger.error("Error fetching loan details for %s: %s", session.account, e)
            return None

        if self._requested != key:
            logger.debug(
                "Discarding loan state for %s on chain %s; session moved on",
                session.account, session.chain_id,
            )
            return None

        self._snapshot = snapshot
        logger.info(
            "Loan %s: collateral=%d loan=%d active=%s fully_collateralized=%s required=%d",
            session.account,
            snapshot.record.collateral_amount,
            snapshot.record.loan_amount,
            snapshot.record.active,
            snapshot.status.is_fully_collateralized,
            snapshot.status.required_collateral,
        )
        return snapshot
