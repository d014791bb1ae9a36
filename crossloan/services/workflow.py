"""The request-then-collateralise saga on the origin chain."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from eth_utils import from_wei, to_wei

from ..errors import TransactionPendingUnconfirmed, TransactionRejected, WorkflowStateError
from ..models import ChainRole, LedgerEntry, LoanSnapshot, Token, TxType
from ..session import Session
from .collateral import CollateralCalculator
from .loan_state import LoanStateSynchronizer
from .transactions import TransactionSubmitter

logger = logging.getLogger(__name__)


class WorkflowState(str, Enum):
    IDLE = "idle"
    REQUEST_SUBMITTED = "request-submitted"
    AWAITING_COLLATERAL = "awaiting-collateral"
    COLLATERALIZED = "collateralized"


@dataclass(frozen=True)
class LoanQuote:
    amount: Decimal
    amount_wei: int
    duration_days: int
    required_collateral: int


class LoanRequestWorkflow:
    """Idle → RequestSubmitted → AwaitingCollateral → Collateralized.

    A failed step puts the workflow back where it was. Nothing is resent
    automatically; every submission is an explicit call.
    """

    def __init__(
        self,
        synchronizer: LoanStateSynchronizer,
        submitter: TransactionSubmitter,
        destination_chain_id: int,
    ) -> None:
        self._sync = synchronizer
        self._submitter = submitter
        self._destination_chain_id = destination_chain_id
        self.state = WorkflowState.IDLE
        self.required_collateral = 0
        self.quote: LoanQuote | None = None

    @staticmethod
    def _origin(session: Session):
        bindings = session.bindings
        if bindings is None or bindings.origin is None:
            raise WorkflowStateError("Loan requests require the origin chain")
        return bindings.origin

    async def _requirement_for(self, session: Session, snapshot: LoanSnapshot) -> int:
        if snapshot.status.required_collateral:
            return snapshot.status.required_collateral
        calculator = CollateralCalculator(self._origin(session))
        return await calculator.required_collateral(snapshot.requested_amount)

    async def refresh(self, session: Session) -> WorkflowState:
        """Re-derive the state from a fresh loan-state pull."""
        snapshot = await self._sync.sync(session)
        if snapshot is None:
            return self.state

        if snapshot.record.active:
            self.state = WorkflowState.COLLATERALIZED
            self.required_collateral = 0
        elif snapshot.requested_amount > 0:
            self.state = WorkflowState.AWAITING_COLLATERAL
            self.required_collateral = await self._requirement_for(session, snapshot)
        else:
            self.state = WorkflowState.IDLE
            self.required_collateral = 0
        return self.state

    async def prepare(self, session: Session, amount: Decimal, duration_days: int) -> LoanQuote:
        """Quote the collateral for a prospective request. Nothing is sent."""
        if amount <= 0:
            raise ValueError("Loan amount must be positive")
        if duration_days <= 0:
            raise ValueError("Loan duration must be positive")
        amount_wei = to_wei(amount, "ether")
        required = await CollateralCalculator(self._origin(session)).required_collateral(
            amount_wei
        )
        self.quote = LoanQuote(
            amount=amount,
            amount_wei=amount_wei,
            duration_days=duration_days,
            required_collateral=required,
        )
        return self.quote

    def cancel(self) -> None:
        """Abandon a prepared but unsubmitted request."""
        self.quote = None

    async def request_loan(
        self, session: Session, amount: Decimal, duration_days: int
    ) -> LedgerEntry:
        if self.state != WorkflowState.IDLE:
            raise WorkflowStateError(f"Cannot request a loan while {self.state.value}")

        quote = self.quote
        if quote is None or quote.amount != amount or quote.duration_days != duration_days:
            quote = await self.prepare(session, amount, duration_days)
        origin = self._origin(session)

        self.state = WorkflowState.REQUEST_SUBMITTED
        try:
            entry = await self._submitter.submit(
                session,
                origin.request_loan(quote.amount_wei, self._destination_chain_id, duration_days),
                chain=ChainRole.ORIGIN,
                tx_type=TxType.BORROW,
                amount=amount,
                token=Token.MATIC,
            )
        except (
            TransactionRejected,
            TransactionPendingUnconfirmed,
            WorkflowStateError,
            asyncio.CancelledError,
        ):
            self.state = WorkflowState.IDLE
            raise

        self.quote = None
        self.state = WorkflowState.AWAITING_COLLATERAL
        self.required_collateral = quote.required_collateral
        snapshot = await self._sync.sync(session)
        if snapshot is not None and snapshot.status.required_collateral:
            self.required_collateral = snapshot.status.required_collateral
        logger.info(
            "Loan of %s requested; %s ETH collateral required",
            amount, from_wei(self.required_collateral, "ether"),
        )
        return entry

    async def deposit_collateral(self, session: Session) -> LedgerEntry:
        if self.state != WorkflowState.AWAITING_COLLATERAL:
            raise WorkflowStateError(f"Cannot deposit collateral while {self.state.value}")
        if self.required_collateral <= 0:
            raise WorkflowStateError("No collateral requirement is known")

        required = self.required_collateral
        origin = self._origin(session)
        entry = await self._submitter.submit(
            session,
            origin.deposit_collateral(required),
            chain=ChainRole.ORIGIN,
            tx_type=TxType.DEPOSIT_COLLATERAL,
            amount=Decimal(from_wei(required, "ether")),
            token=Token.ETH,
        )

        self.state = WorkflowState.COLLATERALIZED
        self.required_collateral = 0
        await self._sync.sync(session)
        return entry
