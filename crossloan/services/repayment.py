"""Destination-chain loan view and repayment."""
from __future__ import annotations

import logging
import time
from decimal import Decimal

from eth_utils import to_wei

from ..errors import CrossLoanError, WorkflowStateError
from ..models import ChainRole, LedgerEntry, RepaymentView, Token, TxType
from ..session import Session
from .liquidation import is_overdue
from .transactions import TransactionSubmitter

logger = logging.getLogger(__name__)


class RepaymentService:
    def __init__(self, submitter: TransactionSubmitter) -> None:
        self._submitter = submitter

    async def load(self, session: Session, now_ms: int | None = None) -> RepaymentView | None:
        """The account's active, funded destination loan, or ``None``."""
        bindings = session.bindings
        if bindings is None or bindings.destination is None or not session.account:
            return None

        destination = bindings.destination
        try:
            details = await destination.get_loan_details(session.account)
            if not (details.active and details.funded):
                logger.info("No active loan for %s", session.account)
                return None
            total_due = await destination.calculate_total_due(session.account)
        except CrossLoanError as e:
            logger.error("Error loading loan details: %s", e)
            return None

        now_ms = int(time.time() * 1000) if now_ms is None else now_ms
        progress = 0 if details.amount == 0 else details.repaid_amount * 100 // details.amount
        return RepaymentView(
            borrower=session.account,
            amount=details.amount,
            repaid_amount=details.repaid_amount,
            total_due=total_due,
            interest_rate_pct=Decimal(details.interest_rate_bps) / 100,
            due_timestamp=details.due_timestamp,
            progress_pct=min(progress, 100),
            overdue=is_overdue(details.due_timestamp, now_ms),
        )

    async def repay(self, session: Session, amount: Decimal) -> LedgerEntry:
        if amount <= 0:
            raise ValueError("Repayment amount must be positive")
        bindings = session.bindings
        if bindings is None or bindings.destination is None:
            raise WorkflowStateError("Repayment requires the destination chain")

        return await self._submitter.submit(
            session,
            bindings.destination.repay_loan(to_wei(amount, "ether")),
            chain=ChainRole.DESTINATION,
            tx_type=TxType.REPAY,
            amount=amount,
            token=Token.MATIC,
        )
