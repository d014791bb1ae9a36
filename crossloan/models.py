"""Data models: all frozen (immutable)."""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum


class ChainRole(str, Enum):
    ORIGIN = "origin"
    DESTINATION = "destination"


class TxType(str, Enum):
    DEPOSIT_COLLATERAL = "deposit-collateral"
    BORROW = "borrow"
    REPAY = "repay"
    RELEASE_COLLATERAL = "release-collateral"
    LIQUIDATE = "liquidate"


class Token(str, Enum):
    ETH = "ETH"
    MATIC = "MATIC"


class TxStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"


def coerce_enum(enum_cls: type[Enum], value: str) -> Enum | str:
    """Return the enum member for ``value``, or ``value`` itself if unknown.

    Ledger files written by newer versions may carry values this version does
    not know; those are kept verbatim so readers never crash on them.
    """
    try:
        return enum_cls(value)
    except ValueError:
        return value


@dataclass(frozen=True)
class OriginLoanDetails:
    """Origin ``getLoanDetails`` result, decoded by field name."""

    collateral_amount: int
    loan_amount: int
    destination_chain_id: int
    interest_rate_bps: int
    credit_score: int
    duration_days: int
    active: bool


@dataclass(frozen=True)
class DestinationLoanDetails:
    """Destination ``getLoanDetails`` result, decoded by field name."""

    amount: int
    repaid_amount: int
    interest_rate_bps: int
    due_timestamp: int
    credit_score: int
    active: bool
    funded: bool


@dataclass(frozen=True)
class LoanRecord:
    """Normalised origin-chain loan record for one borrower.

    Replaced wholesale on every synchronisation pull.
    """

    collateral_amount: int
    loan_amount: int
    destination_chain_id: int
    interest_rate_bps: int
    credit_score: int
    duration_days: int
    active: bool


@dataclass(frozen=True)
class CollateralStatus:
    is_fully_collateralized: bool
    required_collateral: int


@dataclass(frozen=True)
class LoanSnapshot:
    """Result of one synchronisation pull.

    ``requested_amount`` is the loan amount exactly as read from the chain,
    before rule-based normalisation of ``record.loan_amount``.
    """

    borrower: str
    chain_id: int
    record: LoanRecord
    status: CollateralStatus
    requested_amount: int


@dataclass(frozen=True)
class RiskPosition:
    """An active, funded destination loan as seen by the liquidation scan.

    ``collateral_amount`` comes from the origin chain and is ``None`` when it
    could not be read.
    """

    borrower: str
    collateral_amount: int | None
    repaid_amount: int
    total_due: int
    due_timestamp: int
    overdue: bool
    loan_amount: int = 0


@dataclass(frozen=True)
class LoanRequestedEvent:
    borrower: str
    amount: int
    interest_rate: int
    block_number: int = 0


@dataclass(frozen=True)
class PriceSnapshot:
    """Last-known oracle prices (USD) with error flag."""

    chain_id: int
    matic_usd: Decimal
    eth_usd: Decimal
    fetched_at: float
    error: str | None = None


@dataclass(frozen=True)
class RepaymentView:
    borrower: str
    amount: int
    repaid_amount: int
    total_due: int
    interest_rate_pct: Decimal
    due_timestamp: int
    progress_pct: int
    overdue: bool

    @property
    def status(self) -> str:
        return "Overdue" if self.overdue else "Active"


@dataclass(frozen=True)
class LedgerEntry:
    """One locally recorded, user-initiated cross-chain action."""

    chain: ChainRole | str
    type: TxType | str
    amount: Decimal
    token: Token | str
    status: TxStatus | str
    tx_hash: str
    timestamp: float = 0.0
    id: str = ""

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "chain": _raw(self.chain),
            "type": _raw(self.type),
            "amount": str(self.amount),
            "token": _raw(self.token),
            "status": _raw(self.status),
            "txHash": self.tx_hash,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, object]) -> LedgerEntry:
        return cls(
            id=str(raw["id"]),
            chain=coerce_enum(ChainRole, str(raw.get("chain", ""))),
            type=coerce_enum(TxType, str(raw.get("type", ""))),
            amount=Decimal(str(raw.get("amount", "0"))),
            token=coerce_enum(Token, str(raw.get("token", ""))),
            status=coerce_enum(TxStatus, str(raw.get("status", "pending"))),
            tx_hash=str(raw.get("txHash", "")),
            timestamp=float(raw.get("timestamp", 0)),  # type: ignore[arg-type]
        )


def _raw(value: Enum | str) -> str:
    return value.value if isinstance(value, Enum) else value
