"""Error taxonomy shared by chain access, services and the workflow."""
from __future__ import annotations

from typing import Any


class CrossLoanError(Exception):
    """Base class for all coordinator errors."""


class TransientReadFailure(CrossLoanError):
    """A chain read failed; retried only on the next natural trigger."""


class RpcError(TransientReadFailure):
    """JSON-RPC level failure (transport error or an ``error`` member)."""

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


class DecodeFailure(CrossLoanError):
    """Malformed call result or log entry."""


class TransactionRejected(CrossLoanError):
    """The user, the node or the contract rejected a submitted transaction."""

    def __init__(self, message: str, tx_hash: str | None = None) -> None:
        super().__init__(message)
        self.tx_hash = tx_hash


class TransactionPendingUnconfirmed(CrossLoanError):
    """Broadcast succeeded but no receipt was observed in time."""

    def __init__(self, tx_hash: str, entry: Any = None) -> None:
        super().__init__(f"Transaction {tx_hash} broadcast but not confirmed")
        self.tx_hash = tx_hash
        self.entry = entry


class WorkflowStateError(CrossLoanError):
    """A workflow step was invoked from a state that does not allow it."""
