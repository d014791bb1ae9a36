"""Transaction signers."""
from .local import LocalWallet

__all__ = ["LocalWallet"]
