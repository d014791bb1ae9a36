"""Protocol interfaces for the loan coordinator."""
from .chain import ChainClient
from .wallet import Wallet

__all__ = ["ChainClient", "Wallet"]
