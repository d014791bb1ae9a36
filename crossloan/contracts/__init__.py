"""Typed handles to the deployed lending and token contracts."""
from .destination import DestinationLendingContract
from .origin import OriginLendingContract
from .token import TokenContract

__all__ = ["DestinationLendingContract", "OriginLendingContract", "TokenContract"]
