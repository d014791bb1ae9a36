"""Cross-chain collateralised loan coordinator."""

__version__ = "0.1.0"
