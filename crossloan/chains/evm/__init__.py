"""EVM JSON-RPC client and contract codec."""
from .client import EvmClient

__all__ = ["EvmClient"]
