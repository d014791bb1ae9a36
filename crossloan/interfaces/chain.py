"""Chain client protocol: EVM JSON-RPC abstraction."""
from typing import Any, Protocol


class ChainClient(Protocol):
    """Abstract interface for one RPC-capable connection to one ledger."""

    name: str
    expected_chain_id: int

    async def chain_id(self) -> int: ...

    async def block_number(self) -> int: ...

    async def get_balance(self, address: str, block: str = "latest") -> int: ...

    async def call(self, to: str, data: str, block: str = "latest") -> str: ...

    async def get_logs(
        self,
        address: str,
        topics: list[str | None],
        from_block: int = 0,
        to_block: int | None = None,
    ) -> list[dict[str, Any]]: ...

    async def get_transaction_count(self, address: str, block: str = "pending") -> int: ...

    async def gas_price(self) -> int: ...

    async def estimate_gas(self, tx: dict[str, Any]) -> int: ...

    async def send_raw_transaction(self, raw_tx: str) -> str: ...

    async def get_transaction_receipt(self, tx_hash: str) -> dict[str, Any] | None: ...

    async def wait_for_receipt(
        self, tx_hash: str, timeout: float, poll_interval: float = 2.0
    ) -> dict[str, Any] | None: ...
