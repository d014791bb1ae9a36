"""EVM JSON-RPC client with fallback support."""
import asyncio
import logging
import ssl
from typing import Any

import aiohttp
import certifi

from ...config import ChainConfig
from ...errors import RpcError

logger = logging.getLogger(__name__)


def _hex(value: int) -> str:
    return hex(value)


class EvmClient:
    """EVM JSON-RPC client with automatic endpoint fallback.

    One instance per chain. It is shared read-only by every component; writes
    go through ``send_raw_transaction`` only, nonces belong to the wallet.
    """

    def __init__(self, config: ChainConfig) -> None:
        self.name = config.name
        self.expected_chain_id = config.chain_id
        self.endpoints = list(config.rpc_endpoints)
        self.timeout = config.rpc_timeout
        self.current_rpc_index = 0

    async def rpc_call(self, method: str, params: list[Any]) -> Any:
        """Make RPC call with fallback to alternative endpoints."""
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}

        ssl_context = ssl.create_default_context(cafile=certifi.where())

        last_error: Exception | None = None
        for attempt in range(len(self.endpoints)):
            rpc_index = (self.current_rpc_index + attempt) % len(self.endpoints)
            rpc_url = self.endpoints[rpc_index]

            try:
                connector = aiohttp.TCPConnector(ssl=ssl_context)
                async with aiohttp.ClientSession(connector=connector) as session:
                    async with session.post(
                        rpc_url,
                        json=payload,
                        timeout=aiohttp.ClientTimeout(total=self.timeout),
                    ) as response:
                        result = await response.json()
                        if "error" in result:
                            error = result["error"] or {}
                            raise RpcError(
                                f"RPC Error: {error.get('message', error)}",
                                code=error.get("code"),
                            )

                        if rpc_index != self.current_rpc_index:
                            logger.info("Switched to RPC endpoint: %s", rpc_url)
                            self.current_rpc_index = rpc_index

                        return result.get("result")
            except Exception as e:
                last_error = e
                logger.warning("RPC endpoint %s failed (%s): %s", rpc_url, method, e)
                if attempt < len(self.endpoints) - 1:
                    logger.info("Trying next endpoint...")
                continue

        code = last_error.code if isinstance(last_error, RpcError) else None
        raise RpcError(f"All RPC endpoints failed. Last error: {last_error}", code=code)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def chain_id(self) -> int:
        return int(await self.rpc_call("eth_chainId", []), 16)

    async def block_number(self) -> int:
        return int(await self.rpc_call("eth_blockNumber", []), 16)

    async def get_balance(self, address: str, block: str = "latest") -> int:
        """Native balance in the chain's smallest unit."""
        return int(await self.rpc_call("eth_getBalance", [address, block]), 16)

    async def call(self, to: str, data: str, block: str = "latest") -> str:
        """``eth_call`` against a contract; returns the raw hex result."""
        result = await self.rpc_call("eth_call", [{"to": to, "data": data}, block])
        return result or "0x"

    async def get_logs(
        self,
        address: str,
        topics: list[str | None],
        from_block: int = 0,
        to_block: int | None = None,
    ) -> list[dict[str, Any]]:
        """Raw ``eth_getLogs`` query; ``to_block=None`` means ``latest``."""
        params = {
            "address": address,
            "topics": topics,
            "fromBlock": _hex(from_block),
            "toBlock": "latest" if to_block is None else _hex(to_block),
        }
        return await self.rpc_call("eth_getLogs", [params]) or []

    # ------------------------------------------------------------------
    # Transaction plumbing
    # ------------------------------------------------------------------

    async def get_transaction_count(self, address: str, block: str = "pending") -> int:
        return int(await self.rpc_call("eth_getTransactionCount", [address, block]), 16)

    async def gas_price(self) -> int:
        return int(await self.rpc_call("eth_gasPrice", []), 16)

    async def estimate_gas(self, tx: dict[str, Any]) -> int:
        return int(await self.rpc_call("eth_estimateGas", [tx]), 16)

    async def send_raw_transaction(self, raw_tx: str) -> str:
        return await self.rpc_call("eth_sendRawTransaction", [raw_tx])

    async def get_transaction_receipt(self, tx_hash: str) -> dict[str, Any] | None:
        return await self.rpc_call("eth_getTransactionReceipt", [tx_hash])

    async def wait_for_receipt(
        self, tx_hash: str, timeout: float, poll_interval: float = 2.0
    ) -> dict[str, Any] | None:
        """Poll for a receipt; ``None`` if none was observed before ``timeout``."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            try:
                receipt = await self.get_transaction_receipt(tx_hash)
            except RpcError as e:
                logger.warning("Receipt lookup for %s failed: %s", tx_hash, e)
                receipt = None
            if receipt:
                return receipt
            if loop.time() + poll_interval > deadline:
                return None
            await asyncio.sleep(poll_interval)
