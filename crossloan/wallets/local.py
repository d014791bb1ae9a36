"""Local private-key wallet: signs with eth-account, broadcasts over RPC."""
from __future__ import annotations

import logging
from typing import Any

from eth_account import Account
from eth_utils import to_hex

from ..chains.evm.abi import ContractCall
from ..errors import RpcError, TransactionPendingUnconfirmed, TransactionRejected
from ..interfaces.chain import ChainClient

logger = logging.getLogger(__name__)


class LocalWallet:
    """Sign transactions with a locally held key."""

    def __init__(self, private_key: str, gas_multiplier: float = 1.2) -> None:
        if not private_key:
            raise ValueError("A private key is required to sign transactions")
        self._account = Account.from_key(private_key)
        self._gas_multiplier = gas_multiplier

    @property
    def address(self) -> str:
        return self._account.address

    async def _build(self, client: ChainClient, call: ContractCall) -> dict[str, Any]:
        tx: dict[str, Any] = {
            "from": self.address,
            "to": call.to,
            "value": call.value,
            "data": call.data,
        }
        estimate = await client.estimate_gas(
            {**tx, "value": hex(call.value)}
        )
        tx.update(
            gas=int(estimate * self._gas_multiplier),
            gasPrice=await client.gas_price(),
            nonce=await client.get_transaction_count(self.address, "pending"),
            chainId=client.expected_chain_id,
        )
        del tx["from"]
        return tx

    async def send(self, client: ChainClient, call: ContractCall) -> str:
        """Sign and broadcast ``call``; return the transaction hash."""
        try:
            tx = await self._build(client, call)
        except RpcError as e:
            # estimateGas fails when the call would revert
            raise TransactionRejected(f"{call.description} rejected: {e}") from e

        signed = self._account.sign_transaction(tx)
        try:
            tx_hash = await client.send_raw_transaction(to_hex(signed.raw_transaction))
        except RpcError as e:
            if e.code is None:
                # no node answered; the transaction may still have propagated
                logger.warning("Broadcast of %s unacknowledged: %s", call.description, e)
                raise TransactionPendingUnconfirmed(to_hex(signed.hash)) from e
            raise TransactionRejected(f"{call.description} rejected by node: {e}") from e

        logger.info(
            "Broadcast %s on %s (nonce %d): %s",
            call.description, client.name, tx["nonce"], tx_hash,
        )
        return tx_hash
