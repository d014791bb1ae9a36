"""Submit a contract call, wait for its receipt and record it in the ledger."""
from __future__ import annotations

import asyncio
import logging
from decimal import Decimal
from typing import Any

from ..chains.evm.abi import ContractCall
from ..errors import TransactionPendingUnconfirmed, TransactionRejected, WorkflowStateError
from ..interfaces.chain import ChainClient
from ..interfaces.wallet import Wallet
from ..ledger import TransactionLedger
from ..models import ChainRole, LedgerEntry, Token, TxStatus, TxType
from ..session import Session

logger = logging.getLogger(__name__)


def receipt_succeeded(receipt: dict[str, Any]) -> bool:
    status = receipt.get("status")
    if status is None:
        return True
    if isinstance(status, str):
        return int(status, 16) == 1
    return int(status) == 1


class TransactionSubmitter:
    """The one path every user-initiated write goes through.

    * rejected (by user, node or contract): raises ``TransactionRejected``, no entry
    * broadcast without receipt in time: pending entry, raises
      ``TransactionPendingUnconfirmed``
    * receipt wait cancelled: pending entry, cancellation propagates
    * confirmed: completed entry, returned
    """

    def __init__(
        self,
        wallet: Wallet | None,
        ledger: TransactionLedger,
        receipt_timeout: float = 120.0,
        receipt_poll: float = 2.0,
    ) -> None:
        self._wallet = wallet
        self._ledger = ledger
        self._receipt_timeout = receipt_timeout
        self._receipt_poll = receipt_poll

    def _record(
        self,
        tx_hash: str,
        status: TxStatus,
        chain: ChainRole,
        tx_type: TxType,
        amount: Decimal,
        token: Token,
    ) -> LedgerEntry:
        return self._ledger.append(
            LedgerEntry(
                chain=chain,
                type=tx_type,
                amount=amount,
                token=token,
                status=status,
                tx_hash=tx_hash,
            )
        )

    async def submit(
        self,
        session: Session,
        call: ContractCall,
        chain: ChainRole,
        tx_type: TxType,
        amount: Decimal,
        token: Token,
    ) -> LedgerEntry:
        client = session.connection
        if client is None or session.bindings is None:
            raise WorkflowStateError("No contract binding for the current chain")
        if self._wallet is None:
            raise WorkflowStateError("No signing key configured")
        if session.account.lower() != self._wallet.address.lower():
            raise WorkflowStateError(
                f"Wallet {self._wallet.address} does not control {session.account}"
            )

        try:
            tx_hash = await self._wallet.send(client, call)
        except TransactionPendingUnconfirmed as e:
            entry = self._record(e.tx_hash, TxStatus.PENDING, chain, tx_type, amount, token)
            raise TransactionPendingUnconfirmed(e.tx_hash, entry) from e

        try:
            receipt = await client.wait_for_receipt(
                tx_hash, self._receipt_timeout, self._receipt_poll
            )
        except asyncio.CancelledError:
            logger.warning("Stopped waiting for %s; recorded as pending", tx_hash)
            self._record(tx_hash, TxStatus.PENDING, chain, tx_type, amount, token)
            raise
        if receipt is None:
            logger.warning("No receipt for %s within %.0fs", tx_hash, self._receipt_timeout)
            entry = self._record(tx_hash, TxStatus.PENDING, chain, tx_type, amount, token)
            raise TransactionPendingUnconfirmed(tx_hash, entry)

        if not receipt_succeeded(receipt):
            raise TransactionRejected(f"{call.description} reverted", tx_hash=tx_hash)

        return self._record(tx_hash, TxStatus.COMPLETED, chain, tx_type, amount, token)

    async def confirm(self, client: ChainClient, tx_hash: str) -> bool:
        """Flip a pending entry to completed once its receipt shows success."""
        receipt = await client.get_transaction_receipt(tx_hash)
        if not receipt:
            logger.info("Transaction %s still unconfirmed", tx_hash)
            return False
        if not receipt_succeeded(receipt):
            logger.warning("Transaction %s reverted; ledger entry left pending", tx_hash)
            return False
        return self._ledger.set_status(tx_hash, TxStatus.COMPLETED)
