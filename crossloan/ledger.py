"""Local transaction ledger: the only durable record of cross-chain actions.

Entries live in one JSON document under a single namespaced key. Other keys
in the same document are preserved. Entries are never removed; the only
mutation is a ``pending`` → ``completed`` status flip matched by tx hash.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
import time
import uuid
from collections.abc import Callable
from dataclasses import replace
from decimal import InvalidOperation
from pathlib import Path
from typing import Any

from .models import LedgerEntry, TxStatus
from .scheduler import PeriodicTask, Scheduler

logger = logging.getLogger(__name__)

LEDGER_KEY = "cross_chain_transactions"

LedgerListener = Callable[[list[LedgerEntry]], None]


class TransactionLedger:
    """Append-only ledger persisted to a JSON file."""

    def __init__(self, path: str | Path, key: str = LEDGER_KEY) -> None:
        self.path = Path(path).expanduser()
        self.key = key
        self._listeners: list[LedgerListener] = []
        self._seen: tuple[int, int] | None = self._signature()

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    def _signature(self) -> tuple[int, int] | None:
        try:
            stat = self.path.stat()
        except FileNotFoundError:
            return None
        return stat.st_mtime_ns, stat.st_size

    def _read_document(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        with open(self.path) as f:
            document = json.load(f)
        if not isinstance(document, dict):
            raise ValueError(f"Ledger file {self.path} is not a JSON object")
        return document

    def _read_raw(self) -> list[dict[str, Any]]:
        raw = self._read_document().get(self.key, [])
        if not isinstance(raw, list):
            raise ValueError(f"Ledger key '{self.key}' in {self.path} is not a list")
        return raw

    def _write_raw(self, raw_entries: list[dict[str, Any]]) -> None:
        document = self._read_document()
        document[self.key] = raw_entries

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".ledger-")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(document, f, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
        self._seen = self._signature()

    @staticmethod
    def _parse(raw_entries: list[dict[str, Any]]) -> list[LedgerEntry]:
        entries: list[LedgerEntry] = []
        for raw in raw_entries:
            try:
                entries.append(LedgerEntry.from_dict(raw))
            except (KeyError, TypeError, ValueError, InvalidOperation) as e:
                logger.warning("Skipping malformed ledger entry %r: %s", raw, e)
        return entries

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def list(self) -> list[LedgerEntry]:
        """All entries, most recent first."""
        return list(reversed(self._parse(self._read_raw())))

    def append(self, entry: LedgerEntry) -> LedgerEntry:
        """Persist ``entry``, assigning an id and timestamp when missing."""
        raw_entries = self._read_raw()

        if entry.status != TxStatus.PENDING:
            for existing in self._parse(raw_entries):
                if existing.tx_hash == entry.tx_hash and existing.status != TxStatus.PENDING:
                    raise ValueError(
                        f"A settled ledger entry for {entry.tx_hash} already exists"
                    )

        entry = replace(
            entry,
            id=entry.id or uuid.uuid4().hex,
            timestamp=entry.timestamp or time.time(),
        )
        raw = entry.to_dict()
        raw_entries.append(raw)
        self._write_raw(raw_entries)
        logger.info(
            "Ledger: %s %s %s %s (%s) %s",
            raw["chain"], raw["type"], raw["amount"],
            raw["token"], raw["status"], raw["txHash"],
        )
        self._notify()
        return entry

    def set_status(self, tx_hash: str, status: TxStatus) -> bool:
        """Flip the pending entry for ``tx_hash`` to ``completed``.

        Returns False when there is nothing to flip.
        """
        if status != TxStatus.COMPLETED:
            raise ValueError("Ledger entries may only transition pending -> completed")

        raw_entries = self._read_raw()
        entries = self._parse(raw_entries)
        if any(e.tx_hash == tx_hash and e.status == TxStatus.COMPLETED for e in entries):
            logger.debug("Ledger entry for %s already completed", tx_hash)
            return False

        for raw in reversed(raw_entries):
            if (
                isinstance(raw, dict)
                and raw.get("txHash") == tx_hash
                and raw.get("status") == TxStatus.PENDING.value
            ):
                raw["status"] = status.value
                self._write_raw(raw_entries)
                logger.info("Ledger: %s marked %s", tx_hash, status.value)
                self._notify()
                return True

        logger.debug("No pending ledger entry for %s", tx_hash)
        return False

    def find(self, tx_hash: str) -> LedgerEntry | None:
        for entry in self.list():
            if entry.tx_hash == tx_hash:
                return entry
        return None

    # ------------------------------------------------------------------
    # Change notification
    # ------------------------------------------------------------------

    def subscribe(self, listener: LedgerListener) -> Callable[[], None]:
        """Call ``listener`` with the full entry list whenever the ledger changes."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        if not self._listeners:
            return
        entries = self.list()
        for listener in list(self._listeners):
            try:
                listener(entries)
            except Exception as e:
                logger.error("Ledger listener failed: %s", e)

    def refresh(self) -> bool:
        """Notify listeners if another process changed the backing file."""
        signature = self._signature()
        if signature == self._seen:
            return False
        self._seen = signature
        logger.debug("Ledger file %s changed externally", self.path)
        self._notify()
        return True

    def watch(self, scheduler: Scheduler, interval: float = 2.0) -> PeriodicTask:
        async def poll() -> None:
            self.refresh()

        return scheduler.every(interval, poll, name="ledger-watch")
