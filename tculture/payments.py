"""
Payment rails: the `transfer(amount, to)` primitive used by settlement.

A rail either moves the funds or raises TransferFailed; settlement treats
a raised TransferFailed as a rollback of the whole purchase.

JournalPaymentRail records each payout as one JSON line in payments.jsonl
so that the CLI has a durable account of what owners were paid.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from .errors import TransferFailed
from .util import new_ulid

logger = logging.getLogger(__name__)


class PaymentRail(Protocol):
    def transfer(self, amount: int, to: str) -> str:
        """
        Forward `amount` to identity `to`.

        Returns a transfer id that identifies the payout on the rail.

        Raises:
            TransferFailed: funds were not moved
        """
        ...


class InMemoryPaymentRail:
    """
    Payment rail that credits recipients in memory.

    `fail_for` lists recipients whose transfers are refused, which lets
    callers exercise the rollback path.
    """

    def __init__(self, *, fail_for: set[str] | None = None):
        self._lock = threading.Lock()
        self.received: dict[str, int] = {}
        self.transfers: list[tuple[str, int]] = []
        self.fail_for: set[str] = set(fail_for or ())

    def transfer(self, amount: int, to: str) -> str:
        if to in self.fail_for:
            raise TransferFailed(f"transfer of {amount} to {to} refused")
        with self._lock:
            self.received[to] = self.received.get(to, 0) + amount
            self.transfers.append((to, amount))
        return new_ulid()

    def total_received(self, identity: str) -> int:
        with self._lock:
            return self.received.get(identity, 0)


@dataclass
class PaymentEntry:
    """A single payout journal entry."""
    transfer_id: str
    timestamp: str
    to: str
    amount: int

    def to_dict(self) -> dict:
        return {
            "transfer_id": self.transfer_id,
            "timestamp": self.timestamp,
            "to": self.to,
            "amount": self.amount,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PaymentEntry":
        return cls(
            transfer_id=data["transfer_id"],
            timestamp=data["timestamp"],
            to=data["to"],
            amount=int(data["amount"]),
        )


class JournalPaymentRail:
    """Payment rail that appends payouts to a JSON Lines journal."""

    FILENAME = "payments.jsonl"

    def __init__(self, data_dir: Path):
        self.data_dir = data_dir
        self.journal_path = data_dir / self.FILENAME
        self._lock = threading.Lock()

    def transfer(self, amount: int, to: str) -> str:
        if not to:
            raise TransferFailed("transfer recipient is empty")

        entry = PaymentEntry(
            transfer_id=new_ulid(),
            timestamp=datetime.now(timezone.utc).isoformat(),
            to=to,
            amount=amount,
        )
        try:
            with self._lock:
                self.data_dir.mkdir(parents=True, exist_ok=True)
                with self.journal_path.open("a", encoding="utf-8") as f:
                    f.write(json.dumps(entry.to_dict()) + "\n")
        except OSError as e:
            logger.warning("payout journal write failed: %s", e)
            raise TransferFailed(f"could not record transfer to {to}: {e}") from e
        return entry.transfer_id

    def read_payments(self, last_n: int | None = None) -> list[PaymentEntry]:
        """
        Read journal entries.

        Args:
            last_n: If specified, return only the last N entries

        Returns:
            Entries, oldest first
        """
        if not self.journal_path.exists():
            return []

        entries = []
        with self.journal_path.open("r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line:
                    entries.append(PaymentEntry.from_dict(json.loads(line)))

        if last_n is not None:
            return entries[-last_n:]
        return entries

    def totals(self) -> dict[str, int]:
        """Total amount received per recipient."""
        result: dict[str, int] = {}
        for entry in self.read_payments():
            result[entry.to] = result.get(entry.to, 0) + entry.amount
        return result


def format_payment_entry(entry: PaymentEntry) -> str:
    """Format a journal entry for human-readable display."""
    return f"[{entry.timestamp}] {entry.amount} -> {entry.to} ({entry.transfer_id})"
