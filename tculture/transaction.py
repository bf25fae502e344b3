"""
Unit of work for multi-step ledger mutations.

Writes are staged in the transaction and only become visible in the
stores after commit(). Commit appends the staged events to the log first
(the durable record) and then applies the staged values. A transaction
that is never committed leaves no trace.

Callers hold the lock of every asset they stage changes for. Listener
notification is left to the caller, once the staged values are visible.
"""

from __future__ import annotations

import logging

from .balances import AccessLedger
from .ledger.event_log import EventLog
from .ledger.events import LedgerEvent
from .stats import AssetStats, StatsStore

logger = logging.getLogger(__name__)


class TransactionClosed(RuntimeError):
    pass


class Transaction:
    def __init__(self, stats: StatsStore, balances: AccessLedger, log: EventLog):
        self._stats = stats
        self._balances = balances
        self._log = log

        self._staged_stats: dict[int, AssetStats] = {}
        self._staged_balances: dict[tuple[int, str], int] = {}
        self._events: list[LedgerEvent] = []
        self._closed = False

    def __enter__(self) -> Transaction:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if not self._closed:
            if exc_type is not None:
                logger.debug("rolling back transaction: %s", exc_type.__name__)
            self.rollback()

    def _check_open(self) -> None:
        if self._closed:
            raise TransactionClosed("transaction already committed or rolled back")

    # --- staged reads see staged writes ---

    def stats(self, asset_id: int) -> AssetStats:
        staged = self._staged_stats.get(asset_id)
        return staged if staged is not None else self._stats.get(asset_id)

    def balance(self, asset_id: int, account: str) -> int:
        staged = self._staged_balances.get((asset_id, account))
        return staged if staged is not None else self._balances.get(asset_id, account)

    # --- staged writes ---

    def set_stats(self, asset_id: int, stats: AssetStats) -> None:
        self._check_open()
        self._staged_stats[asset_id] = stats

    def set_balance(self, asset_id: int, account: str, balance: int) -> None:
        self._check_open()
        if balance < 0:
            raise ValueError(f"balance for ({asset_id}, {account}) cannot be negative")
        self._staged_balances[(asset_id, account)] = balance

    def emit(self, event: LedgerEvent) -> None:
        self._check_open()
        self._events.append(event)

    # --- boundary ---

    def commit(self) -> list[LedgerEvent]:
        """
        Make the staged changes visible.

        The log append is the commit point: if it raises, nothing has been
        applied to the stores. Listeners are not called here; the caller
        passes the returned events to `log.notify()` after releasing the
        asset lock.
        """
        self._check_open()
        stored = self._log.append_many(self._events, notify=False)

        for asset_id, stats in self._staged_stats.items():
            self._stats.put(asset_id, stats)
        for (asset_id, account), balance in self._staged_balances.items():
            self._balances.put(asset_id, account, balance)

        self._closed = True
        return stored

    def rollback(self) -> None:
        self._staged_stats.clear()
        self._staged_balances.clear()
        self._events.clear()
        self._closed = True
