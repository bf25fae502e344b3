"""Access credit balances keyed by (asset, account)."""

from __future__ import annotations

import threading


BalanceKey = tuple[int, str]


class AccessLedger:
    """
    Non-negative integer balance of unconsumed access credits.

    Like StatsStore, this is a plain keyed store; purchase and
    consumption logic (and the locking around it) lives in settlement.py
    and metering.py.
    """

    def __init__(self, initial: dict[BalanceKey, int] | None = None):
        self._lock = threading.Lock()
        self._balances: dict[BalanceKey, int] = dict(initial or {})

    def get(self, asset_id: int, account: str) -> int:
        with self._lock:
            return self._balances.get((asset_id, account), 0)

    def put(self, asset_id: int, account: str, balance: int) -> None:
        if balance < 0:
            raise ValueError(f"balance for ({asset_id}, {account}) cannot be negative")
        with self._lock:
            self._balances[(asset_id, account)] = balance

    def holders(self, asset_id: int) -> dict[str, int]:
        """Accounts with a non-zero balance on one asset."""
        with self._lock:
            return {
                account: balance
                for (aid, account), balance in self._balances.items()
                if aid == asset_id and balance > 0
            }

    def accounts(self, account: str) -> dict[int, int]:
        """Non-zero balances held by one account, keyed by asset id."""
        with self._lock:
            return {
                aid: balance
                for (aid, acct), balance in self._balances.items()
                if acct == account and balance > 0
            }

    def snapshot(self) -> dict[BalanceKey, int]:
        with self._lock:
            return dict(self._balances)
