"""
Fine-grained lock table.

One lock per key (asset id), created on first use. Operations on the
same asset are serialised; operations on different assets never contend.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Hashable, Iterator


class KeyedLocks:
    """Lazily created re-entrant locks keyed by an arbitrary hashable."""

    def __init__(self) -> None:
        # Guards the registry of locks, never held while a keyed lock is held
        self._meta_lock = threading.Lock()
        self._locks: dict[Hashable, threading.RLock] = {}

    def get(self, key: Hashable) -> threading.RLock:
        with self._meta_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        lock = self.get(key)
        with lock:
            yield

    def __len__(self) -> int:
        with self._meta_lock:
            return len(self._locks)
