"""Per-asset usage and market statistics."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Iterator


@dataclass(frozen=True)
class AssetStats:
    """
    Mutable-by-replacement counters for one asset.

    access_count only ever grows (purchases); market_value is overwritten
    by the market feed.
    """

    access_count: int = 0
    market_value: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"access_count": self.access_count, "market_value": self.market_value}


ZERO_STATS = AssetStats()


class StatsStore:
    """
    Keyed store of AssetStats.

    Absent entries read as zero. Writers must hold the asset's lock for
    the whole read-modify-write; the store itself only guarantees that a
    single get or put is never torn.
    """

    def __init__(self, initial: dict[int, AssetStats] | None = None):
        self._lock = threading.Lock()
        self._stats: dict[int, AssetStats] = dict(initial or {})

    def get(self, asset_id: int) -> AssetStats:
        with self._lock:
            return self._stats.get(asset_id, ZERO_STATS)

    def put(self, asset_id: int, stats: AssetStats) -> None:
        with self._lock:
            self._stats[asset_id] = stats

    def __contains__(self, asset_id: object) -> bool:
        with self._lock:
            return asset_id in self._stats

    def items(self) -> Iterator[tuple[int, AssetStats]]:
        with self._lock:
            items = sorted(self._stats.items())
        yield from items

    def snapshot(self) -> dict[int, AssetStats]:
        with self._lock:
            return dict(self._stats)
