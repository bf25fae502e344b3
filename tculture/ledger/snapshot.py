"""
Ledger state projection from the event stream.

State is never stored as the source of truth: assets, stats, balances and
the pricing weights are all recomputed by folding events in sequence
order. Folding the same log always yields the same state, which is what
makes the ledger survive a restart.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Iterable

from ..errors import LedgerCorrupted
from ..pricing import DEFAULT_WEIGHTS, PricingWeights
from ..registry import AssetRecord
from ..stats import ZERO_STATS, AssetStats
from ..util import DEFAULT_INT_BITS, checked_add
from .events import (
    ACCESS_CONSUMED,
    ACCESS_PURCHASED,
    ASSET_MINTED,
    ASSET_TRANSFERRED,
    MARKET_VALUE_UPDATED,
    PRICING_WEIGHTS_UPDATED,
    LedgerEvent,
)


@dataclass
class LedgerState:
    """
    Computed state of the whole ledger.

    This is a projection, not stored data. It can always be recomputed
    from the event stream.
    """

    assets: dict[int, AssetRecord] = field(default_factory=dict)
    stats: dict[int, AssetStats] = field(default_factory=dict)
    balances: dict[tuple[int, str], int] = field(default_factory=dict)
    weights: PricingWeights = DEFAULT_WEIGHTS
    last_sequence: int = 0

    def apply(self, event: LedgerEvent, *, int_bits: int = DEFAULT_INT_BITS) -> None:
        """Fold one event into the state."""
        if event.sequence and event.sequence <= self.last_sequence:
            raise LedgerCorrupted(
                f"event #{event.sequence} out of order (last applied #{self.last_sequence})"
            )

        p = event.payload
        asset_id = event.asset_id

        try:
            if event.event_type == ASSET_MINTED:
                self.assets[asset_id] = AssetRecord(
                    asset_id=asset_id,
                    cultural_value=int(p["cultural_value"]),
                    creator=p["creator"],
                    created_at=event.timestamp,
                    owner=p.get("owner") or p["creator"],
                    uri=p.get("uri", ""),
                )

            elif event.event_type == ASSET_TRANSFERRED:
                self.assets[asset_id] = replace(self._asset(event), owner=p["owner"])

            elif event.event_type == ACCESS_PURCHASED:
                amount = int(p["amount"])
                current = self.stats.get(asset_id, ZERO_STATS)
                self.stats[asset_id] = replace(
                    current, access_count=checked_add(current.access_count, amount, bits=int_bits)
                )
                key = (asset_id, p["buyer"])
                self.balances[key] = checked_add(self.balances.get(key, 0), amount, bits=int_bits)

            elif event.event_type == ACCESS_CONSUMED:
                key = (asset_id, p["account"])
                balance = self.balances.get(key, 0)
                if balance < 1:
                    raise LedgerCorrupted(
                        f"event #{event.sequence} consumes a credit that {p['account']} does not hold"
                    )
                self.balances[key] = balance - 1

            elif event.event_type == MARKET_VALUE_UPDATED:
                current = self.stats.get(asset_id, ZERO_STATS)
                self.stats[asset_id] = replace(current, market_value=int(p["value"]))

            elif event.event_type == PRICING_WEIGHTS_UPDATED:
                self.weights = PricingWeights.from_dict(p)

        except KeyError as e:
            raise LedgerCorrupted(f"event #{event.sequence} ({event.event_type}) missing field {e}") from e

        self.last_sequence = event.sequence or self.last_sequence

    def _asset(self, event: LedgerEvent) -> AssetRecord:
        record = self.assets.get(event.asset_id)
        if record is None:
            raise LedgerCorrupted(f"event #{event.sequence} references unminted asset {event.asset_id}")
        return record


def fold_events(
    events: Iterable[LedgerEvent],
    *,
    weights: PricingWeights = DEFAULT_WEIGHTS,
    int_bits: int = DEFAULT_INT_BITS,
) -> LedgerState:
    """
    Compute ledger state by folding event history.

    Args:
        events: Events in sequence order
        weights: Weights in force before any pricing_weights.updated event
        int_bits: Width for the replayed counters
    """
    state = LedgerState(weights=weights)
    for event in events:
        state.apply(event, int_bits=int_bits)
    return state
