"""
Immutable event types for the access ledger.

Events are the atomic unit of the log - each line in events.jsonl is one event.
Current state is computed by folding events, never by mutating prior entries.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any

from ..util import new_ulid

# Registry event types
ASSET_MINTED = "asset.minted"
ASSET_TRANSFERRED = "asset.transferred"

# Access ledger event types
ACCESS_PURCHASED = "access.purchased"
ACCESS_CONSUMED = "access.consumed"
MARKET_VALUE_UPDATED = "market_value.updated"
PRICING_WEIGHTS_UPDATED = "pricing_weights.updated"

# All valid event types
EVENT_TYPES = frozenset({
    ASSET_MINTED,
    ASSET_TRANSFERRED,
    ACCESS_PURCHASED,
    ACCESS_CONSUMED,
    MARKET_VALUE_UPDATED,
    PRICING_WEIGHTS_UPDATED,
})

# Events that must name an asset
ASSET_SCOPED_EVENTS = EVENT_TYPES - {PRICING_WEIGHTS_UPDATED}


@dataclass(frozen=True)
class LedgerEvent:
    """
    Immutable event in the access ledger.

    Events are append-only - once written, they are never modified.
    `sequence` is assigned by the log at append time; an event that has
    not been appended yet carries sequence 0.
    """

    event_type: str  # One of EVENT_TYPES
    event_id: str  # ULID
    timestamp: datetime
    actor: str  # buyer, account, oracle or governor identity
    asset_id: int | None = None
    payload: dict[str, Any] = field(default_factory=dict)
    sequence: int = 0

    def __post_init__(self) -> None:
        """Validate event structure."""
        if self.event_type not in EVENT_TYPES:
            raise ValueError(f"Invalid event_type: {self.event_type}")
        if self.event_type in ASSET_SCOPED_EVENTS and self.asset_id is None:
            raise ValueError(f"{self.event_type} requires an asset_id")

    def with_sequence(self, sequence: int) -> LedgerEvent:
        return replace(self, sequence=sequence)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        result: dict[str, Any] = {
            "sequence": self.sequence,
            "event_type": self.event_type,
            "event_id": self.event_id,
            "timestamp": self.timestamp.isoformat(),
            "actor": self.actor,
        }
        if self.asset_id is not None:
            result["asset_id"] = self.asset_id
        if self.payload:
            result["payload"] = self.payload
        return result

    def to_json(self) -> str:
        """Serialize to JSON string (single line)."""
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LedgerEvent:
        """Reconstruct from JSON dict."""
        asset_id = data.get("asset_id")
        return cls(
            event_type=data["event_type"],
            event_id=data["event_id"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
            actor=data["actor"],
            asset_id=int(asset_id) if asset_id is not None else None,
            payload=data.get("payload", {}),
            sequence=int(data.get("sequence", 0)),
        )

    @classmethod
    def from_json(cls, line: str) -> LedgerEvent:
        """Parse from JSON string."""
        return cls.from_dict(json.loads(line))


# Payload field documentation for each event type
EVENT_PAYLOAD_FIELDS = {
    ASSET_MINTED: {
        "creator": "Identity that minted the asset",
        "owner": "Initial owner (defaults to creator)",
        "cultural_value": "Creation-time cultural value C_k, never revised",
        "uri": "Token URI pointing at the asset's metadata",
    },
    ASSET_TRANSFERRED: {
        "previous_owner": "Owner before the transfer",
        "owner": "Owner after the transfer",
    },
    ACCESS_PURCHASED: {
        "buyer": "Account credited with access units",
        "amount": "Number of access units issued",
        "unit_price": "Price per unit charged (computed before the purchase)",
        "total_cost": "unit_price * amount",
        "funds_provided": "Funds supplied by the buyer, all forwarded to owner",
        "owner": "Asset owner that received the funds",
        "transfer_id": "Payment rail id of the payout (matches payments.jsonl)",
    },
    ACCESS_CONSUMED: {
        "account": "Account whose credit was debited",
        "action_type": "Capability unlocked (e.g., 'VIEW_3D_MODEL')",
        "remaining": "Balance left after the debit",
    },
    MARKET_VALUE_UPDATED: {
        "value": "New market value M_k",
        "previous_value": "Market value before the update",
    },
    PRICING_WEIGHTS_UPDATED: {
        "alpha": "Weight of cultural value",
        "beta": "Weight of usage count",
        "gamma": "Weight of market value",
        "previous": "Previous {alpha, beta, gamma}",
    },
}


def create_event(
    event_type: str,
    actor: str,
    *,
    asset_id: int | None = None,
    payload: dict[str, Any] | None = None,
    timestamp: datetime | None = None,
    event_id: str | None = None,
) -> LedgerEvent:
    """
    Factory function for creating events.

    Ensures consistent timestamp handling and validation.
    """
    return LedgerEvent(
        event_type=event_type,
        event_id=event_id or new_ulid(),
        timestamp=timestamp or datetime.now(timezone.utc),
        actor=actor,
        asset_id=asset_id,
        payload=payload or {},
    )
