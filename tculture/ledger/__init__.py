"""
Append-only event log for the access ledger.

Components:
- events: Canonical event types (asset.minted, access.purchased, ...)
- event_log: Durable JSONL storage with indexed queries
- snapshot: State projection by folding the log (import explicitly;
  it depends on the domain types that themselves depend on this package)

Design principles:
- Append-only: events are never rewritten
- Ordered: every event carries a strictly increasing sequence number
- Replayable: current state is a fold over the log
"""

from .events import LedgerEvent, create_event
from .event_log import EventLog

__all__ = [
    "LedgerEvent",
    "create_event",
    "EventLog",
]
