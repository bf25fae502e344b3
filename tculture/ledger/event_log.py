"""
Append-only event log.

The log is the durable store of the access ledger. It contains only
LedgerEvent entries, written once and never modified. Current state is
computed by replaying events (see snapshot.py).
"""

from __future__ import annotations

import json
import logging
import os
import threading
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterator, Literal, Sequence

from ..errors import LedgerCorrupted
from .events import (
    ACCESS_CONSUMED,
    ACCESS_PURCHASED,
    MARKET_VALUE_UPDATED,
    LedgerEvent,
)

logger = logging.getLogger(__name__)

EventListener = Callable[[LedgerEvent], None]


class EventLog:
    """
    Append-only, ordered event log backed by a JSON Lines file.

    INVARIANT: This class NEVER modifies existing log lines.
    The only write operations are append() and append_many().
    Each appended event receives the next `sequence` number, so file order
    and sequence order agree.
    """

    FILENAME = "events.jsonl"

    def __init__(self, data_dir: Path, *, durable: bool = True):
        """
        Initialize log.

        Args:
            data_dir: Directory holding events.jsonl
            durable: fsync after every append
        """
        self.data_dir = data_dir
        self.log_path = data_dir / self.FILENAME
        self.durable = durable

        self._lock = threading.Lock()
        self._listeners: list[EventListener] = []

        # Query indexes (lazy-loaded)
        self._events: list[LedgerEvent] = []
        self._by_asset_id: dict[int, list[int]] = {}
        self._by_event_type: dict[str, list[int]] = {}
        self._indexed: bool = False

    def _ensure_dir(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def _ensure_indexed(self) -> None:
        """
        Build indexes on first use (lazy loading).

        Caller must hold self._lock.
        """
        if self._indexed:
            return

        self._events = list(self._read_file())
        for idx, event in enumerate(self._events):
            self._update_indexes(event, idx)
        self._indexed = True

    def _update_indexes(self, event: LedgerEvent, idx: int) -> None:
        if event.asset_id is not None:
            self._by_asset_id.setdefault(event.asset_id, []).append(idx)
        self._by_event_type.setdefault(event.event_type, []).append(idx)

    def _read_file(self) -> Iterator[LedgerEvent]:
        if not self.log_path.exists():
            return

        with self.log_path.open("r", encoding="utf-8") as f:
            for lineno, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    yield LedgerEvent.from_json(line)
                except (json.JSONDecodeError, KeyError, ValueError) as e:
                    raise LedgerCorrupted(f"{self.log_path}:{lineno}: {e}") from e

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def append(self, event: LedgerEvent, *, notify: bool = True) -> LedgerEvent:
        """
        Append an event to the log.

        Returns the event as stored, carrying its assigned sequence number.
        """
        return self.append_many([event], notify=notify)[0]

    def append_many(self, events: Sequence[LedgerEvent], *, notify: bool = True) -> list[LedgerEvent]:
        """
        Append multiple events atomically.

        All events are written in a single file operation and receive
        consecutive sequence numbers.

        Args:
            events: Events to append, in order
            notify: Call listeners before returning. Callers that apply
                state after the append pass False and call notify() once
                that state is visible and their own locks are released.
        """
        if not events:
            return []

        with self._lock:
            self._ensure_indexed()
            self._ensure_dir()

            start = len(self._events)
            stored = [e.with_sequence(start + i + 1) for i, e in enumerate(events)]

            with self.log_path.open("a", encoding="utf-8") as f:
                f.write("".join(e.to_json() + "\n" for e in stored))
                if self.durable:
                    f.flush()
                    os.fsync(f.fileno())

            for i, event in enumerate(stored):
                self._events.append(event)
                self._update_indexes(event, start + i)

        for event in stored:
            logger.debug("appended %s #%d", event.event_type, event.sequence)
        if notify:
            self.notify(stored)
        return stored

    def notify(self, events: Sequence[LedgerEvent]) -> None:
        """Call every listener with each of `events`, in order."""
        with self._lock:
            listeners = list(self._listeners)

        for event in events:
            for listener in listeners:
                try:
                    listener(event)
                except Exception:
                    # Already committed; listener failures do not propagate
                    logger.exception("event listener failed on %s #%d", event.event_type, event.sequence)

    def subscribe(self, listener: EventListener) -> Callable[[], None]:
        """
        Register a callback invoked after each committed event.

        Returns a function that removes the listener.
        """
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def iter_events(self) -> Iterator[LedgerEvent]:
        """
        Iterate over all events in the log.

        Events are returned in sequence order (append order).
        """
        with self._lock:
            self._ensure_indexed()
            events = list(self._events)
        yield from events

    def count(self) -> int:
        with self._lock:
            self._ensure_indexed()
            return len(self._events)

    def last_sequence(self) -> int:
        return self.count()

    def query(
        self,
        *,
        asset_id: int | None = None,
        event_type: str | None = None,
        actor: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
        where: Callable[[LedgerEvent], bool] | None = None,
        limit: int | None = None,
        order: Literal["asc", "desc"] = "asc",
        after_sequence: int | None = None,
    ) -> list[LedgerEvent]:
        """
        Query events with composable filters.

        Args:
            asset_id: Filter by asset
            event_type: Filter by event type
            actor: Filter by actor identity
            since: Filter events on or after this timestamp
            until: Filter events on or before this timestamp
            where: Custom filter predicate
            limit: Maximum number of events to return
            order: "asc" = append order, "desc" = newest first
            after_sequence: Cursor for pagination (only events with a
                greater sequence number)

        Returns:
            List of matching events in the requested order
        """
        with self._lock:
            self._ensure_indexed()

            candidate_indices: set[int] | None = None

            if asset_id is not None:
                indices = set(self._by_asset_id.get(asset_id, []))
                candidate_indices = indices

            if event_type is not None:
                indices = set(self._by_event_type.get(event_type, []))
                candidate_indices = indices if candidate_indices is None else candidate_indices & indices

            if candidate_indices is None:
                candidate_indices = set(range(len(self._events)))

            candidates = [self._events[idx] for idx in sorted(candidate_indices)]

        if order == "desc":
            candidates.reverse()

        results: list[LedgerEvent] = []
        for event in candidates:
            if after_sequence is not None and event.sequence <= after_sequence:
                continue
            if since is not None and event.timestamp < since:
                continue
            if until is not None and event.timestamp > until:
                continue
            if actor is not None and event.actor != actor:
                continue
            if where is not None and not where(event):
                continue

            results.append(event)
            if limit is not None and len(results) >= limit:
                break

        return results

    def events_for(self, asset_id: int) -> list[LedgerEvent]:
        """All events for one asset, in append order."""
        return self.query(asset_id=asset_id)

    def purchases_by(self, buyer: str) -> list[LedgerEvent]:
        return self.query(event_type=ACCESS_PURCHASED, actor=buyer)

    # --- Summary methods ---

    def summary(self) -> dict:
        """
        Generate a summary of the log.

        Returns per-asset purchase, revenue and consumption totals.
        """
        events = list(self.iter_events())
        if not events:
            return {"total_events": 0}

        type_counts: dict[str, int] = {}
        per_asset: dict[int, dict[str, int]] = {}

        for e in events:
            type_counts[e.event_type] = type_counts.get(e.event_type, 0) + 1
            if e.asset_id is None:
                continue
            row = per_asset.setdefault(
                e.asset_id,
                {"units_purchased": 0, "revenue": 0, "units_consumed": 0, "market_updates": 0},
            )
            if e.event_type == ACCESS_PURCHASED:
                row["units_purchased"] += int(e.payload.get("amount", 0))
                row["revenue"] += int(e.payload.get("funds_provided", 0))
            elif e.event_type == ACCESS_CONSUMED:
                row["units_consumed"] += 1
            elif e.event_type == MARKET_VALUE_UPDATED:
                row["market_updates"] += 1

        return {
            "total_events": len(events),
            "event_type_counts": type_counts,
            "assets": per_asset,
            "time_range": {
                "earliest": events[0].timestamp.isoformat(),
                "latest": events[-1].timestamp.isoformat(),
            },
        }

    def format_summary(self) -> str:
        """Format summary as markdown."""
        s = self.summary()
        if s["total_events"] == 0:
            return "No ledger events recorded."

        lines = [
            "# Access Ledger Summary",
            "",
            f"- Total events: {s['total_events']}",
            f"- Time range: {s['time_range']['earliest']} to {s['time_range']['latest']}",
            "",
            "## Event Types",
            "",
            "| Type | Count |",
            "|------|------:|",
        ]
        for et, count in sorted(s["event_type_counts"].items(), key=lambda x: -x[1]):
            lines.append(f"| {et} | {count} |")

        if s["assets"]:
            lines.extend([
                "",
                "## Assets",
                "",
                "| Asset | Purchased | Consumed | Revenue | Market updates |",
                "|------:|----------:|---------:|--------:|---------------:|",
            ])
            for asset_id in sorted(s["assets"]):
                row = s["assets"][asset_id]
                lines.append(
                    f"| {asset_id} | {row['units_purchased']} | {row['units_consumed']} "
                    f"| {row['revenue']} | {row['market_updates']} |"
                )

        return "\n".join(lines) + "\n"
