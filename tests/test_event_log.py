"""
Tests for the append-only event log.

Validates:
- Sequence assignment and persistence
- query() filters, ordering and pagination
- Subscribers
- Corruption detection
- Derived summaries
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from tculture.errors import LedgerCorrupted
from tculture.ledger.event_log import EventLog
from tculture.ledger.events import (
    ACCESS_CONSUMED,
    ACCESS_PURCHASED,
    ASSET_MINTED,
    MARKET_VALUE_UPDATED,
    PRICING_WEIGHTS_UPDATED,
    LedgerEvent,
    create_event,
)


@pytest.fixture
def log(tmp_path: Path) -> EventLog:
    return EventLog(tmp_path / ".tculture", durable=False)


@pytest.fixture
def populated_log(log: EventLog) -> EventLog:
    """Two assets: mint, market update, purchases and a consumption."""
    base_time = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def at(seconds: int) -> datetime:
        return base_time + timedelta(seconds=seconds)

    log.append(create_event(
        ASSET_MINTED, "studio", asset_id=0, timestamp=at(0),
        payload={"creator": "studio", "owner": "studio", "cultural_value": 100, "uri": ""},
    ))
    log.append(create_event(
        ASSET_MINTED, "studio", asset_id=1, timestamp=at(1),
        payload={"creator": "studio", "owner": "studio", "cultural_value": 5, "uri": ""},
    ))
    log.append(create_event(
        MARKET_VALUE_UPDATED, "oracle", asset_id=0, timestamp=at(2),
        payload={"value": 200, "previous_value": 0},
    ))
    log.append(create_event(
        ACCESS_PURCHASED, "alice", asset_id=0, timestamp=at(3),
        payload={
            "buyer": "alice", "amount": 2, "unit_price": 14000, "total_cost": 28000,
            "funds_provided": 30000, "owner": "studio",
        },
    ))
    log.append(create_event(
        ACCESS_PURCHASED, "bob", asset_id=1, timestamp=at(4),
        payload={
            "buyer": "bob", "amount": 1, "unit_price": 500, "total_cost": 500,
            "funds_provided": 500, "owner": "studio",
        },
    ))
    log.append(create_event(
        ACCESS_CONSUMED, "alice", asset_id=0, timestamp=at(5),
        payload={"account": "alice", "action_type": "VIEW_3D_MODEL", "remaining": 1},
    ))
    return log


# -----------------------------------------------------------------------------
# Events
# -----------------------------------------------------------------------------


def test_event_rejects_unknown_type():
    with pytest.raises(ValueError, match="Invalid event_type"):
        create_event("access.refunded", "alice", asset_id=0)


def test_asset_scoped_event_requires_asset_id():
    with pytest.raises(ValueError, match="requires an asset_id"):
        create_event(ACCESS_PURCHASED, "alice")


def test_weights_event_needs_no_asset():
    event = create_event(PRICING_WEIGHTS_UPDATED, "gov", payload={"alpha": 1, "beta": 1, "gamma": 1})
    assert event.asset_id is None
    assert "asset_id" not in event.to_dict()


def test_event_json_line_is_compact():
    event = create_event(ASSET_MINTED, "studio", asset_id=0, payload={"cultural_value": 1})
    line = event.to_json()
    assert "\n" not in line
    assert LedgerEvent.from_json(line) == event


# -----------------------------------------------------------------------------
# Appends
# -----------------------------------------------------------------------------


class TestAppend:
    def test_sequences_start_at_one(self, populated_log):
        sequences = [e.sequence for e in populated_log.iter_events()]
        assert sequences == [1, 2, 3, 4, 5, 6]
        assert populated_log.last_sequence() == 6

    def test_append_returns_stored_event(self, log):
        event = create_event(ASSET_MINTED, "studio", asset_id=0, payload={"cultural_value": 1})
        stored = log.append(event)

        assert event.sequence == 0
        assert stored.sequence == 1
        assert stored.event_id == event.event_id

    def test_append_many_is_consecutive(self, populated_log):
        stored = populated_log.append_many([
            create_event(MARKET_VALUE_UPDATED, "oracle", asset_id=0, payload={"value": 1}),
            create_event(MARKET_VALUE_UPDATED, "oracle", asset_id=1, payload={"value": 2}),
        ])
        assert [e.sequence for e in stored] == [7, 8]

    def test_append_many_empty(self, log):
        assert log.append_many([]) == []
        assert not log.log_path.exists()

    def test_persisted_across_instances(self, populated_log):
        reopened = EventLog(populated_log.data_dir)
        assert list(reopened.iter_events()) == list(populated_log.iter_events())

    def test_append_after_reopen_continues_sequence(self, populated_log):
        reopened = EventLog(populated_log.data_dir, durable=False)
        stored = reopened.append(
            create_event(MARKET_VALUE_UPDATED, "oracle", asset_id=0, payload={"value": 1})
        )
        assert stored.sequence == 7


class TestCorruption:
    def test_garbage_line(self, populated_log):
        with populated_log.log_path.open("a", encoding="utf-8") as f:
            f.write("{not json\n")

        with pytest.raises(LedgerCorrupted, match=":7:"):
            list(EventLog(populated_log.data_dir).iter_events())

    def test_unknown_event_type_line(self, populated_log):
        with populated_log.log_path.open("a", encoding="utf-8") as f:
            f.write('{"event_type": "bogus", "event_id": "x", "timestamp": "2026-01-01T00:00:00+00:00", "actor": "a"}\n')

        with pytest.raises(LedgerCorrupted):
            EventLog(populated_log.data_dir).count()

    def test_blank_lines_ignored(self, populated_log):
        with populated_log.log_path.open("a", encoding="utf-8") as f:
            f.write("\n\n")
        assert EventLog(populated_log.data_dir).count() == 6


# -----------------------------------------------------------------------------
# Queries
# -----------------------------------------------------------------------------


class TestQuery:
    def test_by_asset(self, populated_log):
        events = populated_log.query(asset_id=0)
        assert [e.event_type for e in events] == [
            ASSET_MINTED,
            MARKET_VALUE_UPDATED,
            ACCESS_PURCHASED,
            ACCESS_CONSUMED,
        ]
        assert populated_log.events_for(0) == events

    def test_by_type_and_asset(self, populated_log):
        events = populated_log.query(asset_id=1, event_type=ACCESS_PURCHASED)
        assert len(events) == 1
        assert events[0].actor == "bob"

    def test_by_actor(self, populated_log):
        assert [e.sequence for e in populated_log.query(actor="alice")] == [4, 6]
        assert [e.sequence for e in populated_log.purchases_by("alice")] == [4]

    def test_desc_with_limit(self, populated_log):
        events = populated_log.query(order="desc", limit=2)
        assert [e.sequence for e in events] == [6, 5]

    def test_after_sequence_cursor(self, populated_log):
        page1 = populated_log.query(limit=4)
        page2 = populated_log.query(after_sequence=page1[-1].sequence)
        assert [e.sequence for e in page1 + page2] == [1, 2, 3, 4, 5, 6]

    def test_time_window(self, populated_log):
        base = datetime(2026, 1, 1, tzinfo=timezone.utc)
        events = populated_log.query(since=base + timedelta(seconds=2), until=base + timedelta(seconds=4))
        assert [e.sequence for e in events] == [3, 4, 5]

    def test_where_predicate(self, populated_log):
        events = populated_log.query(
            event_type=ACCESS_PURCHASED,
            where=lambda e: e.payload["funds_provided"] > e.payload["total_cost"],
        )
        assert [e.actor for e in events] == ["alice"]

    def test_no_match(self, populated_log):
        assert populated_log.query(asset_id=42) == []


# -----------------------------------------------------------------------------
# Subscribers
# -----------------------------------------------------------------------------


class TestSubscribe:
    def test_listener_receives_stored_events(self, log):
        seen: list[LedgerEvent] = []
        log.subscribe(seen.append)

        log.append(create_event(ASSET_MINTED, "studio", asset_id=0, payload={"cultural_value": 1}))

        assert len(seen) == 1
        assert seen[0].sequence == 1

    def test_unsubscribe(self, log):
        seen: list[LedgerEvent] = []
        unsubscribe = log.subscribe(seen.append)
        unsubscribe()
        unsubscribe()

        log.append(create_event(ASSET_MINTED, "studio", asset_id=0, payload={"cultural_value": 1}))
        assert seen == []

    def test_failing_listener_does_not_undo_append(self, log, caplog):
        def broken(event: LedgerEvent) -> None:
            raise RuntimeError("boom")

        log.subscribe(broken)
        with caplog.at_level(logging.ERROR, logger="tculture.ledger.event_log"):
            stored = log.append(
                create_event(ASSET_MINTED, "studio", asset_id=0, payload={"cultural_value": 1})
            )

        assert stored.sequence == 1
        assert log.count() == 1
        assert "event listener failed" in caplog.text


# -----------------------------------------------------------------------------
# Summary
# -----------------------------------------------------------------------------


class TestSummary:
    def test_empty(self, log):
        assert log.summary() == {"total_events": 0}
        assert log.format_summary() == "No ledger events recorded."

    def test_per_asset_totals(self, populated_log):
        s = populated_log.summary()

        assert s["total_events"] == 6
        assert s["event_type_counts"][ACCESS_PURCHASED] == 2
        assert s["assets"][0] == {
            "units_purchased": 2,
            "revenue": 30000,
            "units_consumed": 1,
            "market_updates": 1,
        }
        assert s["assets"][1]["units_purchased"] == 1
        assert s["assets"][1]["revenue"] == 500

    def test_format_summary(self, populated_log):
        text = populated_log.format_summary()
        assert text.startswith("# Access Ledger Summary")
        assert "| 0 | 2 | 1 | 30000 | 1 |" in text
        assert "| access.purchased | 2 |" in text
