"""
Tests for purchase settlement.

Covers exact counter increments, the all-or-nothing guarantee on the
rejecting paths and forwarding of the full funds to the current owner.
"""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from tculture.core import AccessCore
from tculture.errors import (
    AssetNotFound,
    InsufficientFunds,
    InvalidAmount,
    TransferFailed,
)
from tculture.ledger.events import ACCESS_PURCHASED
from tculture.payments import InMemoryPaymentRail, JournalPaymentRail


def _state(core: AccessCore, asset_id: int, account: str) -> tuple:
    stats, balance = core.snapshot_of(asset_id, account)
    return stats, balance, core.log.count()


class TestBuy:
    def test_single_unit(self, core, asset, rail):
        receipt = core.buy(asset.asset_id, "alice", 1, 14000)

        assert receipt.unit_price_charged == 14000
        assert receipt.total_charged == 14000
        assert receipt.funds_forwarded == 14000
        assert receipt.owner == "studio"
        assert core.balance_of(asset.asset_id, "alice") == 1
        assert core.stats_of(asset.asset_id).access_count == 1
        assert rail.total_received("studio") == 14000

    def test_counters_grow_by_exactly_amount(self, core, asset):
        core.buy(asset.asset_id, "alice", 2, 28000)
        core.buy(asset.asset_id, "alice", 3, 3 * 14100)

        assert core.balance_of(asset.asset_id, "alice") == 5
        assert core.stats_of(asset.asset_id).access_count == 5

    def test_market_value_untouched_by_purchase(self, core, asset):
        core.buy(asset.asset_id, "alice", 1, 14000)
        assert core.stats_of(asset.asset_id).market_value == 200

    def test_whole_batch_priced_before_purchase(self, core, asset):
        receipt = core.buy(asset.asset_id, "alice", 4, 4 * 14000)

        assert receipt.unit_price_charged == 14000
        assert receipt.total_charged == 56000
        assert core.price(asset.asset_id) == 14000 + 4 * 50

    def test_overpayment_forwarded_in_full(self, core, asset, rail):
        receipt = core.buy(asset.asset_id, "alice", 1, 20000)

        assert receipt.total_charged == 14000
        assert receipt.funds_forwarded == 20000
        assert rail.received == {"studio": 20000}

    def test_purchase_event(self, core, asset):
        receipt = core.buy(asset.asset_id, "alice", 2, 30000)

        (event,) = core.log.query(event_type=ACCESS_PURCHASED)
        assert event.event_id == receipt.event_id
        assert event.sequence == receipt.sequence
        assert event.actor == "alice"
        assert event.asset_id == asset.asset_id
        assert event.payload == {
            "buyer": "alice",
            "amount": 2,
            "unit_price": 14000,
            "total_cost": 28000,
            "funds_provided": 30000,
            "owner": "studio",
            "transfer_id": receipt.transfer_id,
        }
        assert receipt.transfer_id

    def test_funds_follow_ownership(self, core, asset, rail):
        core.buy(asset.asset_id, "alice", 1, 14000)
        core.transfer_ownership("studio", asset.asset_id, "museum")
        core.buy(asset.asset_id, "alice", 1, 14050)

        assert rail.received == {"studio": 14000, "museum": 14050}

    def test_balances_are_per_account(self, core, asset):
        core.buy(asset.asset_id, "alice", 1, 14000)
        core.buy(asset.asset_id, "bob", 2, 2 * 14050)

        assert core.balance_of(asset.asset_id, "alice") == 1
        assert core.balance_of(asset.asset_id, "bob") == 2
        assert core.balances.holders(asset.asset_id) == {"alice": 1, "bob": 2}


class TestRejectedBuy:
    def test_insufficient_funds(self, core, asset, rail):
        before = _state(core, asset.asset_id, "alice")

        with pytest.raises(InsufficientFunds) as exc_info:
            core.buy(asset.asset_id, "alice", 1, 13999)

        assert exc_info.value.required == 14000
        assert exc_info.value.provided == 13999
        assert _state(core, asset.asset_id, "alice") == before
        assert rail.transfers == []

    def test_insufficient_funds_for_batch(self, core, asset):
        with pytest.raises(InsufficientFunds):
            core.buy(asset.asset_id, "alice", 2, 27999)
        assert core.balance_of(asset.asset_id, "alice") == 0

    def test_unknown_asset(self, core, rail):
        with pytest.raises(AssetNotFound) as exc_info:
            core.buy(7, "alice", 1, 10**9)
        assert exc_info.value.asset_id == 7
        assert isinstance(exc_info.value, KeyError)
        assert rail.transfers == []

    @pytest.mark.parametrize("amount", [0, -1, True, 1.5])
    def test_invalid_amount(self, core, asset, amount):
        with pytest.raises(InvalidAmount):
            core.buy(asset.asset_id, "alice", amount, 10**9)

    def test_negative_funds(self, core, asset):
        with pytest.raises(InvalidAmount):
            core.buy(asset.asset_id, "alice", 1, -14000)

    def test_empty_buyer(self, core, asset):
        with pytest.raises(InvalidAmount):
            core.buy(asset.asset_id, "", 1, 14000)

    def test_rejection_leaves_ledger_usable(self, core, asset):
        with pytest.raises(InsufficientFunds):
            core.buy(asset.asset_id, "alice", 1, 1)
        receipt = core.buy(asset.asset_id, "alice", 1, 14000)
        assert receipt.sequence == core.log.last_sequence()


class TestTransferFailure:
    @pytest.fixture
    def failing_core(self, data_dir: Path, config) -> AccessCore:
        return AccessCore.open(
            data_dir, config=config, payments=InMemoryPaymentRail(fail_for={"studio"})
        )

    def test_failed_transfer_rolls_back(self, failing_core):
        record = failing_core.mint("studio", 100)
        before = _state(failing_core, record.asset_id, "alice")

        with pytest.raises(TransferFailed):
            failing_core.buy(record.asset_id, "alice", 1, 10000)

        assert _state(failing_core, record.asset_id, "alice") == before
        assert failing_core.log.query(event_type=ACCESS_PURCHASED) == []
        assert failing_core.price(record.asset_id) == 10000

    def test_failed_transfer_not_replayed(self, failing_core, data_dir, config):
        record = failing_core.mint("studio", 100)
        with pytest.raises(TransferFailed):
            failing_core.buy(record.asset_id, "alice", 1, 10000)

        reopened = AccessCore.open(data_dir, config=config, payments=InMemoryPaymentRail())
        assert reopened.balance_of(record.asset_id, "alice") == 0
        assert reopened.stats_of(record.asset_id).access_count == 0

    def test_transfer_to_new_owner_after_failure(self, failing_core):
        record = failing_core.mint("studio", 100)
        with pytest.raises(TransferFailed):
            failing_core.buy(record.asset_id, "alice", 1, 10000)

        failing_core.transfer_ownership("studio", record.asset_id, "museum")
        receipt = failing_core.buy(record.asset_id, "alice", 1, 10000)

        assert receipt.owner == "museum"
        assert failing_core.payments.received == {"museum": 10000}

    def test_unexpected_rail_error_becomes_transfer_failed(self, data_dir: Path, config):
        class BrokenRail:
            def transfer(self, amount: int, to: str) -> str:
                raise ConnectionError("gateway unreachable")

        core = AccessCore.open(data_dir, config=config, payments=BrokenRail())
        record = core.mint("studio", 100)

        with pytest.raises(TransferFailed) as exc_info:
            core.buy(record.asset_id, "alice", 1, 10000)

        assert isinstance(exc_info.value.__cause__, ConnectionError)
        assert core.balance_of(record.asset_id, "alice") == 0
        assert core.log.query(event_type=ACCESS_PURCHASED) == []


class TestUnrecordedPurchase:
    def test_error_names_the_payout(self, data_dir: Path, config, monkeypatch, caplog):
        core = AccessCore.open(data_dir, config=config)
        record = core.mint("studio", 100)

        def disk_full(events, *, notify=True):
            raise OSError("disk full")

        monkeypatch.setattr(core.log, "append_many", disk_full)
        with caplog.at_level(logging.ERROR, logger="tculture.settlement"):
            with pytest.raises(OSError):
                core.buy(record.asset_id, "alice", 1, 10000)

        (payout,) = JournalPaymentRail(data_dir).read_payments()
        assert payout.to == "studio"
        assert payout.transfer_id in caplog.text
        assert core.balance_of(record.asset_id, "alice") == 0
