"""Tests for the market feed and pricing-weight governance."""

from __future__ import annotations

import logging

import pytest

from tculture.errors import AssetNotFound, InvalidAmount, Unauthorized
from tculture.governance import Authority, require_authority
from tculture.ledger.events import MARKET_VALUE_UPDATED, PRICING_WEIGHTS_UPDATED
from tculture.pricing import DEFAULT_WEIGHTS, PricingWeights


def test_require_authority_passes_for_authority():
    require_authority("gov", "gov", "update pricing weights")


def test_require_authority_logs_rejection(caplog):
    with caplog.at_level(logging.WARNING, logger="tculture.governance"):
        with pytest.raises(Unauthorized) as exc_info:
            require_authority("mallory", "gov", "update pricing weights")

    assert exc_info.value.caller == "mallory"
    assert str(exc_info.value) == "mallory is not authorized to update pricing weights"
    assert "mallory" in caplog.text


def test_single_authority_holds_every_role():
    auth = Authority.single("dao")
    assert (auth.governor, auth.oracle, auth.minter) == ("dao", "dao", "dao")


# -----------------------------------------------------------------------------
# Market feed
# -----------------------------------------------------------------------------


class TestMarketFeed:
    def test_oracle_overwrites_market_value(self, core, asset):
        event = core.set_market_value("oracle", asset.asset_id, 500)

        assert core.stats_of(asset.asset_id).market_value == 500
        assert core.price(asset.asset_id) == 10000 + 20 * 500
        assert event.event_type == MARKET_VALUE_UPDATED
        assert event.payload == {"value": 500, "previous_value": 200}

    def test_market_value_may_drop(self, core, asset):
        core.set_market_value("oracle", asset.asset_id, 0)
        assert core.price(asset.asset_id) == 10000

    def test_market_update_keeps_access_count(self, core, asset):
        core.buy(asset.asset_id, "alice", 3, 42000)
        core.set_market_value("oracle", asset.asset_id, 1)
        assert core.stats_of(asset.asset_id).access_count == 3

    def test_non_oracle_is_rejected(self, core, asset):
        count = core.log.count()

        for caller in ("gov", "studio", "alice"):
            with pytest.raises(Unauthorized):
                core.set_market_value(caller, asset.asset_id, 9999)

        assert core.stats_of(asset.asset_id).market_value == 200
        assert core.log.count() == count

    def test_unknown_asset(self, core):
        with pytest.raises(AssetNotFound):
            core.set_market_value("oracle", 99, 1)

    def test_negative_value(self, core, asset):
        with pytest.raises(InvalidAmount):
            core.set_market_value("oracle", asset.asset_id, -1)
        assert core.stats_of(asset.asset_id).market_value == 200

    def test_authority_checked_before_asset(self, core):
        with pytest.raises(Unauthorized):
            core.set_market_value("alice", 99, 1)


# -----------------------------------------------------------------------------
# Pricing weights
# -----------------------------------------------------------------------------


class TestWeights:
    def test_governor_replaces_weights(self, core, asset):
        new = core.set_weights("gov", 1, 2, 3)

        assert new == PricingWeights(1, 2, 3)
        assert core.weights == new
        assert core.price(asset.asset_id) == 100 + 0 + 600

    def test_weights_event(self, core):
        core.set_weights("gov", 1, 2, 3)

        (event,) = core.log.query(event_type=PRICING_WEIGHTS_UPDATED)
        assert event.asset_id is None
        assert event.actor == "gov"
        assert event.payload == {
            "alpha": 1,
            "beta": 2,
            "gamma": 3,
            "previous": DEFAULT_WEIGHTS.to_dict(),
        }

    def test_non_governor_is_rejected(self, core, asset):
        count = core.log.count()

        with pytest.raises(Unauthorized):
            core.set_weights("oracle", 0, 0, 0)

        assert core.weights == DEFAULT_WEIGHTS
        assert core.price(asset.asset_id) == 14000
        assert core.log.count() == count

    def test_negative_weight(self, core):
        with pytest.raises(InvalidAmount):
            core.set_weights("gov", 1, -2, 3)
        assert core.weights == DEFAULT_WEIGHTS

    def test_zero_weights_floor_price(self, core, asset):
        core.set_weights("gov", 0, 0, 0)
        assert core.price(asset.asset_id) == 1
