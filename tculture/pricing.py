"""
Dynamic unit pricing.

    unit_price = alpha * C_k + beta * U_k + gamma * M_k

C_k is the asset's cultural value (registry), U_k its access count and
M_k its market value (stats store). Arithmetic is checked at the
configured unsigned width.

A computed price of exactly zero is raised to MIN_UNIT_PRICE so that
access is never free.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

from .registry import AssetRegistry
from .stats import StatsStore
from .util import DEFAULT_INT_BITS, checked_add, checked_mul, require_uint

logger = logging.getLogger(__name__)

MIN_UNIT_PRICE = 1


@dataclass(frozen=True)
class PricingWeights:
    alpha: int
    beta: int
    gamma: int

    def validate(self, *, bits: int = DEFAULT_INT_BITS) -> PricingWeights:
        for name in ("alpha", "beta", "gamma"):
            require_uint(name, getattr(self, name), bits=bits)
        return self

    def to_dict(self) -> dict[str, int]:
        return {"alpha": self.alpha, "beta": self.beta, "gamma": self.gamma}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PricingWeights:
        return cls(alpha=int(data["alpha"]), beta=int(data["beta"]), gamma=int(data["gamma"]))


DEFAULT_WEIGHTS = PricingWeights(alpha=100, beta=50, gamma=20)


@dataclass(frozen=True)
class PriceQuote:
    """Full breakdown of one price computation."""

    asset_id: int
    weights: PricingWeights
    cultural_value: int
    access_count: int
    market_value: int
    cultural_term: int
    usage_term: int
    market_term: int
    unit_price: int
    floor_applied: bool

    @property
    def raw_price(self) -> int:
        return self.cultural_term + self.usage_term + self.market_term

    def to_dict(self) -> dict[str, Any]:
        return {
            "asset_id": self.asset_id,
            "weights": self.weights.to_dict(),
            "cultural_value": self.cultural_value,
            "access_count": self.access_count,
            "market_value": self.market_value,
            "cultural_term": self.cultural_term,
            "usage_term": self.usage_term,
            "market_term": self.market_term,
            "unit_price": self.unit_price,
            "floor_applied": self.floor_applied,
        }


def compute_terms(
    cultural_value: int,
    access_count: int,
    market_value: int,
    weights: PricingWeights,
    *,
    bits: int = DEFAULT_INT_BITS,
) -> tuple[int, int, int, int]:
    """Return (cultural_term, usage_term, market_term, sum), all checked."""
    cultural_term = checked_mul(weights.alpha, cultural_value, bits=bits)
    usage_term = checked_mul(weights.beta, access_count, bits=bits)
    market_term = checked_mul(weights.gamma, market_value, bits=bits)
    total = checked_add(checked_add(cultural_term, usage_term, bits=bits), market_term, bits=bits)
    return cultural_term, usage_term, market_term, total


def compute_unit_price(
    cultural_value: int,
    access_count: int,
    market_value: int,
    weights: PricingWeights,
    *,
    bits: int = DEFAULT_INT_BITS,
    min_unit_price: int = MIN_UNIT_PRICE,
) -> int:
    *_, total = compute_terms(cultural_value, access_count, market_value, weights, bits=bits)
    return total if total != 0 else min_unit_price


class PricingEngine:
    """
    Price quotes for registered assets.

    Holds no state: the registry, the stats store and the live weights are
    read at call time, so consecutive calls with no mutation in between
    return the same price.
    """

    def __init__(
        self,
        registry: AssetRegistry,
        stats: StatsStore,
        weights: Callable[[], PricingWeights],
        *,
        int_bits: int = DEFAULT_INT_BITS,
        min_unit_price: int = MIN_UNIT_PRICE,
    ):
        self.registry = registry
        self.stats = stats
        self._weights = weights
        self.int_bits = int_bits
        self.min_unit_price = min_unit_price

    def quote(self, asset_id: int, *, stats_override=None) -> PriceQuote:
        """
        Compute the price breakdown for an asset.

        Args:
            asset_id: Asset to price
            stats_override: AssetStats to use instead of the store's value
                (settlement passes the stats as seen inside its transaction)

        Raises:
            AssetNotFound: unknown asset
            ArithmeticOverflow: a term or the sum leaves the integer width
        """
        record = self.registry.lookup(asset_id)
        stats = stats_override if stats_override is not None else self.stats.get(asset_id)
        weights = self._weights()

        cultural_term, usage_term, market_term, total = compute_terms(
            record.cultural_value,
            stats.access_count,
            stats.market_value,
            weights,
            bits=self.int_bits,
        )
        floor_applied = total == 0
        unit_price = self.min_unit_price if floor_applied else total

        logger.debug(
            "quote asset=%d C=%d U=%d M=%d weights=%s -> %d",
            asset_id,
            record.cultural_value,
            stats.access_count,
            stats.market_value,
            weights.to_dict(),
            unit_price,
        )
        return PriceQuote(
            asset_id=asset_id,
            weights=weights,
            cultural_value=record.cultural_value,
            access_count=stats.access_count,
            market_value=stats.market_value,
            cultural_term=cultural_term,
            usage_term=usage_term,
            market_term=market_term,
            unit_price=unit_price,
            floor_applied=floor_applied,
        )

    def price(self, asset_id: int) -> int:
        return self.quote(asset_id).unit_price
