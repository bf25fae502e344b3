"""
Privileged entry points: pricing weights and the market feed.

Each privileged operation has exactly one authority identity. The check
is an explicit guard called at the top of every entry point; a rejected
call changes nothing and writes no event.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

from .balances import AccessLedger
from .errors import Unauthorized
from .ledger.event_log import EventLog
from .ledger.events import MARKET_VALUE_UPDATED, PRICING_WEIGHTS_UPDATED, LedgerEvent, create_event
from .locks import KeyedLocks
from .pricing import DEFAULT_WEIGHTS, PricingWeights
from .registry import AssetRegistry
from .stats import AssetStats, StatsStore
from .transaction import Transaction
from .util import DEFAULT_INT_BITS, require_uint

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Authority:
    """Identities allowed to perform privileged operations."""

    governor: str  # updates pricing weights
    oracle: str  # updates market values
    minter: str | None = None  # mints assets; None = anyone

    @classmethod
    def single(cls, identity: str) -> Authority:
        """One identity holding every role."""
        return cls(governor=identity, oracle=identity, minter=identity)


def require_authority(caller: str, authority: str, operation: str) -> None:
    """Raise Unauthorized unless `caller` is `authority`."""
    if caller != authority:
        logger.warning("rejected %s by %s", operation, caller)
        raise Unauthorized(caller, operation)


class Governance:
    """Owner of the live PricingWeights value."""

    def __init__(
        self,
        authority: Authority,
        log: EventLog,
        *,
        weights: PricingWeights = DEFAULT_WEIGHTS,
        int_bits: int = DEFAULT_INT_BITS,
    ):
        self.authority = authority
        self.log = log
        self.int_bits = int_bits
        self._lock = threading.Lock()
        self._weights = weights.validate(bits=int_bits)

    @property
    def weights(self) -> PricingWeights:
        return self._weights

    def set_weights(self, caller: str, alpha: int, beta: int, gamma: int) -> PricingWeights:
        """Replace the pricing weights wholesale."""
        require_authority(caller, self.authority.governor, "update pricing weights")
        new = PricingWeights(alpha=alpha, beta=beta, gamma=gamma).validate(bits=self.int_bits)

        with self._lock:
            previous = self._weights
            event = self.log.append(
                create_event(
                    PRICING_WEIGHTS_UPDATED,
                    caller,
                    payload={**new.to_dict(), "previous": previous.to_dict()},
                ),
                notify=False,
            )
            self._weights = new

        self.log.notify([event])
        logger.info("pricing weights %s -> %s", previous.to_dict(), new.to_dict())
        return new


class MarketFeed:
    """Single-writer channel for the market value signal."""

    def __init__(
        self,
        authority: Authority,
        registry: AssetRegistry,
        stats: StatsStore,
        balances: AccessLedger,
        log: EventLog,
        locks: KeyedLocks,
        *,
        int_bits: int = DEFAULT_INT_BITS,
    ):
        self.authority = authority
        self.registry = registry
        self.stats = stats
        self.balances = balances
        self.log = log
        self.locks = locks
        self.int_bits = int_bits

    def update_market_value(self, caller: str, asset_id: int, value: int) -> LedgerEvent:
        """
        Overwrite the asset's market value.

        No bounds beyond non-negativity and the integer width are applied.
        """
        require_authority(caller, self.authority.oracle, "update market value")
        require_uint("market_value", value, bits=self.int_bits)
        self.registry.lookup(asset_id)

        with self.locks.hold(asset_id), Transaction(self.stats, self.balances, self.log) as tx:
            current = tx.stats(asset_id)
            tx.set_stats(asset_id, AssetStats(access_count=current.access_count, market_value=value))
            tx.emit(
                create_event(
                    MARKET_VALUE_UPDATED,
                    caller,
                    asset_id=asset_id,
                    payload={"value": value, "previous_value": current.market_value},
                )
            )
            (event,) = tx.commit()

        self.log.notify([event])
        logger.info("market value of asset %d: %d -> %d", asset_id, current.market_value, value)
        return event
