"""
AccessCore: single entry point wiring registry, pricing, settlement,
metering and governance over one event log.

    core = AccessCore.open(data_dir)
    asset = core.mint("studio", cultural_value=100, uri="ipfs://...")
    core.set_market_value("governor", asset.asset_id, 200)
    receipt = core.buy(asset.asset_id, "alice", 1, funds_provided=14000)
    core.consume(asset.asset_id, "alice")

Query entry points (`price`, `quote`, `balance_of`, `stats_of`) need no
authority. State is rebuilt from the log on open().
"""

from __future__ import annotations

import logging
from pathlib import Path

from .balances import AccessLedger
from .config import LedgerConfig, load_config
from .governance import Governance, MarketFeed
from .ledger.event_log import EventLog
from .ledger.events import LedgerEvent
from .ledger.snapshot import LedgerState, fold_events
from .locks import KeyedLocks
from .metering import DEFAULT_ACTION_TYPE, ConsumptionMeter, ConsumptionReceipt
from .payments import JournalPaymentRail, PaymentRail
from .pricing import PriceQuote, PricingEngine, PricingWeights
from .registry import AssetRecord, AssetRegistry, LocalAssetRegistry
from .settlement import PurchaseReceipt, PurchaseSettlement
from .stats import AssetStats, StatsStore

logger = logging.getLogger(__name__)


class AccessCore:
    def __init__(
        self,
        log: EventLog,
        payments: PaymentRail,
        *,
        config: LedgerConfig | None = None,
        registry: AssetRegistry | None = None,
        state: LedgerState | None = None,
    ):
        """
        Wire the components together.

        Args:
            log: Event log (durable store)
            payments: Rail used to forward purchase funds
            config: Authorities, initial weights, integer width
            registry: External registry; defaults to a LocalAssetRegistry
                over `log` seeded from `state`
            state: State recovered by replaying `log`
        """
        self.config = config or LedgerConfig()
        self.log = log
        self.payments = payments
        state = state or LedgerState(weights=self.config.weights)
        bits = self.config.int_bits

        self.locks = KeyedLocks()
        self.stats = StatsStore(state.stats)
        self.balances = AccessLedger(state.balances)
        self.registry = registry or LocalAssetRegistry(
            log,
            minter=self.config.authority.minter,
            records=state.assets,
            int_bits=bits,
        )
        self.governance = Governance(
            self.config.authority,
            log,
            weights=state.weights,
            int_bits=bits,
        )
        self.pricing = PricingEngine(
            self.registry,
            self.stats,
            lambda: self.governance.weights,
            int_bits=bits,
            min_unit_price=self.config.min_unit_price,
        )
        self.market_feed = MarketFeed(
            self.config.authority,
            self.registry,
            self.stats,
            self.balances,
            log,
            self.locks,
            int_bits=bits,
        )
        self.settlement = PurchaseSettlement(
            self.registry,
            self.pricing,
            self.stats,
            self.balances,
            payments,
            log,
            self.locks,
            int_bits=bits,
        )
        self.meter = ConsumptionMeter(self.registry, self.stats, self.balances, log, self.locks)

    @classmethod
    def open(
        cls,
        data_dir: Path,
        *,
        config: LedgerConfig | None = None,
        payments: PaymentRail | None = None,
    ) -> AccessCore:
        """
        Open (or create) a ledger in `data_dir`, replaying its event log.

        Args:
            data_dir: Directory holding config.toml, events.jsonl, payments.jsonl
            config: Overrides config.toml when given
            payments: Defaults to a JournalPaymentRail in data_dir
        """
        config = config or load_config(data_dir)
        log = EventLog(data_dir)
        state = fold_events(log.iter_events(), weights=config.weights, int_bits=config.int_bits)
        logger.info(
            "opened ledger %s: %d events, %d assets", data_dir, state.last_sequence, len(state.assets)
        )
        return cls(
            log,
            payments or JournalPaymentRail(data_dir),
            config=config,
            state=state,
        )

    # -------------------------------------------------------------------------
    # Registry
    # -------------------------------------------------------------------------

    def mint(self, creator: str, cultural_value: int, uri: str = "", *, owner: str | None = None) -> AssetRecord:
        return self._local_registry().mint(creator, cultural_value, uri, owner=owner)

    def transfer_ownership(self, caller: str, asset_id: int, new_owner: str) -> AssetRecord:
        # Held so that no purchase resolves the owner mid-transfer
        with self.locks.hold(asset_id):
            return self._local_registry().transfer_ownership(caller, asset_id, new_owner)

    def asset(self, asset_id: int) -> AssetRecord:
        return self.registry.lookup(asset_id)

    def _local_registry(self) -> LocalAssetRegistry:
        if not isinstance(self.registry, LocalAssetRegistry):
            raise TypeError("minting and ownership transfer belong to the external registry")
        return self.registry

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def price(self, asset_id: int) -> int:
        return self.pricing.price(asset_id)

    def quote(self, asset_id: int) -> PriceQuote:
        return self.pricing.quote(asset_id)

    def balance_of(self, asset_id: int, account: str) -> int:
        return self.balances.get(asset_id, account)

    def stats_of(self, asset_id: int) -> AssetStats:
        self.registry.lookup(asset_id)
        with self.locks.hold(asset_id):
            return self.stats.get(asset_id)

    def snapshot_of(self, asset_id: int, account: str) -> tuple[AssetStats, int]:
        """Stats and one account's balance, read under the asset lock."""
        self.registry.lookup(asset_id)
        with self.locks.hold(asset_id):
            return self.stats.get(asset_id), self.balances.get(asset_id, account)

    @property
    def weights(self) -> PricingWeights:
        return self.governance.weights

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def buy(self, asset_id: int, buyer: str, amount: int, funds_provided: int) -> PurchaseReceipt:
        return self.settlement.buy(asset_id, buyer, amount, funds_provided)

    def consume(self, asset_id: int, account: str, action_type: str = DEFAULT_ACTION_TYPE) -> ConsumptionReceipt:
        return self.meter.consume(asset_id, account, action_type)

    def set_market_value(self, caller: str, asset_id: int, value: int) -> LedgerEvent:
        return self.market_feed.update_market_value(caller, asset_id, value)

    def set_weights(self, caller: str, alpha: int, beta: int, gamma: int) -> PricingWeights:
        return self.governance.set_weights(caller, alpha, beta, gamma)
