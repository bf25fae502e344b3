"""
Purchase settlement: funds in, access credits out.

buy() runs as one unit of work under the asset's lock:

    1. quote the unit price from the stats as they stand before the purchase
    2. total_cost = unit_price * amount
    3. reject if funds_provided < total_cost
    4. stage access_count += amount
    5. stage balance[(asset, buyer)] += amount
    6. forward the entire funds_provided to the asset's current owner
    7. commit: append access.purchased, apply the staged counters

Listeners see the event only after the lock is released, when the new
counters and balance are already visible.

The transfer in step 6 is the commit point. If it raises, the staged
counters are discarded and no event is written. Overpayment is forwarded
to the owner in full; nothing is refunded.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from .balances import AccessLedger
from .errors import InsufficientFunds, InvalidAmount, TransferFailed
from .ledger.event_log import EventLog
from .ledger.events import ACCESS_PURCHASED, create_event
from .locks import KeyedLocks
from .payments import PaymentRail
from .pricing import PricingEngine
from .registry import AssetRegistry
from .stats import AssetStats, StatsStore
from .transaction import Transaction
from .util import DEFAULT_INT_BITS, checked_add, checked_mul, require_uint

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PurchaseReceipt:
    asset_id: int
    buyer: str
    amount: int
    unit_price_charged: int
    total_charged: int
    funds_forwarded: int
    owner: str
    transfer_id: str
    event_id: str
    sequence: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "asset_id": self.asset_id,
            "buyer": self.buyer,
            "amount": self.amount,
            "unit_price_charged": self.unit_price_charged,
            "total_charged": self.total_charged,
            "funds_forwarded": self.funds_forwarded,
            "owner": self.owner,
            "transfer_id": self.transfer_id,
            "event_id": self.event_id,
            "sequence": self.sequence,
        }


class PurchaseSettlement:
    def __init__(
        self,
        registry: AssetRegistry,
        pricing: PricingEngine,
        stats: StatsStore,
        balances: AccessLedger,
        payments: PaymentRail,
        log: EventLog,
        locks: KeyedLocks,
        *,
        int_bits: int = DEFAULT_INT_BITS,
    ):
        self.registry = registry
        self.pricing = pricing
        self.stats = stats
        self.balances = balances
        self.payments = payments
        self.log = log
        self.locks = locks
        self.int_bits = int_bits

    def buy(self, asset_id: int, buyer: str, amount: int, funds_provided: int) -> PurchaseReceipt:
        """
        Exchange `funds_provided` for `amount` access credits.

        Raises:
            InvalidAmount: amount < 1, negative funds or empty buyer
            AssetNotFound: unknown asset
            ArithmeticOverflow: price, cost or a counter leaves the width
            InsufficientFunds: funds_provided < unit_price * amount
            TransferFailed: the payment rail failed; nothing was committed
        """
        if not buyer:
            raise InvalidAmount("buyer must be a non-empty identity")
        require_uint("amount", amount, bits=self.int_bits)
        if amount < 1:
            raise InvalidAmount(f"amount must be at least 1, got {amount}")
        require_uint("funds_provided", funds_provided, bits=self.int_bits)

        with self.locks.hold(asset_id), Transaction(self.stats, self.balances, self.log) as tx:
            before = tx.stats(asset_id)
            quote = self.pricing.quote(asset_id, stats_override=before)
            unit_price = quote.unit_price

            total_cost = checked_mul(unit_price, amount, bits=self.int_bits)
            if funds_provided < total_cost:
                logger.info(
                    "rejected purchase of %d on asset %d by %s: %d < %d",
                    amount, asset_id, buyer, funds_provided, total_cost,
                )
                raise InsufficientFunds(asset_id, total_cost, funds_provided)

            tx.set_stats(
                asset_id,
                AssetStats(
                    access_count=checked_add(before.access_count, amount, bits=self.int_bits),
                    market_value=before.market_value,
                ),
            )
            tx.set_balance(
                asset_id,
                buyer,
                checked_add(tx.balance(asset_id, buyer), amount, bits=self.int_bits),
            )

            owner = self.registry.lookup(asset_id).owner
            try:
                transfer_id = self.payments.transfer(funds_provided, owner)
            except TransferFailed as e:
                logger.warning("transfer of %d to %s failed, purchase rolled back: %s", funds_provided, owner, e)
                raise
            except Exception as e:
                logger.warning("transfer of %d to %s failed, purchase rolled back: %r", funds_provided, owner, e)
                raise TransferFailed(f"transfer of {funds_provided} to {owner} failed: {e}") from e

            tx.emit(
                create_event(
                    ACCESS_PURCHASED,
                    buyer,
                    asset_id=asset_id,
                    payload={
                        "buyer": buyer,
                        "amount": amount,
                        "unit_price": unit_price,
                        "total_cost": total_cost,
                        "funds_provided": funds_provided,
                        "owner": owner,
                        "transfer_id": transfer_id,
                    },
                )
            )
            try:
                (event,) = tx.commit()
            except OSError:
                logger.error(
                    "funds forwarded to %s (transfer %s) but purchase on asset %d was not recorded",
                    owner, transfer_id, asset_id,
                )
                raise

        self.log.notify([event])
        logger.info(
            "asset %d: %s bought %d at %d (paid %d to %s)",
            asset_id, buyer, amount, unit_price, funds_provided, owner,
        )
        return PurchaseReceipt(
            asset_id=asset_id,
            buyer=buyer,
            amount=amount,
            unit_price_charged=unit_price,
            total_charged=total_cost,
            funds_forwarded=funds_provided,
            owner=owner,
            transfer_id=transfer_id,
            event_id=event.event_id,
            sequence=event.sequence,
        )
