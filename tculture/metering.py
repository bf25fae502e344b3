"""
Consumption metering.

Each consume() call debits exactly one access credit and emits an
access.consumed event. Whatever the credit unlocks (a decryption key, a
download URL) is handled by subscribers of that event, not here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from .balances import AccessLedger
from .errors import InsufficientAccessRights, InvalidAmount
from .ledger.event_log import EventLog
from .ledger.events import ACCESS_CONSUMED, create_event
from .locks import KeyedLocks
from .registry import AssetRegistry
from .stats import StatsStore
from .transaction import Transaction

logger = logging.getLogger(__name__)

DEFAULT_ACTION_TYPE = "VIEW_3D_MODEL"


@dataclass(frozen=True)
class ConsumptionReceipt:
    asset_id: int
    account: str
    action_type: str
    remaining: int
    event_id: str
    sequence: int
    timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "asset_id": self.asset_id,
            "account": self.account,
            "action_type": self.action_type,
            "remaining": self.remaining,
            "event_id": self.event_id,
            "sequence": self.sequence,
            "timestamp": self.timestamp.isoformat(),
        }


class ConsumptionMeter:
    def __init__(
        self,
        registry: AssetRegistry,
        stats: StatsStore,
        balances: AccessLedger,
        log: EventLog,
        locks: KeyedLocks,
    ):
        self.registry = registry
        self.stats = stats
        self.balances = balances
        self.log = log
        self.locks = locks

    def consume(
        self,
        asset_id: int,
        account: str,
        action_type: str = DEFAULT_ACTION_TYPE,
    ) -> ConsumptionReceipt:
        """
        Spend one access credit.

        Raises:
            AssetNotFound: unknown asset
            InsufficientAccessRights: balance is zero
        """
        if not action_type:
            raise InvalidAmount("action_type must be a non-empty label")
        self.registry.lookup(asset_id)

        with self.locks.hold(asset_id), Transaction(self.stats, self.balances, self.log) as tx:
            balance = tx.balance(asset_id, account)
            if balance < 1:
                logger.info("rejected %s on asset %d by %s: no credits", action_type, asset_id, account)
                raise InsufficientAccessRights(asset_id, account)

            remaining = balance - 1
            tx.set_balance(asset_id, account, remaining)
            tx.emit(
                create_event(
                    ACCESS_CONSUMED,
                    account,
                    asset_id=asset_id,
                    payload={"account": account, "action_type": action_type, "remaining": remaining},
                )
            )
            (event,) = tx.commit()

        self.log.notify([event])
        logger.info("asset %d: %s consumed 1 credit for %s (%d left)", asset_id, account, action_type, remaining)
        return ConsumptionReceipt(
            asset_id=asset_id,
            account=account,
            action_type=action_type,
            remaining=remaining,
            event_id=event.event_id,
            sequence=event.sequence,
            timestamp=event.timestamp,
        )
