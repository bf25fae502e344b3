"""
Asset registry: immutable provenance plus the current-owner relation.

The access ledger only ever calls `lookup()`. LocalAssetRegistry is the
in-process implementation used by the CLI and the tests; it records mints
and ownership changes in the same event log as the access ledger.
Listeners are notified once the record is stored and the registry lock
is released.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Iterator, Protocol

from .errors import AssetNotFound, InvalidAmount, Unauthorized
from .ledger.event_log import EventLog
from .ledger.events import ASSET_MINTED, ASSET_TRANSFERRED, create_event
from .util import DEFAULT_INT_BITS, require_uint

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AssetRecord:
    asset_id: int
    cultural_value: int
    creator: str
    created_at: datetime
    owner: str
    uri: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "asset_id": self.asset_id,
            "cultural_value": self.cultural_value,
            "creator": self.creator,
            "created_at": self.created_at.isoformat(),
            "owner": self.owner,
            "uri": self.uri,
        }


class AssetRegistry(Protocol):
    """What the access ledger needs from a registry."""

    def lookup(self, asset_id: int) -> AssetRecord:
        """
        Return the asset's record.

        Raises:
            AssetNotFound: if no asset has this id
        """
        ...


class LocalAssetRegistry:
    """
    Event-logged registry with sequential integer asset ids.

    Args:
        log: Event log receiving asset.minted / asset.transferred
        minter: If set, only this identity may mint
        records: Records recovered by replaying the log
    """

    def __init__(
        self,
        log: EventLog,
        *,
        minter: str | None = None,
        records: dict[int, AssetRecord] | None = None,
        int_bits: int = DEFAULT_INT_BITS,
    ):
        self.log = log
        self.minter = minter
        self.int_bits = int_bits
        self._lock = threading.Lock()
        self._records: dict[int, AssetRecord] = dict(records or {})
        self._next_id = max(self._records) + 1 if self._records else 0

    def lookup(self, asset_id: int) -> AssetRecord:
        with self._lock:
            record = self._records.get(asset_id)
        if record is None:
            raise AssetNotFound(asset_id)
        return record

    def __contains__(self, asset_id: object) -> bool:
        with self._lock:
            return asset_id in self._records

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def assets(self) -> Iterator[AssetRecord]:
        """Records in id order."""
        with self._lock:
            records = [self._records[k] for k in sorted(self._records)]
        yield from records

    def mint(
        self,
        creator: str,
        cultural_value: int,
        uri: str = "",
        *,
        owner: str | None = None,
    ) -> AssetRecord:
        """Create a new asset. cultural_value is fixed from here on."""
        if self.minter is not None and creator != self.minter:
            logger.warning("rejected mint by %s (minter is %s)", creator, self.minter)
            raise Unauthorized(creator, "mint assets")
        if not creator:
            raise InvalidAmount("creator must be a non-empty identity")
        require_uint("cultural_value", cultural_value, bits=self.int_bits)

        owner = owner or creator
        with self._lock:
            asset_id = self._next_id
            event = create_event(
                ASSET_MINTED,
                creator,
                asset_id=asset_id,
                payload={
                    "creator": creator,
                    "owner": owner,
                    "cultural_value": cultural_value,
                    "uri": uri,
                },
            )
            stored = self.log.append(event, notify=False)
            record = AssetRecord(
                asset_id=asset_id,
                cultural_value=cultural_value,
                creator=creator,
                created_at=stored.timestamp,
                owner=owner,
                uri=uri,
            )
            self._records[asset_id] = record
            self._next_id += 1

        self.log.notify([stored])
        logger.info("minted asset %d for %s (cultural_value=%d)", asset_id, owner, cultural_value)
        return record

    def transfer_ownership(self, caller: str, asset_id: int, new_owner: str) -> AssetRecord:
        """Hand an asset to `new_owner`. Only the current owner may do this."""
        if not new_owner:
            raise InvalidAmount("new_owner must be a non-empty identity")

        with self._lock:
            record = self._records.get(asset_id)
            if record is None:
                raise AssetNotFound(asset_id)
            if caller != record.owner:
                logger.warning("rejected transfer of asset %d by %s", asset_id, caller)
                raise Unauthorized(caller, f"transfer asset {asset_id}")

            stored = self.log.append(
                create_event(
                    ASSET_TRANSFERRED,
                    caller,
                    asset_id=asset_id,
                    payload={"previous_owner": record.owner, "owner": new_owner},
                ),
                notify=False,
            )
            updated = replace(record, owner=new_owner)
            self._records[asset_id] = updated

        self.log.notify([stored])
        logger.info("asset %d transferred from %s to %s", asset_id, record.owner, new_owner)
        return updated
