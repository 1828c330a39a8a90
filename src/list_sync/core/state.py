"""
Snapshot Store - durable per-collection sync state.

One JSON document per collection, stored in the mirror itself at
``{prefix}list={collection}/_state/sync_state.json``:

    {
      "collectionName": "Requests",
      "lastSyncTimestamp": "2024-02-01T10:00:00Z",
      "itemCount": 2,
      "items": [["1", {"modified": ..., "attachmentCount": 0, "lastSeen": ...}], ...]
    }

Items are stored as an ordered list of pairs so identities always come back
as strings. Each save replaces the whole document.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Mapping

from list_sync.core.layout import MirrorLayout
from list_sync.errors import ObjectNotFoundError, SnapshotCorruptError

if TYPE_CHECKING:
    from list_sync.connectors.mirror import MirrorWriter

logger = logging.getLogger(__name__)


@dataclass
class TrackingEntry:
    """What the last cycle knew about one record."""

    modified: str
    attachment_count: int = 0
    last_seen: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "modified": self.modified,
            "attachmentCount": self.attachment_count,
            "lastSeen": self.last_seen,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TrackingEntry":
        """Create from dictionary; raises SnapshotCorruptError on bad shape."""
        if not isinstance(data, Mapping):
            raise SnapshotCorruptError(f"Tracking entry is not an object: {data!r}")

        modified = data.get("modified", data.get("lastKnownModifiedTimestamp"))
        if modified is None:
            raise SnapshotCorruptError(f"Tracking entry has no modified time: {data!r}")

        try:
            attachment_count = int(data.get("attachmentCount", 0) or 0)
        except (TypeError, ValueError) as e:
            raise SnapshotCorruptError(f"Bad attachmentCount: {data!r}") from e

        return cls(
            modified=str(modified),
            attachment_count=attachment_count,
            last_seen=str(data.get("lastSeen", data.get("lastSeenTimestamp", "")) or ""),
        )


@dataclass
class SnapshotDocument:
    """A persisted snapshot for one collection."""

    collection_name: str
    last_sync: str
    items: dict[str, TrackingEntry] = field(default_factory=dict)

    @property
    def item_count(self) -> int:
        return len(self.items)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "collectionName": self.collection_name,
            "lastSyncTimestamp": self.last_sync,
            "itemCount": self.item_count,
            "items": [[item_id, entry.to_dict()] for item_id, entry in self.items.items()],
        }

    @classmethod
    def from_dict(cls, data: Any) -> "SnapshotDocument":
        """Create from dictionary; raises SnapshotCorruptError on bad shape."""
        if not isinstance(data, dict):
            raise SnapshotCorruptError("Snapshot document is not an object")

        raw_items = data.get("items", [])
        if not isinstance(raw_items, list):
            raise SnapshotCorruptError("Snapshot items is not a list of pairs")

        items: dict[str, TrackingEntry] = {}
        for pair in raw_items:
            if not isinstance(pair, (list, tuple)) or len(pair) != 2:
                raise SnapshotCorruptError(f"Snapshot item is not a pair: {pair!r}")
            item_id, entry = pair
            items[str(item_id)] = TrackingEntry.from_dict(entry)

        return cls(
            collection_name=str(data.get("collectionName", "")),
            last_sync=str(data.get("lastSyncTimestamp", "")),
            items=items,
        )


class SnapshotStore:
    """
    Load and save collection snapshots through a mirror.

    Loading fails soft: a missing document is a first run and a malformed
    one is logged and replaced by an empty snapshot, which costs delete
    detection for that one cycle. Transport failures are not swallowed.

    Example:
        store = SnapshotStore(mirror, prefix="raw/")
        previous = await store.load("Requests")
        ...
        await store.save("Requests", engine.snapshot())
    """

    def __init__(self, mirror: MirrorWriter, prefix: str = "") -> None:
        self.mirror = mirror
        self.prefix = prefix

    def state_key(self, collection: str) -> str:
        """Object key of the snapshot for a collection."""
        return MirrorLayout(self.prefix, collection).state_key

    async def describe(self, collection: str) -> SnapshotDocument | None:
        """
        Read the persisted document without any recovery.

        Returns None when no snapshot exists; raises SnapshotCorruptError
        if the stored blob cannot be decoded.
        """
        key = self.state_key(collection)
        if not await self.mirror.object_exists(key):
            return None
        try:
            raw = await self.mirror.get_object(key)
        except ObjectNotFoundError:
            return None

        try:
            data = json.loads(raw)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise SnapshotCorruptError(f"Snapshot is not valid JSON: {e}") from e
        return SnapshotDocument.from_dict(data)

    async def load(self, collection: str) -> dict[str, TrackingEntry]:
        """Load the previous snapshot, or an empty one on first run / corruption."""
        try:
            document = await self.describe(collection)
        except SnapshotCorruptError as e:
            logger.warning(
                "Could not load previous state for '%s', treating as first run: %s",
                collection,
                e,
            )
            return {}

        if document is None:
            logger.info("No previous state found for '%s' - this is the first run.", collection)
            return {}

        logger.info("Loaded previous state: %d items tracked.", document.item_count)
        return document.items

    async def save(
        self,
        collection: str,
        items: Mapping[str, TrackingEntry],
        last_sync: str | None = None,
    ) -> SnapshotDocument:
        """Persist ``items`` as the complete snapshot for a collection."""
        document = SnapshotDocument(
            collection_name=collection,
            last_sync=last_sync
            or datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            items={str(k): v for k, v in items.items()},
        )
        await self.mirror.put_json(self.state_key(collection), document.to_dict())
        logger.info("Saved current state: %d items.", document.item_count)
        return document
