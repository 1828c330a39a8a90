"""
Sync Engine - one reconciliation cycle for one collection.

A cycle is strictly sequential:
1. Load the previous snapshot
2. Acquire an access token
3. Stream list items; classify, record and mirror each one
4. Write deletion markers for items that disappeared
5. Persist the new snapshot
6. Report statistics

Any error aborts the cycle; the scheduler retries it later. Cancellation is
checked before every item and before every deletion marker, and a cancelled
cycle never persists its (incomplete) snapshot.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Protocol

from list_sync.config import Settings
from list_sync.connectors.auth import TokenProvider
from list_sync.connectors.mirror import MirrorWriter
from list_sync.connectors.sharepoint import record_identity, record_modified
from list_sync.core.cancellation import CancellationToken
from list_sync.core.layout import MirrorLayout, content_type_for, sanitize_file_name
from list_sync.core.reconcile import (
    Classification,
    Clock,
    DeletedItem,
    ReconcileStats,
    ReconciliationEngine,
    utc_now,
)
from list_sync.core.state import SnapshotStore

logger = logging.getLogger(__name__)

# Log one line per this many skipped unchanged items
SKIP_LOG_EVERY = 100


class ListSource(Protocol):
    """What the engine needs from the record ingestion side."""

    def iter_items(self, list_name: str, token: str) -> AsyncIterator[dict[str, Any]]: ...

    async def get_attachments(
        self, list_name: str, item_id: str | int, token: str
    ) -> list[dict[str, Any]]: ...

    async def download_attachment(
        self, list_name: str, item_id: str | int, file_name: str, token: str
    ) -> bytes: ...


@dataclass
class CycleResult:
    """Outcome of one sync cycle."""

    collection: str
    stats: ReconcileStats = field(default_factory=ReconcileStats)
    cancelled: bool = False
    snapshot_saved: bool = False
    processed: int = 0
    uploaded: int = 0
    skipped: int = 0
    attachments_uploaded: int = 0
    markers_written: int = 0
    started_at: str = ""
    finished_at: str = ""
    start_time: float = 0.0
    end_time: float = 0.0

    @property
    def duration_seconds(self) -> float:
        """Duration in seconds."""
        if self.end_time and self.start_time:
            return self.end_time - self.start_time
        if self.start_time:
            return time.time() - self.start_time
        return 0.0


# Progress callback type
ProgressCallback = Callable[[CycleResult], None]


class SyncEngine:
    """
    Drives a reconciliation cycle end to end.

    The source, mirror and token provider are built by the caller and
    reused across cycles; reconciliation state is not. Each cycle gets a
    fresh ReconciliationEngine loaded from the mirror.

    Example:
        engine = SyncEngine(settings, source, mirror, tokens)
        result = await engine.run_cycle(CancellationToken())
        print(result.stats.inserts, result.stats.deletes)
    """

    def __init__(
        self,
        settings: Settings,
        source: ListSource,
        mirror: MirrorWriter,
        tokens: TokenProvider,
        clock: Clock | None = None,
    ) -> None:
        """
        Initialize sync engine.

        Args:
            settings: Application settings
            source: List source adapter
            mirror: Destination store
            tokens: Access token provider for the source
            clock: Time source (tests pin it)
        """
        self.settings = settings
        self.source = source
        self.mirror = mirror
        self.tokens = tokens
        self.clock = clock or utc_now
        self.collection = settings.list_name
        self.layout = MirrorLayout(settings.prefix, self.collection)
        self.store = SnapshotStore(mirror, settings.prefix)

    def _now_iso(self) -> str:
        return self.clock().isoformat().replace("+00:00", "Z")

    async def run_cycle(
        self,
        token: CancellationToken,
        on_progress: ProgressCallback | None = None,
    ) -> CycleResult:
        """
        Run one full cycle.

        Args:
            token: Cancellation token checked between items and phases
            on_progress: Optional callback after every processed item

        Returns:
            CycleResult with statistics and what was written
        """
        result = CycleResult(
            collection=self.collection,
            started_at=self._now_iso(),
            start_time=time.time(),
        )
        logger.info("Starting sync of '%s' at %s", self.collection, result.started_at)

        reconciler = ReconciliationEngine(clock=self.clock)
        reconciler.load(await self.store.load(self.collection))

        logger.info("Getting access token...")
        credential = await self.tokens.get_token()
        logger.info("Access token acquired.")

        logger.info("Fetching items from list '%s'...", self.collection)
        async for item in self.source.iter_items(self.collection, credential):
            if token.cancelled:
                logger.warning("Shutdown requested, stopping item processing...")
                result.cancelled = True
                break

            await self._process_item(item, credential, reconciler, result)
            result.processed += 1
            if on_progress:
                on_progress(result)

        if not result.cancelled:
            logger.info("Found %d items.", result.processed)
            await self._process_deletions(reconciler.deletions(), token, result)

        if token.cancelled:
            result.cancelled = True
            logger.warning("Cycle interrupted; previous snapshot left in place.")
        else:
            logger.info("Saving sync state...")
            await self.store.save(
                self.collection, reconciler.snapshot(), last_sync=self._now_iso()
            )
            result.snapshot_saved = True

        result.stats = reconciler.stats()
        if result.cancelled:
            # Only markers actually written count as deletes
            result.stats.deletes = result.markers_written
        result.finished_at = self._now_iso()
        result.end_time = time.time()
        logger.info(
            "Sync of '%s' finished: %s",
            self.collection,
            result.stats.to_dict(),
            extra={"stats": result.stats.to_dict(), "cancelled": result.cancelled},
        )
        return result

    async def _process_item(
        self,
        item: dict[str, Any],
        credential: str,
        reconciler: ReconciliationEngine,
        result: CycleResult,
    ) -> None:
        """Classify, record and (unless skipped) mirror one list item."""
        item_id = record_identity(item)
        modified = record_modified(item) or self._now_iso()

        operation = reconciler.classify(item_id, modified)

        attachments = await self.source.get_attachments(
            self.collection, item_id, credential
        )

        # Must happen for every observed item, skipped or not, or the next
        # cycle reports it as deleted.
        reconciler.record(item_id, modified, len(attachments))

        if operation is Classification.UNCHANGED and self.settings.sync.skip_unchanged:
            result.skipped += 1
            if result.skipped % SKIP_LOG_EVERY == 0:
                logger.info("  Skipped %d unchanged items so far...", result.skipped)
            else:
                logger.debug("  Skipped unchanged item %s", item_id)
            return

        logger.info("Processing item %s [%s]...", item_id, operation.value.upper())
        logger.debug("  Found %d attachments for item %s.", len(attachments), item_id)

        row = {
            **item,
            "_sync_metadata": {
                "operation_type": operation.value,
                "synced_at": self._now_iso(),
                "attachment_count": len(attachments),
                "list_name": self.collection,
            },
        }
        row_key = self.layout.row_key(item_id)
        await self.mirror.put_json(row_key, row)
        logger.debug("  Uploaded row data to %s", self.mirror.describe_key(row_key))

        attachments_meta = []
        for attachment in attachments:
            file_name = attachment.get("FileName", "")
            content = await self.source.download_attachment(
                self.collection, item_id, file_name, credential
            )

            key = self.layout.attachment_key(item_id, file_name)
            await self.mirror.put_object(key, content, content_type_for(file_name))
            result.attachments_uploaded += 1
            logger.debug("    Uploaded attachment to %s", self.mirror.describe_key(key))

            server_relative_url = attachment.get("ServerRelativeUrl", "")
            attachments_meta.append(
                {
                    "list_name": self.collection,
                    "item_id": item_id,
                    "file_name": file_name,
                    "safe_file_name": sanitize_file_name(file_name),
                    "server_relative_url": server_relative_url,
                    "download_url": f"{self.settings.site_origin}{server_relative_url}",
                    "mirror_key": key,
                    "mirror_url": self.mirror.describe_key(key),
                }
            )

        # Written even when there are no attachments
        await self.mirror.put_json(self.layout.attachments_meta_key(item_id), attachments_meta)
        result.uploaded += 1

    async def _process_deletions(
        self,
        deleted: list[DeletedItem],
        token: CancellationToken,
        result: CycleResult,
    ) -> None:
        """Write one deletion marker per item that disappeared from the source."""
        if not deleted:
            return

        logger.info("Processing %d deleted items...", len(deleted))
        for item in deleted:
            if token.cancelled:
                logger.warning("Shutdown requested, stopping deletion markers...")
                return

            now = self._now_iso()
            marker = {
                "item_id": item.item_id,
                "_sync_metadata": {
                    "operation_type": Classification.DELETE.value,
                    "synced_at": now,
                    "deleted_at": now,
                    "last_seen": item.entry.last_seen,
                    "last_modified": item.entry.modified,
                    "list_name": self.collection,
                },
                "note": "This item was present in the previous sync but is now deleted from the source list",
            }
            key = self.layout.deletion_marker_key(item.item_id)
            await self.mirror.put_json(key, marker)
            result.markers_written += 1
            logger.info("  Created deletion marker: %s", self.mirror.describe_key(key))
