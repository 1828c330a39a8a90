"""Core reconciliation and scheduling components for List Sync."""

from list_sync.core.cancellation import CancellationToken
from list_sync.core.engine import CycleResult, SyncEngine
from list_sync.core.layout import MirrorLayout
from list_sync.core.reconcile import Classification, ReconcileStats, ReconciliationEngine
from list_sync.core.scheduler import SyncWorker
from list_sync.core.state import SnapshotDocument, SnapshotStore, TrackingEntry

__all__ = [
    "CancellationToken",
    "Classification",
    "CycleResult",
    "MirrorLayout",
    "ReconcileStats",
    "ReconciliationEngine",
    "SnapshotDocument",
    "SnapshotStore",
    "SyncEngine",
    "SyncWorker",
    "TrackingEntry",
]
