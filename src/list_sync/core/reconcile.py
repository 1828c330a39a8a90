"""
Reconciliation Engine - three-way diff between snapshots.

Holds the snapshot persisted by the last successful cycle (``previous``)
and the one being built by the current cycle (``current``), and derives:
- insert / update / unchanged for every observed record
- deletions by omission (in previous, never recorded in current)
- statistics recomputed from the final state
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Mapping

from list_sync.core.state import TrackingEntry


class Classification(str, Enum):
    """Outcome of comparing one record against the previous snapshot."""

    INSERT = "insert"
    UPDATE = "update"
    UNCHANGED = "unchanged"
    DELETE = "delete"


@dataclass
class ReconcileStats:
    """Counts derived from the recorded state of a cycle."""

    inserts: int = 0
    updates: int = 0
    unchanged: int = 0
    deletes: int = 0
    total: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass
class DeletedItem:
    """An identity present in the previous snapshot but not observed this cycle."""

    item_id: str
    entry: TrackingEntry


Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime | None:
    """
    Parse a source timestamp into an aware UTC datetime.

    Accepts datetime instances and ISO-8601 strings with a ``Z`` suffix,
    an explicit offset, or no zone at all (taken as UTC). Returns None for
    anything else.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def timestamp_text(value: Any) -> str | None:
    """Text stored in the snapshot for an observed timestamp, or None when absent."""
    if isinstance(value, datetime):
        return value.isoformat()
    if value is None or value == "":
        return None
    return str(value)


class ReconciliationEngine:
    """
    In-memory classifier for one cycle of one collection.

    ``previous`` is replaced wholesale by ``load`` and never mutated
    afterwards; ``current`` only grows. Neither map is shared with any
    other component, and an engine is discarded at the end of its cycle.

    Example:
        engine = ReconciliationEngine()
        engine.load(await store.load("Requests"))

        for item in items:
            kind = engine.classify(item["Id"], item["Modified"])
            engine.record(item["Id"], item["Modified"])

        for deleted in engine.deletions():
            ...
        await store.save("Requests", engine.snapshot())
    """

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or utc_now
        self._previous: dict[str, TrackingEntry] = {}
        self._current: dict[str, TrackingEntry] = {}

    @property
    def previous(self) -> Mapping[str, TrackingEntry]:
        return self._previous

    @property
    def current(self) -> Mapping[str, TrackingEntry]:
        return self._current

    def load(self, previous: Mapping[Any, TrackingEntry] | None) -> None:
        """Replace the previous snapshot. None means first run."""
        self._previous = {str(k): v for k, v in (previous or {}).items()}

    def classify(self, identity: str | int, observed: Any) -> Classification:
        """
        Classify a record against the previous snapshot.

        Pure: reads only ``previous`` and the clock. A missing observed
        timestamp is taken as "now". When either side does not parse, the
        raw values are compared instead: equal is ``unchanged``, anything
        else is ``update``.
        """
        entry = self._previous.get(str(identity))
        if entry is None:
            return Classification.INSERT

        text = timestamp_text(observed)
        observed_at = self._clock() if text is None else parse_timestamp(observed)
        stored_at = parse_timestamp(entry.modified)
        if observed_at is None or stored_at is None:
            if text is not None and text == entry.modified:
                return Classification.UNCHANGED
            return Classification.UPDATE
        if observed_at > stored_at:
            return Classification.UPDATE
        return Classification.UNCHANGED

    def record(
        self,
        identity: str | int,
        observed: Any,
        attachment_count: int = 0,
    ) -> TrackingEntry:
        """Upsert the tracking entry for an observed record."""
        entry = TrackingEntry(
            modified=timestamp_text(observed) or self._now_iso(),
            attachment_count=attachment_count,
            last_seen=self._now_iso(),
        )
        self._current[str(identity)] = entry
        return entry

    def deletions(self) -> list[DeletedItem]:
        """
        Identities in previous that were never recorded this cycle.

        Only meaningful once every record of the cycle has been recorded.
        """
        return [
            DeletedItem(item_id=item_id, entry=entry)
            for item_id, entry in self._previous.items()
            if item_id not in self._current
        ]

    def snapshot(self) -> dict[str, TrackingEntry]:
        """Copy of the current snapshot, ready to persist."""
        return dict(self._current)

    def stats(self) -> ReconcileStats:
        """Recompute counts from what was recorded, not from what was uploaded."""
        stats = ReconcileStats(
            deletes=len(self.deletions()),
            total=len(self._current),
        )
        for item_id, entry in self._current.items():
            kind = self.classify(item_id, entry.modified)
            if kind is Classification.INSERT:
                stats.inserts += 1
            elif kind is Classification.UPDATE:
                stats.updates += 1
            else:
                stats.unchanged += 1
        return stats

    def _now_iso(self) -> str:
        return self._clock().astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
