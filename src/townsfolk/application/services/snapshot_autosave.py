from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Iterable, List, Mapping

from townsfolk.application.services.entity_store import EntityStore
from townsfolk.application.services.event_bus import EventBus
from townsfolk.domain.events import EntityRegistered, EntityRemoved, EntityUpdated, StoreReset
from townsfolk.domain.models.entity import EntityTier
from townsfolk.domain.repositories import EntitySnapshotRepository


DEFAULT_DEBOUNCE_SECONDS = 0.5
STORE_EVENTS = (EntityRegistered, EntityUpdated, EntityRemoved, StoreReset)

logger = logging.getLogger(__name__)


class SnapshotAutosaver:
    """Coalesces store mutations into at most one snapshot save per debounce window.

    Store events only mark the autosaver dirty; the save itself happens in
    ``flush``, which the turn loop calls at the end of every turn and on shutdown.
    """

    def __init__(
        self,
        store: EntityStore,
        repository: EntitySnapshotRepository,
        *,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.store = store
        self.repository = repository
        self.debounce_seconds = max(0.0, float(debounce_seconds))
        self._clock = clock or time.monotonic
        self._dirty = False
        self._last_saved_at: float | None = None
        self.saved_version: int | None = None

    @property
    def dirty(self) -> bool:
        return self._dirty

    def mark_dirty(self, event: object = None) -> None:
        self._dirty = True

    def flush(self, *, force: bool = False) -> bool:
        if not self._dirty:
            return False
        now = self._clock()
        if not force and self._last_saved_at is not None and now - self._last_saved_at < self.debounce_seconds:
            return False

        version = self.store.version
        try:
            self.repository.save(self.store.export_snapshot())
        except Exception:
            logger.exception(
                "Snapshot save failed; will retry on next flush",
                extra={"store_version": version, "repository": type(self.repository).__name__},
            )
            return False

        self._dirty = self.store.version != version
        self._last_saved_at = now
        self.saved_version = version
        return True


def register_snapshot_autosave(event_bus: EventBus, autosaver: SnapshotAutosaver) -> Callable[[], None]:
    return event_bus.subscribe_many(STORE_EVENTS, autosaver.mark_dirty)


def load_snapshot_into(store: EntityStore, repository: EntitySnapshotRepository) -> int:
    records = repository.load()
    if not records:
        return 0
    report = store.import_snapshot(records)
    if not report.ok:
        logger.warning(
            "Snapshot restored with rejected records",
            extra={"imported": len(report.imported), "failed": len(report.failed)},
        )
    return len(report.imported)


def seed_store(store: EntityStore, static_entities: Iterable[Mapping[str, Any]]) -> List[str]:
    """Register handcrafted scenario entities into an empty store."""
    if len(store):
        return []
    seeded: List[str] = []
    for row in static_entities:
        record: Dict[str, Any] = dict(row)
        record.setdefault("tier", EntityTier.STORY_CRITICAL.value)
        metadata = dict(record.get("metadata") or {})
        metadata.setdefault("data_source", "handcrafted")
        record["metadata"] = metadata
        seeded.append(store.register(record).id)
    return seeded
