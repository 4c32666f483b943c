from __future__ import annotations

import copy
import logging
import re
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Protocol, Union

from townsfolk.application.dtos import ImportReport, StoreSnapshot, StoreStats
from townsfolk.application.services.event_bus import EventBus
from townsfolk.application.services.log_throttle import RateLimitedLogger
from townsfolk.domain.errors import EntityNotFoundError, EntityValidationError
from townsfolk.domain.events import EntityRegistered, EntityRemoved, EntityUpdated, StoreReset
from townsfolk.domain.models.entity import (
    Entity,
    EntityTier,
    EntityType,
    deep_merge,
    derive_entity_id,
    identity_patch,
    normalize_name,
)


EntityInput = Union[Entity, Mapping[str, Any]]

_VALID_TYPES = frozenset(item.value for item in EntityType)
_VALID_TIERS = frozenset(item.value for item in EntityTier)
DEFAULT_DATA_SOURCE = "mixed"


class Enricher(Protocol):
    def enrich(self, entity: Entity) -> Entity:
        ...


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_record(entity: EntityInput) -> Dict[str, Any]:
    if isinstance(entity, Entity):
        return entity.to_record()
    if not isinstance(entity, Mapping):
        raise EntityValidationError(f"Cannot register {type(entity).__name__}; expected a mapping or Entity")
    record = copy.deepcopy(dict(entity))
    if "type" not in record and "entity_type" in record:
        record["type"] = record.pop("entity_type")
    return record


class EntityStore:
    """Authoritative registry of raw entity records plus their lazily enriched views.

    ``register`` and ``update`` are the only writers. Reads by id or name return
    the enriched view, computed once per raw revision and cached.
    """

    def __init__(
        self,
        *,
        enricher: Enricher | None = None,
        event_bus: EventBus | None = None,
        clock: Callable[[], datetime] | None = None,
        log: RateLimitedLogger | None = None,
    ) -> None:
        self._enricher = enricher
        self._event_bus = event_bus
        self._clock = clock or _utc_now
        self._logger = logging.getLogger(__name__)
        self._log = log or RateLimitedLogger(self._logger)

        self._records: Dict[str, Entity] = {}
        self._ordinals: Dict[str, int] = {}
        self._next_ordinal = 0
        self._by_type: Dict[str, List[str]] = {}
        self._by_tier: Dict[str, List[str]] = {}
        self._by_name: Dict[str, str] = {}
        self._enriched: Dict[str, Entity] = {}
        self._patterns: Dict[str, re.Pattern[str]] = {}
        self._version = 0

    # -- wiring ---------------------------------------------------------

    def set_enricher(self, enricher: Enricher | None) -> None:
        self._enricher = enricher
        self._enriched.clear()

    @property
    def version(self) -> int:
        return self._version

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._records

    def count(self) -> int:
        return len(self._records)

    # -- writers --------------------------------------------------------

    def register(self, entity: EntityInput) -> Entity:
        record = _as_record(entity)
        entity_type = str(record.get("type") or "").strip()
        if not entity_type:
            raise EntityValidationError("Entity must have a type")
        if entity_type not in _VALID_TYPES:
            raise EntityValidationError(f"Unknown entity type: {entity_type}")

        entity_id = str(record.get("id") or "").strip()
        if not entity_id:
            entity_id = derive_entity_id(entity_type, record.get("name"))
        if not entity_id:
            raise EntityValidationError("Entity must have an id or a name to derive one from")
        record["id"] = entity_id
        record["type"] = entity_type

        if entity_id in self._records:
            return self._merge(entity_id, record)

        tier = str(record.get("tier") or EntityTier.BACKGROUND.value)
        if tier not in _VALID_TIERS:
            raise EntityValidationError(f"Unknown tier for {entity_id}: {tier}")
        record["tier"] = tier

        stamp = self._timestamp()
        metadata = dict(record.get("metadata") or {})
        metadata.setdefault("created", stamp)
        metadata.setdefault("last_modified", stamp)
        metadata.setdefault("version", 1)
        metadata.setdefault("data_source", DEFAULT_DATA_SOURCE)
        record["metadata"] = metadata

        stored = Entity.from_record(record)
        self._records[entity_id] = stored
        self._ordinals[entity_id] = self._next_ordinal
        self._next_ordinal += 1
        self._index(stored)
        self._enriched.pop(entity_id, None)
        self._patterns.clear()
        self._version += 1
        self._publish(EntityRegistered(entity_id=entity_id, entity_type=entity_type, store_version=self._version))
        return copy.deepcopy(stored)

    def update(self, entity_id: str, partial: Mapping[str, Any]) -> Entity:
        if entity_id not in self._records:
            raise EntityNotFoundError(entity_id)
        return self._merge(entity_id, _as_record(partial))

    def _merge(self, entity_id: str, partial: Dict[str, Any]) -> Entity:
        current = self._records[entity_id]
        patch = dict(partial)
        if str(patch.pop("id", entity_id) or entity_id) != entity_id:
            raise EntityValidationError(f"Entity id is immutable ({entity_id})")
        patched_type = patch.pop("type", None)
        if patched_type and patched_type != current.entity_type:
            raise EntityValidationError(
                f"Entity type is immutable ({entity_id}: {current.entity_type} -> {patched_type})"
            )
        patch_metadata = patch.pop("metadata", None) or {}
        if "tier" in patch and str(patch["tier"]) not in _VALID_TIERS:
            raise EntityValidationError(f"Unknown tier for {entity_id}: {patch['tier']}")

        merged = deep_merge(current.to_record(), patch)
        metadata = deep_merge(current.metadata, patch_metadata)
        metadata["created"] = current.metadata.get("created", metadata.get("created"))
        metadata["last_modified"] = self._timestamp()
        metadata["version"] = int(current.metadata.get("version", 1)) + 1
        merged["metadata"] = metadata

        updated = Entity.from_record(merged)
        self._unindex(current)
        self._records[entity_id] = updated
        self._index(updated)
        self._enriched.pop(entity_id, None)
        if updated.name != current.name:
            self._patterns.clear()
        self._version += 1
        self._publish(
            EntityUpdated(entity_id=entity_id, changed_keys=tuple(sorted(patch.keys())), store_version=self._version)
        )
        return copy.deepcopy(updated)

    def delete(self, entity_id: str) -> bool:
        entity = self._records.pop(entity_id, None)
        if entity is None:
            return False
        self._ordinals.pop(entity_id, None)
        self._unindex(entity)
        self._enriched.pop(entity_id, None)
        self._patterns.clear()
        self._version += 1
        self._publish(EntityRemoved(entity_id=entity_id, store_version=self._version))
        return True

    def clear(self) -> None:
        self._reset_state()
        self._version += 1
        self._publish(StoreReset(reason="clear", store_version=self._version))

    def _reset_state(self) -> None:
        self._records.clear()
        self._ordinals.clear()
        self._next_ordinal = 0
        self._by_type.clear()
        self._by_tier.clear()
        self._by_name.clear()
        self._enriched.clear()
        self._patterns.clear()

    # -- indices --------------------------------------------------------

    def _index(self, entity: Entity) -> None:
        type_ids = self._by_type.setdefault(entity.entity_type, [])
        if entity.id not in type_ids:
            type_ids.append(entity.id)
            type_ids.sort(key=lambda item: self._ordinals.get(item, 0))
        tier_ids = self._by_tier.setdefault(entity.tier, [])
        if entity.id not in tier_ids:
            tier_ids.append(entity.id)
            tier_ids.sort(key=lambda item: self._ordinals.get(item, 0))
        key = entity.normalized_name
        if key:
            self._by_name[key] = entity.id

    def _unindex(self, entity: Entity) -> None:
        for index, key in ((self._by_type, entity.entity_type), (self._by_tier, entity.tier)):
            ids = index.get(key, [])
            if entity.id in ids:
                ids.remove(entity.id)
            if not ids:
                index.pop(key, None)
        name_key = entity.normalized_name
        if name_key and self._by_name.get(name_key) == entity.id:
            del self._by_name[name_key]
            for other in reversed(list(self._records.values())):
                if other.id != entity.id and other.normalized_name == name_key:
                    self._by_name[name_key] = other.id
                    break

    # -- readers --------------------------------------------------------

    def get_by_id(self, entity_id: str) -> Optional[Entity]:
        raw = self._records.get(entity_id)
        if raw is None:
            return None
        enriched = self._enriched.get(entity_id)
        if enriched is None:
            enriched = self._enrich(raw)
        return copy.deepcopy(enriched)

    def get_by_name(self, name: str) -> Optional[Entity]:
        entity_id = self._resolve_name(name)
        return self.get_by_id(entity_id) if entity_id else None

    def get_raw_by_id(self, entity_id: str) -> Optional[Entity]:
        raw = self._records.get(entity_id)
        return copy.deepcopy(raw) if raw is not None else None

    def get_raw_by_name(self, name: str) -> Optional[Entity]:
        entity_id = self._resolve_name(name)
        return self.get_raw_by_id(entity_id) if entity_id else None

    def get_raw_by_exact_name(self, name: str) -> Optional[Entity]:
        """Normalized-equality lookup; never falls back to substring matches."""
        entity_id = self._by_name.get(normalize_name(name))
        return self.get_raw_by_id(entity_id) if entity_id else None

    def get_by_type(self, entity_type: str) -> List[Entity]:
        return [copy.deepcopy(self._records[item]) for item in self._by_type.get(str(entity_type), [])]

    def get_by_types(self, entity_types: Iterable[str]) -> List[Entity]:
        wanted = {str(item) for item in entity_types}
        return [copy.deepcopy(entity) for entity in self._records.values() if entity.entity_type in wanted]

    def get_by_tier(self, tier: str) -> List[Entity]:
        return [copy.deepcopy(self._records[item]) for item in self._by_tier.get(str(tier), [])]

    def get_clickable(self) -> List[Entity]:
        return [copy.deepcopy(entity) for entity in self._records.values() if entity.clickable]

    def all_raw(self) -> List[Entity]:
        return [copy.deepcopy(entity) for entity in self._records.values()]

    def is_enriched(self, entity_id: str) -> bool:
        return entity_id in self._enriched

    def _resolve_name(self, name: str) -> Optional[str]:
        wanted = normalize_name(name)
        if not wanted:
            return None
        exact = self._by_name.get(wanted)
        if exact is not None:
            return exact

        matches = [
            (len(key), self._ordinals.get(entity_id, 0), entity_id)
            for key, entity_id in self._by_name.items()
            if wanted in key or key in wanted
        ]
        if not matches:
            return None
        matches.sort()
        if len(matches) > 1:
            self._log.debug(
                "name_lookup.ambiguous",
                wanted,
                "Fuzzy name lookup matched %d entities; chose %s",
                len(matches),
                matches[0][2],
            )
        return matches[0][2]

    def search(
        self,
        *,
        entity_type: str | None = None,
        tier: str | None = None,
        name: str | None = None,
        predicate: Callable[[Entity], bool] | None = None,
    ) -> List[Entity]:
        wanted_name = normalize_name(name) if name else ""
        results: List[Entity] = []
        for entity in self._records.values():
            if entity_type and entity.entity_type != entity_type:
                continue
            if tier and entity.tier != tier:
                continue
            if wanted_name and wanted_name not in entity.normalized_name:
                continue
            if predicate is not None and not predicate(entity):
                continue
            results.append(copy.deepcopy(entity))
        return results

    def stats(self) -> StoreStats:
        return StoreStats(
            total=len(self._records),
            by_type={key: len(ids) for key, ids in self._by_type.items()},
            by_tier={key: len(ids) for key, ids in self._by_tier.items()},
            clickable=sum(1 for entity in self._records.values() if entity.clickable),
        )

    def find_entities_in_text(self, text: str) -> List[Entity]:
        if not text:
            return []
        found: List[Entity] = []
        for entity in self._records.values():
            if not entity.clickable or not entity.name.strip():
                continue
            pattern = self._patterns.get(entity.id)
            if pattern is None:
                pattern = re.compile(r"(?<!\w)" + re.escape(entity.name.strip()) + r"(?!\w)", re.IGNORECASE)
                self._patterns[entity.id] = pattern
            if pattern.search(text):
                found.append(copy.deepcopy(entity))
        found.sort(key=lambda entity: len(entity.name), reverse=True)
        return found

    # -- enrichment -----------------------------------------------------

    def _enrich(self, raw: Entity) -> Entity:
        if self._enricher is None:
            enriched = copy.deepcopy(raw)
        else:
            enriched = self._enricher.enrich(copy.deepcopy(raw))

        if raw.is_template and not enriched.is_template:
            updated = self._merge(raw.id, identity_patch(enriched))
            enriched.metadata = deep_merge(enriched.metadata, updated.metadata)
            self._logger.info(
                "Resolved template identity",
                extra={"entity_id": raw.id, "resolved_name": enriched.name},
            )

        self._enriched[raw.id] = enriched
        return enriched

    # -- snapshots ------------------------------------------------------

    def export_snapshot(self) -> List[Dict[str, Any]]:
        return [entity.to_record() for entity in self._records.values()]

    def import_snapshot(self, records: Iterable[Mapping[str, Any]]) -> ImportReport:
        report = ImportReport()
        for record in records:
            try:
                entity = self.register(record)
            except EntityValidationError as exc:
                report.failed.append((dict(record), exc))
                self._logger.exception(
                    "Snapshot record rejected",
                    extra={"entity_id": str(record.get("id") or "?")},
                )
                continue
            report.imported.append(entity.id)
        return report

    def snapshot(self) -> StoreSnapshot:
        return StoreSnapshot(version=self._version, records=tuple(self.export_snapshot()))

    def restore(self, snapshot: StoreSnapshot) -> None:
        self._reset_state()
        for record in snapshot.records:
            entity = Entity.from_record(record)
            self._records[entity.id] = entity
            self._ordinals[entity.id] = self._next_ordinal
            self._next_ordinal += 1
            self._index(entity)
        self._version += 1
        self._publish(StoreReset(reason="restore", store_version=self._version))

    # -- helpers --------------------------------------------------------

    def _timestamp(self) -> str:
        return self._clock().isoformat()

    def _publish(self, event: object) -> None:
        if self._event_bus is not None:
            self._event_bus.publish(event)
