from __future__ import annotations

import copy
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional

from townsfolk.application.services.entity_store import EntityStore
from townsfolk.domain.errors import EntityNotFoundError
from townsfolk.domain.models.entity import Entity
from townsfolk.domain.models.relationship import Relationship, RelationshipStatus


DEFAULT_MAX_INTERACTIONS = 10
MEMORY_CONTEXT_SIZE = 5
TREND_WINDOW = 5
NO_MEMORY_TEXT = "No previous interactions with this person."

Summarizer = Callable[[Dict[str, Any]], str]


def _today() -> str:
    return datetime.now(timezone.utc).date().isoformat()


class RelationshipService:
    """Relationship edges and bounded interaction memory, stored on the entities themselves."""

    def __init__(
        self,
        store: EntityStore,
        *,
        clock: Callable[[], str] | None = None,
        summarizer: Summarizer | None = None,
    ) -> None:
        self.store = store
        self._clock = clock or _today
        self._summarizer = summarizer

    def _raw(self, entity_id: str) -> Entity:
        entity = self.store.get_raw_by_id(entity_id)
        if entity is None:
            raise EntityNotFoundError(entity_id)
        return entity

    # -- relationships -----------------------------------------------------

    def get(self, entity_id: str, other_id: str) -> Optional[Relationship]:
        edges = self._raw(entity_id).facet("relationships")
        if other_id not in edges:
            return None
        return Relationship.from_dict(other_id, edges[other_id])

    def edges(self, entity_id: str) -> List[Relationship]:
        edges = self._raw(entity_id).facet("relationships")
        return [Relationship.from_dict(other_id, payload) for other_id, payload in edges.items()]

    def _save(self, entity_id: str, relationship: Relationship) -> Relationship:
        self.store.update(entity_id, {"relationships": {relationship.other_id: relationship.to_dict()}})
        return relationship

    def adjust(
        self,
        entity_id: str,
        other_id: str,
        delta: int,
        reason: str = "",
        date: str | None = None,
    ) -> Relationship:
        relationship = self.get(entity_id, other_id) or Relationship(other_id=other_id)
        relationship.apply_delta(int(delta), reason=reason, date=date or self._clock())
        return self._save(entity_id, relationship)

    def set_debt(self, entity_id: str, other_id: str, amount: int) -> Relationship:
        relationship = self.get(entity_id, other_id) or Relationship(other_id=other_id)
        relationship.debt = int(amount)
        return self._save(entity_id, relationship)

    def set_type(self, entity_id: str, other_id: str, relationship_type: str) -> Relationship:
        relationship = self.get(entity_id, other_id) or Relationship(other_id=other_id)
        relationship.type = relationship_type
        return self._save(entity_id, relationship)

    def query(
        self,
        entity_id: str,
        *,
        relationship_type: str | None = None,
        status: str | None = None,
        min_value: int | None = None,
        sort_by_value: bool = False,
    ) -> List[Relationship]:
        results = self.edges(entity_id)
        if relationship_type:
            results = [rel for rel in results if rel.type == relationship_type]
        if status:
            results = [rel for rel in results if rel.status == status]
        if min_value is not None:
            results = [rel for rel in results if rel.value >= min_value]
        if sort_by_value:
            results.sort(key=lambda rel: rel.value, reverse=True)
        return results

    def allies(self, entity_id: str) -> List[str]:
        return [rel.other_id for rel in self.query(entity_id, status=RelationshipStatus.ALLIED.value)]

    def enemies(self, entity_id: str) -> List[str]:
        return [rel.other_id for rel in self.query(entity_id, status=RelationshipStatus.HOSTILE.value)]

    def friends(self, entity_id: str) -> List[str]:
        return [rel.other_id for rel in self.query(entity_id, min_value=60, sort_by_value=True)]

    def family(self, entity_id: str) -> List[str]:
        return [rel.other_id for rel in self.query(entity_id, relationship_type="family")]

    def gossip(self, speaker_id: str, target_id: str) -> Optional[str]:
        rel = self.get(speaker_id, target_id)
        if rel is None:
            return None
        if rel.status == RelationshipStatus.HOSTILE.value:
            return f"I have no love for {target_id}. {rel.reason or 'We have our differences.'}"
        if rel.status == RelationshipStatus.ALLIED.value:
            return f"{target_id} is a dear friend of mine. {rel.reason or 'We have known each other for years.'}"
        if rel.type == "family":
            return f"{target_id} is family. {rel.reason}".strip()
        if rel.debt > 0:
            return f"{target_id} owes me {rel.debt} reales."
        if rel.debt < 0:
            return f"I owe {target_id} {abs(rel.debt)} reales."
        return None

    # -- interaction memory --------------------------------------------

    def _memory(self, entity: Entity) -> Dict[str, Any]:
        memory = copy.deepcopy(entity.facet("memory"))
        memory.setdefault("interactions", [])
        memory.setdefault("max_interactions", DEFAULT_MAX_INTERACTIONS)
        memory.setdefault("archived_summary", "")
        return memory

    def record_interaction(self, entity_id: str, interaction: Mapping[str, Any]) -> Dict[str, Any]:
        entity = self._raw(entity_id)
        memory = self._memory(entity)
        row = dict(interaction)
        row.setdefault("date", self._clock())
        memory["interactions"].append(row)

        limit = max(1, int(memory["max_interactions"]))
        while len(memory["interactions"]) > limit:
            removed = memory["interactions"].pop(0)
            if self._summarizer is not None:
                memory["archived_summary"] = self._summarizer(
                    {"removed_interaction": removed, "current_summary": memory["archived_summary"]}
                )
                continue
            line = f"{removed.get('date')}: {removed.get('summary', '')}"
            current = memory["archived_summary"]
            memory["archived_summary"] = f"{current}; {line}" if current else line

        self.store.update(entity_id, {"memory": memory})
        return memory

    def memory_context(self, entity_id: str) -> str:
        memory = self._memory(self._raw(entity_id))
        interactions = memory["interactions"]
        if not interactions:
            return NO_MEMORY_TEXT
        lines = ["Recent interactions:"]
        for row in interactions[-MEMORY_CONTEXT_SIZE:]:
            lines.append(f"- {row.get('date')} ({row.get('turn_number', '?')}): {row.get('summary', '')}")
        if memory["archived_summary"]:
            lines.append("")
            lines.append(f"Earlier interactions: {memory['archived_summary']}")
        return "\n".join(lines)

    def relationship_trend(self, entity_id: str) -> str:
        interactions = self._memory(self._raw(entity_id))["interactions"]
        if len(interactions) < 2:
            return "stable"
        deltas = [float(row.get("delta") or 0) for row in interactions[-TREND_WINDOW:]]
        average = sum(deltas) / len(deltas)
        if average > 2:
            return "improving"
        if average < -2:
            return "declining"
        return "stable"

    def clear_memory(self, entity_id: str) -> None:
        self._raw(entity_id)
        self.store.update(
            entity_id,
            {"memory": {"interactions": [], "max_interactions": DEFAULT_MAX_INTERACTIONS, "archived_summary": ""}},
        )
