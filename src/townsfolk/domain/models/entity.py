from __future__ import annotations

import copy
import re
import unicodedata
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping


TEMPLATE_SENTINEL = "[this is a generic"

_LEADING_ARTICLE_RE = re.compile(r"^(a|an|the)\s+")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9\s]")
_WHITESPACE_RE = re.compile(r"\s+")
_CORE_KEYS = ("id", "type", "tier", "name", "metadata")


class EntityType(str, Enum):
    NPC = "npc"
    PATIENT = "patient"
    ITEM = "item"
    LOCATION = "location"
    QUEST = "quest"
    ANTAGONIST = "antagonist"
    STATE = "state"


class EntityTier(str, Enum):
    STORY_CRITICAL = "story-critical"
    RECURRING = "recurring"
    BACKGROUND = "background"


PERSON_TYPES = frozenset({EntityType.NPC.value, EntityType.PATIENT.value})


def normalize_name(name: object) -> str:
    """Case-fold, strip accents and a leading article, keep only [a-z0-9 ]."""
    if not name:
        return ""
    decomposed = unicodedata.normalize("NFKD", str(name))
    folded = "".join(ch for ch in decomposed if not unicodedata.combining(ch)).casefold().strip()
    folded = _LEADING_ARTICLE_RE.sub("", folded)
    cleaned = _NON_ALNUM_RE.sub("", folded)
    return _WHITESPACE_RE.sub(" ", cleaned).strip()


def is_template_name(name: object) -> bool:
    return TEMPLATE_SENTINEL in str(name or "").lower()


def template_archetype(name: str) -> str:
    return str(name or "").split("[", 1)[0].strip()


def deep_merge(base: Mapping[str, Any], patch: Mapping[str, Any]) -> Dict[str, Any]:
    """Return a new dict; nested mappings merge, everything else in ``patch`` overwrites."""
    merged: Dict[str, Any] = copy.deepcopy(dict(base))
    for key, value in patch.items():
        current = merged.get(key)
        if isinstance(value, Mapping) and isinstance(current, Mapping):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


@dataclass
class Entity:
    id: str
    entity_type: str
    name: str = ""
    tier: str = EntityTier.BACKGROUND.value
    attributes: Dict[str, Any] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_template(self) -> bool:
        if self.attributes.get("is_template") is False:
            return False
        return is_template_name(self.name)

    @property
    def normalized_name(self) -> str:
        return normalize_name(self.name)

    @property
    def gender(self) -> str | None:
        value = self.attributes.get("gender") or self.facet("appearance").get("gender")
        return str(value) if value else None

    @property
    def clickable(self) -> bool:
        return bool(self.attributes.get("clickable"))

    @property
    def tags(self) -> List[str]:
        return [str(tag) for tag in self.attributes.get("tags", []) or []]

    def facet(self, key: str) -> Dict[str, Any]:
        value = self.attributes.get(key)
        return value if isinstance(value, dict) else {}

    def get_path(self, *keys: str, default: Any = None) -> Any:
        node: Any = self.attributes
        for key in keys:
            if not isinstance(node, Mapping) or key not in node:
                return default
            node = node[key]
        return node

    def to_record(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            "id": self.id,
            "type": self.entity_type,
            "tier": self.tier,
            "name": self.name,
        }
        record.update(copy.deepcopy(self.attributes))
        record["metadata"] = copy.deepcopy(self.metadata)
        return record

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Entity":
        attributes = {key: copy.deepcopy(value) for key, value in record.items() if key not in _CORE_KEYS}
        return cls(
            id=str(record.get("id") or ""),
            entity_type=str(record.get("type") or ""),
            name=str(record.get("name") or ""),
            tier=str(record.get("tier") or EntityTier.BACKGROUND.value),
            attributes=attributes,
            metadata=copy.deepcopy(dict(record.get("metadata") or {})),
        )


def derive_entity_id(entity_type: str, name: object) -> str:
    normalized = normalize_name(name)
    if not normalized:
        return ""
    return f"{entity_type}_{normalized.replace(' ', '_')}"


def identity_patch(entity: Entity) -> Dict[str, Any]:
    """Fields that pin a resolved template identity onto the raw record."""
    patch: Dict[str, Any] = {"name": entity.name, "is_template": False}
    for key in ("first_name", "surname", "archetype"):
        if key in entity.attributes:
            patch[key] = copy.deepcopy(entity.attributes[key])
    gender = entity.facet("appearance").get("gender")
    if gender:
        patch["appearance"] = {"gender": gender}
    social = {key: entity.facet("social")[key] for key in ("casta", "occupation") if entity.facet("social").get(key)}
    if social:
        patch["social"] = social
    return patch
