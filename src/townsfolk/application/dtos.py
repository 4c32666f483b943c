from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from townsfolk.domain.models.entity import Entity


@dataclass(frozen=True)
class StoreSnapshot:
    version: int
    records: Tuple[Dict[str, Any], ...]


@dataclass
class ImportReport:
    imported: List[str] = field(default_factory=list)
    failed: List[Tuple[Dict[str, Any], Exception]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


@dataclass
class StoreStats:
    total: int = 0
    by_type: Dict[str, int] = field(default_factory=dict)
    by_tier: Dict[str, int] = field(default_factory=dict)
    clickable: int = 0


@dataclass
class WeightedCandidate:
    entity: Entity
    weight: float
    reasons: List[str] = field(default_factory=list)


@dataclass
class ExplicitEntityMention:
    text: str
    entity_type: str = "npc"
    tier: str = "background"
    description: str = ""
    occupation: str = ""
    demographics: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ExtractionReport:
    new_entities: List[Entity] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failures: List[Tuple[str, Exception]] = field(default_factory=list)


@dataclass
class NarrativeRequest:
    scenario_id: str
    player_action: str
    turn_number: int
    location: str
    entity: Optional[Dict[str, Any]] = None
    memory_context: str = ""


@dataclass
class NarrativeResponse:
    prose: str = ""
    entities: List[ExplicitEntityMention] = field(default_factory=list)


@dataclass
class TurnResult:
    turn_number: int
    selected: Optional[Entity] = None
    critical: bool = False
    narrative: str = ""
    new_entities: List[Entity] = field(default_factory=list)
    extraction_failures: List[Tuple[str, Exception]] = field(default_factory=list)
