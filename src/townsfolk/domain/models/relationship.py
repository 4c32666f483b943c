from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional


RELATIONSHIP_HISTORY_MAX = 10
DEFAULT_AFFINITY = 50


class RelationshipStatus(str, Enum):
    HOSTILE = "hostile"
    UNFRIENDLY = "unfriendly"
    NEUTRAL = "neutral"
    FRIENDLY = "friendly"
    ALLIED = "allied"


def relationship_status(value: int) -> RelationshipStatus:
    if value < 20:
        return RelationshipStatus.HOSTILE
    if value < 40:
        return RelationshipStatus.UNFRIENDLY
    if value < 60:
        return RelationshipStatus.NEUTRAL
    if value < 80:
        return RelationshipStatus.FRIENDLY
    return RelationshipStatus.ALLIED


def _clamp(value: int) -> int:
    return max(0, min(100, int(value)))


@dataclass
class Relationship:
    other_id: str
    value: int = DEFAULT_AFFINITY
    type: str = "acquaintance"
    status: str = RelationshipStatus.NEUTRAL.value
    reason: str = ""
    debt: int = 0
    last_interaction: Optional[str] = None
    history: List[Dict[str, Any]] = field(default_factory=list)
    archived_summary: str = ""

    def apply_delta(self, delta: int, *, reason: str = "", date: Optional[str] = None) -> None:
        self.value = _clamp(self.value + delta)
        self.status = relationship_status(self.value).value
        if reason:
            self.reason = reason
        if date:
            self.last_interaction = date
        if delta == 0:
            return
        self.history.append({"date": date, "delta": int(delta), "reason": reason, "value": self.value})
        while len(self.history) > RELATIONSHIP_HISTORY_MAX:
            oldest = self.history.pop(0)
            self.archived_summary = _append_summary(
                self.archived_summary,
                f"{oldest.get('date') or 'undated'}: {oldest.get('reason') or 'change'} ({oldest.get('delta'):+d})",
            )

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload.pop("other_id")
        return payload

    @classmethod
    def from_dict(cls, other_id: str, payload: Mapping[str, Any] | None) -> "Relationship":
        data = dict(payload or {})
        value = _clamp(data.get("value", DEFAULT_AFFINITY))
        return cls(
            other_id=other_id,
            value=value,
            type=str(data.get("type") or "acquaintance"),
            status=str(data.get("status") or relationship_status(value).value),
            reason=str(data.get("reason") or ""),
            debt=int(data.get("debt") or 0),
            last_interaction=data.get("last_interaction"),
            history=[dict(row) for row in data.get("history", []) or []],
            archived_summary=str(data.get("archived_summary") or ""),
        )


def _append_summary(summary: str, line: str) -> str:
    return f"{summary}; {line}" if summary else line
