from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping

from townsfolk.application.dtos import ExplicitEntityMention, NarrativeRequest, NarrativeResponse


class NarrativeCollaborator(ABC):
    """External prose generator consulted once per turn."""

    @abstractmethod
    def generate(self, request: NarrativeRequest) -> NarrativeResponse:
        raise NotImplementedError


class EchoNarrativeCollaborator(NarrativeCollaborator):
    """Offline stand-in that writes one deterministic line per turn."""

    def generate(self, request: NarrativeRequest) -> NarrativeResponse:
        place = request.location or "the street"
        if not request.entity:
            return NarrativeResponse(prose=f"Turn {request.turn_number}: the hours pass quietly at {place}.")
        name = str(request.entity.get("name") or "someone")
        occupation = str((request.entity.get("social") or {}).get("occupation") or "").strip()
        who = f"{name}, the {occupation}," if occupation else name
        return NarrativeResponse(prose=f"Turn {request.turn_number}: {who} appears at {place}.")


def mention_from_payload(payload: Mapping[str, Any]) -> ExplicitEntityMention:
    return ExplicitEntityMention(
        text=str(payload.get("text") or payload.get("name") or ""),
        entity_type=str(payload.get("entity_type") or payload.get("entityType") or "npc"),
        tier=str(payload.get("tier") or "background"),
        description=str(payload.get("description") or ""),
        occupation=str(payload.get("occupation") or ""),
        demographics=dict(payload.get("demographics") or {}),
    )


def response_from_payload(payload: Mapping[str, Any]) -> NarrativeResponse:
    prose = str(payload.get("narrative") or payload.get("prose") or "")
    rows: List[Dict[str, Any]] = [row for row in payload.get("entities") or [] if isinstance(row, Mapping)]
    return NarrativeResponse(prose=prose, entities=[mention_from_payload(row) for row in rows])
