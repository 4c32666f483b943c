from __future__ import annotations

import logging
import random
from typing import Callable, Optional

from townsfolk.application.dtos import NarrativeRequest, TurnResult
from townsfolk.application.services.event_bus import EventBus
from townsfolk.application.services.narrative_collaborator import NarrativeCollaborator
from townsfolk.application.services.narrative_extraction import NarrativeEntityExtractor, merge_reports
from townsfolk.application.services.relationship_service import NO_MEMORY_TEXT, RelationshipService
from townsfolk.application.services.seed_policy import turn_rng
from townsfolk.application.services.selection_engine import RecentEncounterTracker, SelectionEngine
from townsfolk.application.services.snapshot_autosave import SnapshotAutosaver
from townsfolk.domain.events import EncounterSelected
from townsfolk.domain.models.turn_context import TurnContext


logger = logging.getLogger(__name__)


class TurnService:
    """One synchronous selection, narration and extraction cycle per player turn."""

    def __init__(
        self,
        selection: SelectionEngine,
        collaborator: NarrativeCollaborator,
        extractor: NarrativeEntityExtractor,
        *,
        relationships: RelationshipService | None = None,
        tracker: RecentEncounterTracker | None = None,
        autosaver: SnapshotAutosaver | None = None,
        event_bus: EventBus | None = None,
        session_seed: int | None = None,
        rng_factory: Callable[[int], random.Random] | None = None,
    ) -> None:
        self.selection = selection
        self.store = selection.store
        self.collaborator = collaborator
        self.extractor = extractor
        self.relationships = relationships
        self.tracker = tracker or RecentEncounterTracker()
        self.autosaver = autosaver
        self.event_bus = event_bus
        self.session_seed = session_seed
        self.rng_factory = rng_factory

    def _rng(self, ctx: TurnContext) -> Optional[random.Random]:
        if self.session_seed is None:
            return None
        return turn_rng(
            self.session_seed,
            scenario_id=ctx.scenario_id,
            turn_number=ctx.turn_number,
            rng_factory=self.rng_factory,
        )

    def play_turn(self, ctx: TurnContext) -> TurnResult:
        if not ctx.recent_entity_names:
            ctx.recent_entity_names = self.tracker.recent()

        raw = self.selection.select_entity(ctx, rng=self._rng(ctx))
        result = TurnResult(turn_number=ctx.turn_number)
        memory_context = ""
        if raw is not None:
            result.selected = self.store.get_by_id(raw.id)
            result.critical = self.selection.conditions.get_critical_npc(ctx) == raw.name
            if self.relationships is not None:
                memory_context = self.relationships.memory_context(raw.id)
                if memory_context == NO_MEMORY_TEXT:
                    memory_context = ""

        selected = result.selected
        response = self.collaborator.generate(
            NarrativeRequest(
                scenario_id=ctx.scenario_id,
                player_action=ctx.player_action,
                turn_number=ctx.turn_number,
                location=ctx.location,
                entity=selected.to_record() if selected is not None else None,
                memory_context=memory_context,
            )
        )
        result.narrative = response.prose

        report = merge_reports(
            self.extractor.process_explicit_entities(response.entities),
            self.extractor.process_narrative(response.prose),
        )
        result.new_entities = report.new_entities
        result.extraction_failures = report.failures

        if selected is not None:
            self.tracker.add(selected.name)
            if self.event_bus is not None:
                self.event_bus.publish(
                    EncounterSelected(
                        entity_id=selected.id,
                        entity_name=selected.name,
                        turn_number=ctx.turn_number,
                        critical=result.critical,
                    )
                )
            logger.info(
                "Encounter selected",
                extra={"entity_id": selected.id, "turn": ctx.turn_number, "critical": result.critical},
            )

        if self.autosaver is not None:
            self.autosaver.flush()
        return result

    def shutdown(self) -> None:
        if self.autosaver is not None:
            self.autosaver.flush(force=True)
