import logging
import os
import random
from dataclasses import dataclass
from typing import Optional

from townsfolk.application.services.condition_engine import DEFAULT_CRITICAL_WINDOW_DAYS, ConditionEngine
from townsfolk.application.services.enrichment_pipeline import EnrichmentPipeline, default_pipeline_generators
from townsfolk.application.services.entity_store import EntityStore
from townsfolk.application.services.event_bus import EventBus
from townsfolk.application.services.log_throttle import DEFAULT_LOG_INTERVAL_SECONDS, RateLimitedLogger
from townsfolk.application.services.narrative_collaborator import EchoNarrativeCollaborator, NarrativeCollaborator
from townsfolk.application.services.narrative_extraction import NarrativeEntityExtractor
from townsfolk.application.services.relationship_service import RelationshipService
from townsfolk.application.services.selection_engine import RecentEncounterTracker, SelectionEngine
from townsfolk.application.services.snapshot_autosave import (
    DEFAULT_DEBOUNCE_SECONDS,
    SnapshotAutosaver,
    load_snapshot_into,
    register_snapshot_autosave,
    seed_store,
)
from townsfolk.application.services.turn_service import TurnService
from townsfolk.domain.models.scenario import ScenarioContent
from townsfolk.domain.repositories import EntitySnapshotRepository
from townsfolk.infrastructure.name_extraction.regex_name_extractor import RegexNameExtractor
from townsfolk.infrastructure.name_generation.historical_name_generator import HistoricalNameGenerator
from townsfolk.infrastructure.narrative_client import HttpNarrativeCollaborator
from townsfolk.infrastructure.persistence.inmemory_snapshot_repo import InMemorySnapshotRepository
from townsfolk.infrastructure.persistence.json_snapshot_repo import JsonFileSnapshotRepository
from townsfolk.infrastructure.persistence.sqlalchemy_snapshot_repo import SqlAlchemySnapshotRepository
from townsfolk.infrastructure.scenarios.loader import DEFAULT_SCENARIO_ID, load_scenario


logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    scenario: ScenarioContent
    event_bus: EventBus
    store: EntityStore
    pipeline: EnrichmentPipeline
    conditions: ConditionEngine
    selection: SelectionEngine
    extractor: NarrativeEntityExtractor
    relationships: RelationshipService
    repository: EntitySnapshotRepository
    autosaver: SnapshotAutosaver
    collaborator: NarrativeCollaborator
    turns: TurnService
    session_seed: Optional[int] = None

    def shutdown(self) -> None:
        self.turns.shutdown()
        close = getattr(self.collaborator, "close", None)
        if callable(close):
            close()


def _optional_int(name: str) -> Optional[int]:
    raw = os.getenv(name, "").strip()
    return int(raw) if raw else None


def _build_repository() -> EntitySnapshotRepository:
    database_url = os.getenv("TOWNSFOLK_DATABASE_URL", "").strip()
    if database_url:
        return SqlAlchemySnapshotRepository(database_url)
    snapshot_path = os.getenv("TOWNSFOLK_SNAPSHOT_PATH", "").strip()
    if snapshot_path:
        return JsonFileSnapshotRepository(snapshot_path)
    return InMemorySnapshotRepository()


def _build_collaborator() -> NarrativeCollaborator:
    base_url = os.getenv("TOWNSFOLK_NARRATIVE_URL", "").strip()
    if not base_url:
        return EchoNarrativeCollaborator()
    return HttpNarrativeCollaborator(
        base_url,
        timeout=float(os.getenv("TOWNSFOLK_NARRATIVE_TIMEOUT_S", "10")),
        retries=int(os.getenv("TOWNSFOLK_NARRATIVE_RETRIES", "1")),
        backoff_seconds=float(os.getenv("TOWNSFOLK_NARRATIVE_BACKOFF_S", "0.2")),
    )


def create_runtime(
    *,
    scenario: ScenarioContent | None = None,
    repository: EntitySnapshotRepository | None = None,
    collaborator: NarrativeCollaborator | None = None,
    rng: random.Random | None = None,
) -> Runtime:
    """Wire the store, engines and turn loop from ``TOWNSFOLK_*`` settings."""
    scenario = scenario or load_scenario(os.getenv("TOWNSFOLK_SCENARIO", DEFAULT_SCENARIO_ID))
    session_seed = _optional_int("TOWNSFOLK_RNG_SEED")
    if rng is None:
        rng = random.Random(session_seed) if session_seed is not None else random.Random()

    interval = float(os.getenv("TOWNSFOLK_LOG_INTERVAL_S", str(DEFAULT_LOG_INTERVAL_SECONDS)))
    throttled = RateLimitedLogger(logging.getLogger("townsfolk.diagnostics"), interval_seconds=interval)

    event_bus = EventBus()
    name_generator = HistoricalNameGenerator(scenario.names, scenario.gender, rng=rng)
    pipeline = EnrichmentPipeline(scenario, name_generator=name_generator, rng=rng, log=throttled)
    default_pipeline_generators(pipeline, scenario, rng=rng)

    store = EntityStore(enricher=pipeline, event_bus=event_bus, log=throttled)
    conditions = ConditionEngine(
        scenario,
        critical_window_days=float(
            os.getenv("TOWNSFOLK_CRITICAL_WINDOW_DAYS", str(DEFAULT_CRITICAL_WINDOW_DAYS))
        ),
        log=throttled,
    )
    selection = SelectionEngine(store, conditions, scenario.selection, rng=rng, log=throttled)
    extractor = NarrativeEntityExtractor(
        store,
        RegexNameExtractor(scenario.extraction),
        pipeline,
        scenario.extraction,
        persona=scenario.persona,
        rng=rng,
        log=throttled,
    )
    relationships = RelationshipService(store)

    repository = repository or _build_repository()
    restored = load_snapshot_into(store, repository)
    seeded = seed_store(store, scenario.static_entities)
    autosaver = SnapshotAutosaver(
        store,
        repository,
        debounce_seconds=float(os.getenv("TOWNSFOLK_SAVE_DEBOUNCE_S", str(DEFAULT_DEBOUNCE_SECONDS))),
    )
    register_snapshot_autosave(event_bus, autosaver)
    if seeded:
        autosaver.mark_dirty()

    collaborator = collaborator or _build_collaborator()
    turns = TurnService(
        selection,
        collaborator,
        extractor,
        relationships=relationships,
        tracker=RecentEncounterTracker(),
        autosaver=autosaver,
        event_bus=event_bus,
        session_seed=session_seed,
    )
    logger.info(
        "Runtime ready",
        extra={
            "scenario_id": scenario.id,
            "restored": restored,
            "seeded": len(seeded),
            "repository": type(repository).__name__,
        },
    )
    return Runtime(
        scenario=scenario,
        event_bus=event_bus,
        store=store,
        pipeline=pipeline,
        conditions=conditions,
        selection=selection,
        extractor=extractor,
        relationships=relationships,
        repository=repository,
        autosaver=autosaver,
        collaborator=collaborator,
        turns=turns,
        session_seed=session_seed,
    )
