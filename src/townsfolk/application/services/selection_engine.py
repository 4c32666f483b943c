from __future__ import annotations

import logging
import random
import re
from collections import deque
from typing import Deque, Dict, List, Optional, Sequence, Tuple

from townsfolk.application.dtos import WeightedCandidate
from townsfolk.application.services.condition_engine import ConditionEngine
from townsfolk.application.services.entity_store import EntityStore
from townsfolk.application.services.log_throttle import RateLimitedLogger
from townsfolk.domain.models.entity import Entity, EntityType, normalize_name
from townsfolk.domain.models.scenario import SelectionTuning
from townsfolk.domain.models.turn_context import TurnContext
from townsfolk.domain.services.sim_clock import parse_sim_hour


RECENCY_DAMPING = 0.1
WORKPLACE_PATIENT_BOOST = 2.0
MORNING_PATIENT_BOOST = 1.5
EVENING_ANTAGONIST_BOOST = 1.5
EVENING_DEBT_COLLECTOR_BOOST = 2.0
ELITE_BOOST = 1.5
COMMON_BOOST = 1.4
LOW_WEALTH_ANTAGONIST_BOOST = 1.3

# (predicate on standing, multiplier); first match wins, so <20 precedes <30
_FACTION_TIERS: Tuple[Tuple[str, int, float], ...] = (
    (">=", 70, 1.8),
    (">=", 60, 1.4),
    ("<", 20, 0.3),
    ("<", 30, 0.6),
)


def _keyword_pattern(words: Sequence[str]) -> Optional[re.Pattern[str]]:
    cleaned = [re.escape(word.strip()) for word in words if word.strip()]
    if not cleaned:
        return None
    return re.compile(r"\b(?:" + "|".join(cleaned) + r")", re.IGNORECASE)


def map_faction(faction: str | None, faction_keywords: Dict[str, Tuple[str, ...]]) -> Optional[str]:
    """Map a free-form faction label ("Elite Society") to a reputation key."""
    if not faction:
        return None
    lowered = faction.lower()
    for key, keywords in faction_keywords.items():
        if any(keyword.lower() in lowered for keyword in keywords):
            return key
    return None


def faction_multiplier(standing: int) -> float:
    for operator, bound, multiplier in _FACTION_TIERS:
        if operator == ">=" and standing >= bound:
            return multiplier
        if operator == "<" and standing < bound:
            return multiplier
    return 1.0


def weighted_draw(candidates: Sequence[WeightedCandidate], rng: random.Random) -> Optional[WeightedCandidate]:
    """Draw uniformly in [0, total) and walk the list until the remainder is <= 0."""
    if not candidates:
        return None
    total = sum(max(0.0, candidate.weight) for candidate in candidates)
    if total <= 0:
        return None
    remaining = rng.random() * total
    last_positive = None
    for candidate in candidates:
        if candidate.weight <= 0:
            continue
        last_positive = candidate
        remaining -= candidate.weight
        if remaining <= 0:
            return candidate
    return last_positive


class RecentEncounterTracker:
    def __init__(self, max_history: int = 5) -> None:
        self._names: Deque[str] = deque(maxlen=max(1, int(max_history)))

    def add(self, name: str) -> None:
        if name:
            self._names.append(name)

    def remove(self, name: str) -> None:
        if name in self._names:
            self._names.remove(name)

    def recent(self) -> List[str]:
        return list(self._names)

    def was_recently_seen(self, name: str) -> bool:
        return name in self._names

    def clear(self) -> None:
        self._names.clear()


class SelectionEngine:
    """Chooses which entity, if any, the player meets this turn.

    Order of operations: critical override, hard filters, soft weights,
    encounter roll, weighted draw. The returned entity is the raw record;
    templates are resolved later, on the first enriched read.
    """

    def __init__(
        self,
        store: EntityStore,
        conditions: ConditionEngine,
        tuning: SelectionTuning | None = None,
        *,
        rng: random.Random | None = None,
        log: RateLimitedLogger | None = None,
    ) -> None:
        self.store = store
        self.conditions = conditions
        self.tuning = tuning or SelectionTuning()
        self._rng = rng or random.Random()
        self._log = log or RateLimitedLogger(logging.getLogger(__name__))
        self._encounter_re = _keyword_pattern(self.tuning.encounter_keywords)
        self._avoidance_re = _keyword_pattern(self.tuning.avoidance_keywords)

    # -- pool and filters ------------------------------------------------

    def candidate_pool(self) -> List[Entity]:
        return self.store.get_by_types(self.tuning.pool_types)

    def at_workplace(self, location: str) -> bool:
        lowered = (location or "").lower()
        return any(keyword in lowered for keyword in self.tuning.workplace_keywords)

    def _patient_allowed(self, ctx: TurnContext) -> Tuple[bool, str]:
        if ctx.active_patient:
            return False, "already treating a patient"
        if not self.at_workplace(ctx.location):
            return False, "not at workplace"
        hour = parse_sim_hour(ctx.time)
        opens, closes = self.tuning.business_hours
        if not opens <= hour < closes:
            return False, "outside business hours"
        if ctx.shop_sign_open is False:
            return False, "shop sign not hung"
        return True, ""

    def apply_hard_filters(self, pool: List[Entity], ctx: TurnContext) -> List[Entity]:
        patient_ok, patient_reason = self._patient_allowed(ctx)
        survivors: List[Entity] = []
        for entity in pool:
            if entity.entity_type == EntityType.PATIENT.value and not patient_ok:
                self._log.debug("selection.patient_filtered", entity.id, "Patient filtered: %s", patient_reason)
                continue
            survivors.append(entity)
        return self.conditions.filter_available(survivors, ctx)

    # -- weights ---------------------------------------------------------

    @staticmethod
    def _social_class(entity: Entity) -> str:
        value = entity.attributes.get("class") or entity.facet("social").get("class") or ""
        return str(value).lower()

    def weigh(self, entity: Entity, ctx: TurnContext) -> WeightedCandidate:
        weight = 1.0
        reasons: List[str] = []
        kind = entity.entity_type
        hour = parse_sim_hour(ctx.time)

        def scale(factor: float, reason: str) -> None:
            nonlocal weight
            weight *= factor
            reasons.append(f"{reason} x{factor:g}")

        if entity.name in ctx.recent_entity_names:
            scale(RECENCY_DAMPING, "recently seen")
        if kind == EntityType.PATIENT.value and self.at_workplace(ctx.location):
            scale(WORKPLACE_PATIENT_BOOST, "patient at workplace")

        faction_key = map_faction(entity.facet("social").get("faction"), self.tuning.faction_keywords)
        if faction_key is not None:
            standing = ctx.reputation.faction(faction_key)
            if standing is not None:
                multiplier = faction_multiplier(standing)
                if multiplier != 1.0:
                    scale(multiplier, f"{faction_key} standing {standing}")

        social_class = self._social_class(entity)
        if ctx.reputation.overall >= 70 and social_class in self.tuning.elite_classes:
            scale(ELITE_BOOST, "high reputation draws elites")
        if ctx.reputation.overall < 40 and social_class in self.tuning.common_classes:
            scale(COMMON_BOOST, "low reputation draws commoners")

        if ctx.wealth < self.tuning.low_wealth_threshold and kind == EntityType.ANTAGONIST.value:
            scale(LOW_WEALTH_ANTAGONIST_BOOST, "player is poor")

        if hour >= self.tuning.evening_hour:
            if kind == EntityType.ANTAGONIST.value:
                scale(EVENING_ANTAGONIST_BOOST, "evening antagonist")
            if self.tuning.debt_collector_tag in entity.tags:
                scale(EVENING_DEBT_COLLECTOR_BOOST, "evening debt collector")
        morning_start, morning_end = self.tuning.morning_hours
        if morning_start <= hour <= morning_end and kind == EntityType.PATIENT.value:
            scale(MORNING_PATIENT_BOOST, "morning patient")

        condition = self.conditions.check_conditions(entity.name, ctx)
        if condition.weight != 1.0:
            scale(condition.weight, condition.reason or "condition")

        return WeightedCandidate(entity=entity, weight=weight, reasons=reasons)

    def compute_weights(self, ctx: TurnContext) -> List[WeightedCandidate]:
        survivors = self.apply_hard_filters(self.candidate_pool(), ctx)
        return [self.weigh(entity, ctx) for entity in survivors]

    # -- encounter roll --------------------------------------------------

    def encounter_chance(self, action: str) -> float:
        text = action or ""
        if self._encounter_re is not None and self._encounter_re.search(text):
            return self.tuning.intent_encounter_chance
        if self._avoidance_re is not None and self._avoidance_re.search(text):
            return self.tuning.avoidance_encounter_chance
        return self.tuning.base_encounter_chance

    # -- selection -------------------------------------------------------

    def critical_entity(self, ctx: TurnContext, pool: List[Entity] | None = None) -> Optional[Entity]:
        name = self.conditions.get_critical_npc(ctx)
        if not name:
            return None
        wanted = normalize_name(name)
        for entity in pool if pool is not None else self.candidate_pool():
            if entity.normalized_name == wanted:
                return entity
        entity = self.store.get_raw_by_exact_name(name)
        if entity is None:
            self._log.warning("selection.critical_missing", name, "Critical entity %s is not registered", name)
        return entity

    def select_entity(self, ctx: TurnContext, rng: random.Random | None = None) -> Optional[Entity]:
        rng = rng or self._rng
        pool = self.candidate_pool()

        critical = self.critical_entity(ctx, pool)
        if critical is not None:
            return critical

        survivors = self.apply_hard_filters(pool, ctx)
        candidates = [self.weigh(entity, ctx) for entity in survivors]
        if not candidates:
            return None

        if rng.random() > self.encounter_chance(ctx.player_action):
            return None

        chosen = weighted_draw(candidates, rng)
        return chosen.entity if chosen is not None else None
