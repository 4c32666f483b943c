from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Tuple

from townsfolk.application.services.log_throttle import RateLimitedLogger
from townsfolk.domain.models.condition import (
    NEUTRAL_RESULT,
    ConditionResult,
    ConditionRule,
    CriticalDeadline,
)
from townsfolk.domain.models.entity import Entity
from townsfolk.domain.models.scenario import ScenarioContent
from townsfolk.domain.models.turn_context import TurnContext
from townsfolk.domain.services.sim_clock import parse_sim_datetime


DEFAULT_CRITICAL_WINDOW_DAYS = 2.0


class ConditionEngine:
    """Per-name availability rules and absolute critical deadlines.

    Rule tables are compiled once, when the engine is built, so malformed
    scenario content fails at load time rather than mid-turn.
    """

    def __init__(
        self,
        scenario: ScenarioContent,
        *,
        critical_window_days: float = DEFAULT_CRITICAL_WINDOW_DAYS,
        log: RateLimitedLogger | None = None,
    ) -> None:
        self._log = log or RateLimitedLogger(logging.getLogger(__name__))
        self._rules: Dict[str, ConditionRule] = {
            name: ConditionRule.from_clauses(name, clauses)
            for name, clauses in scenario.condition_rules.items()
        }
        self._deadlines: Tuple[CriticalDeadline, ...] = tuple(
            CriticalDeadline.from_dict(row, default_window_days=critical_window_days)
            for row in scenario.critical_deadlines
        )

    @property
    def rule_names(self) -> List[str]:
        return list(self._rules)

    @property
    def deadlines(self) -> Tuple[CriticalDeadline, ...]:
        return self._deadlines

    def check_conditions(self, name: str, ctx: TurnContext) -> ConditionResult:
        rule = self._rules.get(name)
        if rule is None:
            return NEUTRAL_RESULT
        return rule.evaluate(ctx)

    def get_critical_npc(self, ctx: TurnContext) -> Optional[str]:
        if not self._deadlines:
            return None
        now = parse_sim_datetime(ctx.date, ctx.time)
        if now is None:
            self._log.warning(
                "conditions.unparseable_date",
                ctx.date or "",
                "Simulated date %r could not be parsed; critical deadlines skipped",
                ctx.date,
            )
            return None
        for deadline in self._deadlines:
            if deadline.fires(now):
                return deadline.entity_name
        return None

    def filter_available(self, entities: Iterable[Entity], ctx: TurnContext) -> List[Entity]:
        available: List[Entity] = []
        for entity in entities:
            result = self.check_conditions(entity.name, ctx)
            if result.available:
                available.append(entity)
            else:
                self._log.debug(
                    "conditions.unavailable",
                    entity.id,
                    "%s unavailable: %s",
                    entity.name,
                    result.reason or "condition failed",
                )
        return available
