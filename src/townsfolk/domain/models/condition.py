from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from townsfolk.domain.errors import ScenarioContentError
from townsfolk.domain.models.turn_context import TurnContext
from townsfolk.domain.services.sim_clock import parse_sim_datetime, parse_sim_hour


DEFAULT_FACTION_STANDING = 50


@dataclass(frozen=True)
class ConditionResult:
    available: bool = True
    weight: float = 1.0
    reason: Optional[str] = None


NEUTRAL_RESULT = ConditionResult()


def days_until(deadline: datetime, now: datetime) -> int:
    return math.ceil((deadline - now).total_seconds() / 86400)


def _standing(ctx: TurnContext, key: str) -> int:
    if key == "overall":
        return int(ctx.reputation.overall)
    value = ctx.reputation.faction(key)
    return DEFAULT_FACTION_STANDING if value is None else value


def _keywords(arg: Any) -> Tuple[str, ...]:
    if isinstance(arg, str):
        return (arg.lower(),)
    return tuple(str(item).lower() for item in arg)


def _parse_deadline(value: Any) -> datetime:
    try:
        return datetime.fromisoformat(str(value))
    except ValueError as exc:
        raise ScenarioContentError(f"Invalid deadline: {value!r}") from exc


def _now(ctx: TurnContext) -> Optional[datetime]:
    return parse_sim_datetime(ctx.date, ctx.time)


def _compile_predicate(key: str, arg: Any) -> Callable[[TurnContext], bool]:
    if key == "turn_lt":
        return lambda ctx: ctx.turn_number < int(arg)
    if key == "turn_gte":
        return lambda ctx: ctx.turn_number >= int(arg)
    if key == "turn_between":
        lo, hi = int(arg[0]), int(arg[1])
        return lambda ctx: lo <= ctx.turn_number <= hi
    if key in {"reputation_lt", "reputation_gt", "reputation_gte"}:
        if not isinstance(arg, Mapping) or not arg:
            raise ScenarioContentError(f"'{key}' expects a mapping of faction to threshold")
        thresholds = {str(name): float(value) for name, value in arg.items()}
        compare: Callable[[float, float], bool] = {
            "reputation_lt": lambda a, b: a < b,
            "reputation_gt": lambda a, b: a > b,
            "reputation_gte": lambda a, b: a >= b,
        }[key]
        return lambda ctx: all(compare(_standing(ctx, name), bound) for name, bound in thresholds.items())
    if key == "location_contains":
        words = _keywords(arg)
        return lambda ctx: any(word in (ctx.location or "").lower() for word in words)
    if key == "location_not_contains":
        words = _keywords(arg)
        return lambda ctx: bool(ctx.location) and not any(word in ctx.location.lower() for word in words)
    if key == "wealth_lt":
        return lambda ctx: float(ctx.wealth) < float(arg)
    if key == "wealth_gt":
        return lambda ctx: float(ctx.wealth) > float(arg)
    if key == "hour_between":
        lo, hi = int(arg[0]), int(arg[1])
        return lambda ctx: lo <= parse_sim_hour(ctx.time) < hi
    if key == "hour_outside":
        lo, hi = int(arg[0]), int(arg[1])
        return lambda ctx: not (lo <= parse_sim_hour(ctx.time) < hi)
    if key == "days_until_lte":
        if not isinstance(arg, Mapping) or "deadline" not in arg:
            raise ScenarioContentError("'days_until_lte' expects {deadline, days}")
        deadline = _parse_deadline(arg["deadline"])
        limit = int(arg.get("days", 0))

        def _check(ctx: TurnContext) -> bool:
            now = _now(ctx)
            return now is not None and days_until(deadline, now) <= limit

        return _check
    if key == "shop_sign_open":
        expected = bool(arg)
        return lambda ctx: (ctx.shop_sign_open is not False) == expected
    raise ScenarioContentError(f"Unknown condition predicate: {key}")


@dataclass(frozen=True)
class ConditionClause:
    when: Dict[str, Any]
    available: bool = True
    weight: float = 1.0
    reason: Optional[str] = None
    _predicates: Tuple[Callable[[TurnContext], bool], ...] = field(default=(), repr=False, compare=False)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ConditionClause":
        when = dict(payload.get("when") or {})
        try:
            predicates = tuple(_compile_predicate(str(key), arg) for key, arg in when.items())
        except (TypeError, ValueError, IndexError) as exc:
            if isinstance(exc, ScenarioContentError):
                raise
            raise ScenarioContentError(f"Invalid condition clause {payload!r}: {exc}") from exc
        return cls(
            when=when,
            available=bool(payload.get("available", True)),
            weight=float(payload.get("weight", 1.0)),
            reason=payload.get("reason"),
            _predicates=predicates,
        )

    def matches(self, ctx: TurnContext) -> bool:
        return all(predicate(ctx) for predicate in self._predicates)

    def result(self) -> ConditionResult:
        return ConditionResult(available=self.available, weight=self.weight, reason=self.reason)


@dataclass(frozen=True)
class ConditionRule:
    entity_name: str
    clauses: Tuple[ConditionClause, ...]

    @classmethod
    def from_clauses(cls, entity_name: str, clauses: List[Mapping[str, Any]]) -> "ConditionRule":
        return cls(entity_name=entity_name, clauses=tuple(ConditionClause.from_dict(row) for row in clauses))

    def evaluate(self, ctx: TurnContext) -> ConditionResult:
        for clause in self.clauses:
            if clause.matches(ctx):
                return clause.result()
        return NEUTRAL_RESULT


@dataclass(frozen=True)
class CriticalDeadline:
    entity_name: str
    deadline: datetime
    window_days: float = 2.0
    reason: str = ""

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any], *, default_window_days: float = 2.0) -> "CriticalDeadline":
        name = str(payload.get("entity_name") or "").strip()
        if not name:
            raise ScenarioContentError("critical deadline requires 'entity_name'")
        return cls(
            entity_name=name,
            deadline=_parse_deadline(payload.get("deadline")),
            window_days=float(payload.get("window_days", default_window_days)),
            reason=str(payload.get("reason") or ""),
        )

    def fires(self, now: datetime) -> bool:
        remaining = days_until(self.deadline, now)
        return -self.window_days < remaining <= 0
