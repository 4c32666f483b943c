from __future__ import annotations

import math
import random
from typing import Dict, Mapping, Optional


TEMPERAMENT_ORDER = ("sanguine", "choleric", "melancholic", "phlegmatic")
_HUMOR_FOR = {
    "sanguine": "blood",
    "choleric": "yellow_bile",
    "melancholic": "black_bile",
    "phlegmatic": "phlegm",
}
SECONDARY_RATIO = 0.6

_BIG_FIVE_BASES: Dict[str, Dict[str, int]] = {
    "sanguine": {"extraversion": 75, "neuroticism": 25, "openness": 60, "agreeableness": 60, "conscientiousness": 50},
    "choleric": {"extraversion": 70, "neuroticism": 70, "openness": 55, "agreeableness": 35, "conscientiousness": 65},
    "melancholic": {"extraversion": 30, "neuroticism": 70, "openness": 60, "agreeableness": 50, "conscientiousness": 70},
    "phlegmatic": {"extraversion": 35, "neuroticism": 30, "openness": 45, "agreeableness": 70, "conscientiousness": 55},
}


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def trait_score(big_five: Mapping[str, object], trait: str, default: int = 50) -> int:
    raw = big_five.get(trait)
    if raw is None and trait == "extraversion":
        raw = big_five.get("extroversion")
    try:
        return int(raw) if raw is not None else default
    except (TypeError, ValueError):
        return default


def calculate_humors(big_five: Mapping[str, object]) -> Dict[str, int]:
    """Four humors from extraversion/neuroticism, normalized to sum to exactly 100."""
    extraversion = trait_score(big_five, "extraversion")
    neuroticism = trait_score(big_five, "neuroticism")

    raw = {
        "blood": (extraversion + (100 - neuroticism)) / 2,
        "yellow_bile": (extraversion + neuroticism) / 2,
        "black_bile": ((100 - extraversion) + neuroticism) / 2,
        "phlegm": ((100 - extraversion) + (100 - neuroticism)) / 2,
    }
    total = sum(raw.values()) or 1.0
    humors = {key: round_half_up(value / total * 100) for key, value in raw.items()}

    residual = 100 - sum(humors.values())
    if residual:
        primary_humor = _HUMOR_FOR[_primary_from(humors)]
        humors[primary_humor] += residual
    return humors


def _primary_from(humors: Mapping[str, int]) -> str:
    best = max(humors.values())
    for temperament in TEMPERAMENT_ORDER:
        if humors[_HUMOR_FOR[temperament]] == best:
            return temperament
    return TEMPERAMENT_ORDER[-1]


def calculate_temperament(big_five: Mapping[str, object]) -> Dict[str, object]:
    humors = calculate_humors(big_five)
    primary = _primary_from(humors)

    ranked = sorted(
        TEMPERAMENT_ORDER,
        key=lambda name: (-humors[_HUMOR_FOR[name]], TEMPERAMENT_ORDER.index(name)),
    )
    runner_up = next(name for name in ranked if name != primary)
    secondary: Optional[str] = runner_up
    if humors[_HUMOR_FOR[runner_up]] < humors[_HUMOR_FOR[primary]] * SECONDARY_RATIO:
        secondary = None

    return {"primary": primary, "secondary": secondary, "humors": humors}


def temperament_to_big_five(
    primary: str,
    secondary: Optional[str] = None,
    *,
    rng: random.Random | None = None,
) -> Dict[str, int]:
    if primary not in _BIG_FIVE_BASES:
        raise ValueError(f"Unknown temperament: {primary}")
    rng = rng or random.Random()
    scores = dict(_BIG_FIVE_BASES[primary])

    blend = _BIG_FIVE_BASES.get(secondary or "")
    if blend:
        scores = {trait: round_half_up((value + blend[trait]) / 2) for trait, value in scores.items()}

    return {trait: max(0, min(100, value + rng.randint(-10, 9))) for trait, value in scores.items()}
