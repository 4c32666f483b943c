from __future__ import annotations

import hashlib
import json
import random
from typing import Any, Callable, Mapping


def _normalize(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(key): _normalize(val) for key, val in sorted(value.items(), key=lambda item: str(item[0]))}
    if isinstance(value, (list, tuple, set)):
        normalized = [_normalize(item) for item in value]
        if isinstance(value, set):
            return sorted(normalized, key=lambda item: json.dumps(item, sort_keys=True, separators=(",", ":")))
        return normalized
    return value


def derive_seed(namespace: str, context: Mapping[str, Any]) -> int:
    """Stable 32-bit seed for ``namespace`` + ``context``, independent of dict ordering."""
    normalized = _normalize(context)
    payload = {"namespace": namespace, "context": normalized}
    serialized = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    digest = hashlib.sha256(serialized.encode("utf-8")).hexdigest()
    return int(digest, 16) % (2**32)


def turn_rng(
    session_seed: int | None,
    *,
    scenario_id: str,
    turn_number: int,
    rng_factory: Callable[[int], random.Random] | None = None,
) -> random.Random:
    """Per-turn RNG; unseeded sessions draw from system entropy."""
    factory = rng_factory or (lambda seed: random.Random(seed))
    if session_seed is None:
        return random.Random()
    seed = derive_seed(
        "turn.selection",
        {"session_seed": int(session_seed), "scenario_id": scenario_id, "turn": int(turn_number)},
    )
    return factory(seed)
