from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List

from townsfolk.domain.errors import ScenarioContentError
from townsfolk.domain.models.scenario import ScenarioContent


logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).resolve().parent / "data"
DEFAULT_SCENARIO_ID = "mexico-city-1680"


def available_scenarios() -> List[str]:
    return sorted(path.stem for path in DATA_DIR.glob("*.json"))


def _resolve(ref: str) -> Path:
    candidate = Path(ref).expanduser()
    if candidate.suffix == ".json" or candidate.exists():
        if not candidate.is_file():
            raise ScenarioContentError(f"Scenario file not found: {candidate}")
        return candidate
    bundled = DATA_DIR / f"{ref}.json"
    if not bundled.is_file():
        known = ", ".join(available_scenarios()) or "none"
        raise ScenarioContentError(f"Unknown scenario '{ref}' (bundled: {known})")
    return bundled


def read_scenario_payload(ref: str | Path = DEFAULT_SCENARIO_ID) -> Dict[str, Any]:
    path = _resolve(str(ref))
    try:
        payload = json.loads(path.read_text(encoding="utf-8-sig"))
    except json.JSONDecodeError as exc:
        raise ScenarioContentError(f"Scenario file {path} is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise ScenarioContentError(f"Scenario file {path} must contain a JSON object")
    return payload


def load_scenario(ref: str | Path = DEFAULT_SCENARIO_ID) -> ScenarioContent:
    """Load a bundled scenario by id, or any scenario JSON file by path."""
    scenario = ScenarioContent.from_dict(read_scenario_payload(ref))
    logger.debug(
        "Scenario loaded",
        extra={"scenario_id": scenario.id, "static_entities": len(scenario.static_entities)},
    )
    return scenario
