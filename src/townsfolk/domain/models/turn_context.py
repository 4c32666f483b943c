from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass(frozen=True)
class Reputation:
    overall: int = 50
    factions: Dict[str, int] = field(default_factory=dict)

    def faction(self, key: str, default: Optional[int] = None) -> Optional[int]:
        value = self.factions.get(key)
        return default if value is None else int(value)


@dataclass
class TurnContext:
    """Everything the engines may look at for a single player turn."""

    scenario_id: str = ""
    player_action: str = ""
    date: str = ""
    time: str = ""
    location: str = ""
    recent_entity_names: List[str] = field(default_factory=list)
    reputation: Reputation = field(default_factory=Reputation)
    wealth: float = 0.0
    active_patient: bool = False
    shop_sign_open: Optional[bool] = None
    turn_number: int = 0
