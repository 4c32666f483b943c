from __future__ import annotations

import copy
from typing import Any, Dict, List

from townsfolk.domain.repositories import EntitySnapshotRepository


class InMemorySnapshotRepository(EntitySnapshotRepository):
    def __init__(self, records: List[Dict[str, Any]] | None = None) -> None:
        self._records: List[Dict[str, Any]] = copy.deepcopy(records or [])
        self.save_count = 0

    def load(self) -> List[Dict[str, Any]]:
        return copy.deepcopy(self._records)

    def save(self, records: List[Dict[str, Any]]) -> None:
        self._records = copy.deepcopy(list(records))
        self.save_count += 1
