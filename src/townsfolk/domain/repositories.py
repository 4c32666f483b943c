from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional


class EntitySnapshotRepository(ABC):
    """Stores the ordered list of raw entity records."""

    @abstractmethod
    def load(self) -> List[Dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    def save(self, records: List[Dict[str, Any]]) -> None:
        raise NotImplementedError


class NameGenerator(ABC):
    @abstractmethod
    def generate_name(
        self,
        *,
        gender: Optional[str] = None,
        casta: Optional[str] = None,
        archetype: Optional[str] = None,
    ) -> Dict[str, Optional[str]]:
        raise NotImplementedError

    @abstractmethod
    def infer_gender_from_archetype(self, archetype: str) -> Optional[str]:
        raise NotImplementedError


class NameExtractor(ABC):
    @abstractmethod
    def extract_names(self, text: str) -> List[str]:
        raise NotImplementedError

