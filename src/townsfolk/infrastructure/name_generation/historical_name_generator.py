from __future__ import annotations

import logging
import random
import re
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from townsfolk.domain.models.scenario import GenderKeywords, NameTables
from townsfolk.domain.repositories import NameGenerator


logger = logging.getLogger(__name__)


class HistoricalNameGenerator(NameGenerator):
    """Period names partitioned by gender and casta.

    Castas listed in ``NameTables.alternate_castas`` draw given names from the
    alternate pool and carry a surname only with ``alternate_surname_chance``.
    Optional corpus files in ``data_dir`` (``given_male.txt``, ``given_female.txt``,
    ``alternate_male.txt``, ``alternate_female.txt``, ``surnames.txt``) replace
    the scenario pools they name.
    """

    _SUPPORTED_GENDERS = ("male", "female")

    def __init__(
        self,
        names: NameTables,
        gender_keywords: GenderKeywords,
        *,
        rng: random.Random | None = None,
        data_dir: Path | None = None,
    ) -> None:
        self._names = names
        self._keywords = gender_keywords
        self._rng = rng or random.Random()
        self._pools: Dict[Tuple[str, str], List[str]] = {
            ("given", "male"): list(names.male_first),
            ("given", "female"): list(names.female_first),
            ("alternate", "male"): list(names.alternate_male_first or names.male_first),
            ("alternate", "female"): list(names.alternate_female_first or names.female_first),
        }
        self._surnames: List[str] = list(names.surnames)
        if data_dir is not None:
            self._load(data_dir)

    @staticmethod
    def _normalize_token(value: str | None) -> str:
        if not value:
            return ""
        return re.sub(r"[^a-z]+", "", value.lower())

    def _normalize_gender(self, gender: str | None) -> str:
        token = self._normalize_token(gender)
        if token in self._SUPPORTED_GENDERS:
            return token
        return ""

    def _load(self, data_dir: Path) -> None:
        if not data_dir.exists():
            return
        for file_path in sorted(data_dir.glob("*.txt")):
            try:
                lines = file_path.read_text(encoding="utf-8").splitlines()
            except OSError:
                logger.warning("Unreadable name corpus skipped", extra={"path": str(file_path)})
                continue
            names = [line.strip() for line in lines if line.strip()]
            if not names:
                continue
            if file_path.stem == "surnames":
                self._surnames = names
                continue
            if "_" not in file_path.stem:
                continue
            pool_kind, gender_part = file_path.stem.rsplit("_", 1)
            gender = self._normalize_gender(gender_part)
            if pool_kind in {"given", "alternate"} and gender:
                self._pools[(pool_kind, gender)] = names

    def _choose_gender(self, rng: random.Random) -> str:
        return self._SUPPORTED_GENDERS[0] if rng.random() < 0.5 else self._SUPPORTED_GENDERS[1]

    @staticmethod
    def _mentions(text: str, keywords: Tuple[str, ...]) -> bool:
        lowered = text.lower()
        return any(re.search(r"\b" + re.escape(word.lower()) + r"\b", lowered) for word in keywords)

    def infer_gender_from_archetype(self, archetype: str) -> Optional[str]:
        if not archetype:
            return None
        if self._mentions(archetype, self._keywords.female_archetype):
            return "female"
        if self._mentions(archetype, self._keywords.male_archetype):
            return "male"
        return None

    def uses_alternate_pool(self, casta: str) -> bool:
        return casta in self._names.alternate_castas

    def generate_name(
        self,
        *,
        gender: Optional[str] = None,
        casta: Optional[str] = None,
        archetype: Optional[str] = None,
        rng: random.Random | None = None,
    ) -> Dict[str, Optional[str]]:
        rng = rng or self._rng
        resolved_gender = self._normalize_gender(gender)
        if not resolved_gender and archetype:
            resolved_gender = self.infer_gender_from_archetype(archetype) or ""
        if not resolved_gender:
            resolved_gender = self._choose_gender(rng)

        resolved_casta = (casta or self._names.default_casta or "").strip()
        surname: Optional[str]
        if self.uses_alternate_pool(resolved_casta):
            first_name = rng.choice(self._pools[("alternate", resolved_gender)])
            wants_surname = rng.random() < self._names.alternate_surname_chance
            surname = rng.choice(self._surnames) if wants_surname and self._surnames else None
        else:
            first_name = rng.choice(self._pools[("given", resolved_gender)])
            surname = rng.choice(self._surnames) if self._surnames else None

        full_name = f"{first_name} {surname}" if surname else first_name
        if archetype:
            full_name = f"{full_name} ({archetype})"

        return {
            "full_name": full_name,
            "first_name": first_name,
            "surname": surname,
            "gender": resolved_gender,
            "casta": resolved_casta,
            "archetype": archetype or None,
        }
