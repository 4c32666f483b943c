from __future__ import annotations

import re
from typing import List, Optional

from townsfolk.domain.models.scenario import ExtractionVocabulary
from townsfolk.domain.repositories import NameExtractor


DEFAULT_FULL_NAME_PATTERN = (
    r"\b([A-Z][a-záéíóúñ]+)\s+([A-Z][a-záéíóúñ]+(?:\s+de\s+[a-záéíóúñ]+)?(?:\s+[A-Z][a-záéíóúñ]+)?)\b"
)
MAX_LISTED_NAME_LENGTH = 50

_ALSO_PRESENT_RE = re.compile(r"\*\*Also present here:\*\*\s*(.+?)(?:\n|$)", re.IGNORECASE)
_PARENTHETICAL_RE = re.compile(r"\([^)]+\)")
_NAME_TOKEN = r"[A-Z][a-záéíóúñ]+"


class RegexNameExtractor(NameExtractor):
    """Finds candidate person names in generated prose.

    Three passes, in order: ``**Also present here:**`` listings, a title
    followed by capitalized name tokens, and a general full-name pattern
    filtered against the scenario's excluded phrases.
    """

    def __init__(self, vocabulary: ExtractionVocabulary) -> None:
        self._vocabulary = vocabulary
        self._title_re: Optional[re.Pattern[str]] = None
        if vocabulary.titles:
            titles = "|".join(re.escape(title) for title in vocabulary.titles)
            self._title_re = re.compile(rf"\b({titles})\s+({_NAME_TOKEN}(?:\s+{_NAME_TOKEN})*)")
        self._full_name_re = re.compile(vocabulary.full_name_pattern or DEFAULT_FULL_NAME_PATTERN)
        self._excluded = tuple(phrase.lower() for phrase in vocabulary.exclude_phrases)

    def is_excluded(self, phrase: str) -> bool:
        lowered = phrase.lower()
        return any(excluded in lowered for excluded in self._excluded)

    def extract_names(self, text: str) -> List[str]:
        if not text:
            return []
        names: List[str] = []

        for match in _ALSO_PRESENT_RE.finditer(text):
            for raw in match.group(1).split(","):
                name = _PARENTHETICAL_RE.sub("", raw).strip()
                if 0 < len(name) < MAX_LISTED_NAME_LENGTH:
                    names.append(name)

        if self._title_re is not None:
            for match in self._title_re.finditer(text):
                names.append(f"{match.group(1)} {match.group(2)}")

        for match in self._full_name_re.finditer(text):
            candidate = match.group(0)
            if not self.is_excluded(candidate):
                names.append(candidate)

        return list(dict.fromkeys(names))
