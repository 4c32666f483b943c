from __future__ import annotations

import logging
import random
from typing import Any, Dict, Iterable, List, Optional

from townsfolk.application.dtos import ExplicitEntityMention, ExtractionReport
from townsfolk.application.services.enrichment_pipeline import EnrichmentPipeline
from townsfolk.application.services.entity_store import EntityStore
from townsfolk.application.services.log_throttle import RateLimitedLogger
from townsfolk.domain.errors import EntityValidationError
from townsfolk.domain.models.entity import Entity, EntityTier, EntityType, normalize_name
from townsfolk.domain.models.relationship import Relationship
from townsfolk.domain.models.scenario import ExtractionVocabulary, PersonaTables
from townsfolk.domain.repositories import NameExtractor


logger = logging.getLogger(__name__)

_TIER_CLASSES = {
    EntityTier.STORY_CRITICAL.value: "elite",
    EntityTier.RECURRING.value: "middling",
}
_WEALTH_BY_CLASS = {"elite": "wealthy", "middling": "comfortable"}
_LITERACY_BY_CLASS = {"elite": "well-educated", "middling": "literate"}
_FALLBACK_OCCUPATION = "laborer"


class NarrativeEntityExtractor:
    """Turns people mentioned in generated prose into registered entities.

    Structured mentions supplied by the narrative collaborator are handled
    first; regex extraction over the prose catches the names it missed.
    """

    def __init__(
        self,
        store: EntityStore,
        name_extractor: NameExtractor,
        pipeline: EnrichmentPipeline | None,
        vocabulary: ExtractionVocabulary,
        *,
        persona: PersonaTables | None = None,
        rng: random.Random | None = None,
        log: RateLimitedLogger | None = None,
    ) -> None:
        self.store = store
        self.name_extractor = name_extractor
        self.pipeline = pipeline
        self.vocabulary = vocabulary
        self.persona = persona or PersonaTables()
        self._rng = rng or random.Random()
        self._log = log or RateLimitedLogger(logger)

    def _is_protagonist(self, name: str) -> bool:
        protagonist = normalize_name(self.vocabulary.protagonist_name)
        return bool(protagonist) and protagonist in normalize_name(name)

    def _known(self, name: str) -> bool:
        return self.store.get_raw_by_name(name) is not None

    # -- structured mentions ----------------------------------------------

    def process_explicit_entities(self, mentions: Iterable[ExplicitEntityMention]) -> ExtractionReport:
        report = ExtractionReport()
        for mention in mentions:
            text = (mention.text or "").strip()
            if not text:
                continue
            if self._known(text):
                report.skipped.append(text)
                self._log.debug("extraction.known", normalize_name(text), "%r already registered", text)
                continue
            try:
                entity = self.store.register(self.build_mention_record(mention))
            except EntityValidationError as exc:
                report.failures.append((text, exc))
                logger.exception("Explicit entity rejected", extra={"entity_name": text})
                continue
            report.new_entities.append(entity)
        return report

    def build_mention_record(self, mention: ExplicitEntityMention) -> Dict[str, Any]:
        demographics = dict(mention.demographics or {})
        tier = mention.tier or EntityTier.BACKGROUND.value
        record: Dict[str, Any] = {
            "type": mention.entity_type or EntityType.NPC.value,
            "name": mention.text.strip(),
            "tier": tier,
            "clickable": True,
            "description": mention.description or f"Encountered: {mention.text.strip()}",
            "social": {
                "occupation": mention.occupation or "unknown",
                "class": demographics.get("class") or _TIER_CLASSES.get(tier, "common"),
                "casta": demographics.get("casta") or "unknown",
            },
            "metadata": {"data_source": "llm-generated"},
        }
        if demographics:
            record["appearance"] = {
                "gender": demographics.get("gender") or "unknown",
                "age": demographics.get("age") or "adult",
            }
        return record

    # -- prose fallback ---------------------------------------------------

    def process_narrative(self, narrative: str) -> ExtractionReport:
        report = ExtractionReport()
        for name in self.name_extractor.extract_names(narrative):
            try:
                if self._known(name) or self._is_protagonist(name):
                    report.skipped.append(name)
                    continue
                record = self.build_procedural_record(name, narrative)
                entity = self.store.register(record)
            except Exception as exc:
                report.failures.append((name, exc))
                logger.exception("Narrative extraction failed for candidate", extra={"entity_name": name})
                continue
            report.new_entities.append(entity)
        return report

    def infer_details(self, name: str, narrative: str = "") -> Dict[str, Any]:
        vocab = self.vocabulary
        lowered = name.lower()
        details: Dict[str, Any] = {
            "name": name,
            "gender": "male",
            "social_class": vocab.default_class or "common",
            "occupation": None,
            "casta": vocab.default_casta or "mestizo",
            "type": EntityType.NPC.value,
        }

        def has_title(titles: Iterable[str]) -> bool:
            return any(title.lower() in lowered for title in titles)

        if has_title(vocab.feminine_titles):
            details["gender"] = "female"
        if has_title(vocab.elite_titles):
            details["social_class"] = "elite"
            details["casta"] = "español"
        if has_title(vocab.religious_titles):
            details["social_class"] = "middling"
            details["occupation"] = "priest"
        for title in vocab.professional_titles:
            if title.lower() in lowered:
                details["social_class"] = "middling"
                occupation = vocab.professional_occupations.get(title)
                if occupation:
                    details["occupation"] = occupation

        text = narrative or ""
        if "merchant" in text and name in text:
            details["occupation"] = "merchant"
            details["social_class"] = "elite" if details["social_class"] == "elite" else "middling"
        elif "herb woman" in text or "herbalist" in text:
            details.update(occupation="herbalist", social_class="common", gender="female")
        elif "patient" in text or "symptoms" in text or "sick" in text:
            details.update(occupation="patient", type=EntityType.PATIENT.value)
        return details

    def _occupation_for(self, social_class: str) -> str:
        table = self.vocabulary.occupations_by_class
        options = table.get(social_class) or table.get("common") or ()
        return self._rng.choice(list(options)) if options else _FALLBACK_OCCUPATION

    def build_procedural_record(self, name: str, narrative: str = "") -> Dict[str, Any]:
        details = self.infer_details(name, narrative)
        social_class = str(details["social_class"])
        record: Dict[str, Any] = {
            "id": f"npc_{normalize_name(name).replace(' ', '_')}",
            "type": details["type"],
            "name": name,
            "tier": EntityTier.BACKGROUND.value,
            "clickable": True,
            "appearance": {"gender": details["gender"]},
            "social": {
                "class": social_class,
                "casta": details["casta"],
                "occupation": details["occupation"] or self._occupation_for(social_class),
                "wealth": _WEALTH_BY_CLASS.get(social_class, "poor"),
                "literacy_level": _LITERACY_BY_CLASS.get(social_class, "illiterate"),
                "languages": list(self.vocabulary.languages),
                "reputation": self._rng.randint(40, 70),
                "faction": None,
            },
            "relationships": {"player": Relationship(other_id="player").to_dict()},
            "metadata": {"data_source": "procedural"},
        }
        if details["type"] == EntityType.PATIENT.value:
            record["medical_history"] = self._medical_history()

        if self.pipeline is not None:
            enriched = self.pipeline.enrich(Entity.from_record(record))
            record = enriched.to_record()
        return record

    def _medical_history(self) -> Dict[str, Any]:
        ailments = list(self.persona.common_ailments) or ["fever"]
        count = min(len(ailments), self._rng.randint(2, 4))
        symptoms = self._rng.sample(ailments, count)
        return {
            "current_symptoms": symptoms,
            "diagnosis": None,
            "treatments": [],
            "visit_history": [],
            "notes": f"Presenting with: {', '.join(symptoms)}.",
        }


def merge_reports(*reports: Optional[ExtractionReport]) -> ExtractionReport:
    merged = ExtractionReport()
    for report in reports:
        if report is None:
            continue
        merged.new_entities.extend(report.new_entities)
        merged.skipped.extend(report.skipped)
        merged.failures.extend(report.failures)
    return merged
