from __future__ import annotations

import copy
import logging
import random
import re
from typing import Any, Callable, Dict, Optional, Tuple

from townsfolk.application.services.log_throttle import RateLimitedLogger
from townsfolk.application.services.item_facets import ProceduralItemGenerator
from townsfolk.application.services.npc_facets import ProceduralNpcGenerator, basic_big_five
from townsfolk.domain.models.entity import PERSON_TYPES, Entity, EntityType, deep_merge, template_archetype
from townsfolk.domain.models.scenario import ScenarioContent
from townsfolk.domain.repositories import NameGenerator
from townsfolk.domain.services.temperament import calculate_temperament


FacetFactory = Callable[[Entity], Any]

PERSON_FACETS = ("appearance", "clothing", "personality", "dialogue", "biography", "skills")
ITEM_FACETS = ("item_appearance", "combat")
DEFAULT_MAX_INTERACTIONS = 10

_FACET_METHODS = {
    "appearance": "generate_appearance",
    "clothing": "generate_clothing",
    "personality": "generate_personality",
    "dialogue": "generate_dialogue",
    "biography": "generate_biography",
    "skills": "generate_skills",
}
_ITEM_FACET_METHODS = {"item_appearance": "generate_appearance", "combat": "generate_combat"}


def facet_missing(entity: Entity, facet: str) -> bool:
    """True when the facet lacks its defining sub-field."""
    if facet == "appearance":
        return not entity.facet("appearance").get("age")
    if facet == "clothing":
        return not entity.facet("clothing").get("items")
    if facet == "personality":
        return not entity.facet("personality").get("big_five")
    if facet == "dialogue":
        return not entity.facet("dialogue").get("greeting")
    if facet == "biography":
        return not entity.facet("biography").get("birthplace")
    if facet == "skills":
        return not entity.attributes.get("skills")
    if facet == "item_appearance":
        return not entity.facet("appearance").get("form")
    if facet == "combat":
        return not entity.attributes.get("combat")
    raise ValueError(f"Unknown facet: {facet}")


class EnrichmentPipeline:
    """Derives the enriched view of a raw entity without removing any raw field."""

    def __init__(
        self,
        scenario: ScenarioContent,
        *,
        name_generator: NameGenerator | None = None,
        rng: random.Random | None = None,
        log: RateLimitedLogger | None = None,
    ) -> None:
        self._scenario = scenario
        self._name_generator = name_generator
        self._rng = rng or random.Random()
        self._log = log or RateLimitedLogger(logging.getLogger(__name__))
        self._generators: Dict[str, FacetFactory] = {}

    # -- generator registry ----------------------------------------------

    def register_generator(self, facet: str, factory: FacetFactory) -> None:
        if facet not in PERSON_FACETS and facet not in ITEM_FACETS:
            raise ValueError(f"Unknown facet: {facet}")
        self._generators[facet] = factory

    def register_npc_generator(self, generator: object) -> None:
        for facet, method_name in _FACET_METHODS.items():
            method = getattr(generator, method_name, None)
            if callable(method):
                self._generators[facet] = method

    def register_item_generator(self, generator: object) -> None:
        for facet, method_name in _ITEM_FACET_METHODS.items():
            method = getattr(generator, method_name, None)
            if callable(method):
                self._generators[facet] = method

    def set_name_generator(self, name_generator: NameGenerator | None) -> None:
        self._name_generator = name_generator

    def has_generator(self, facet: str) -> bool:
        return facet in self._generators

    # -- enrichment --------------------------------------------------------

    def enrich(self, entity: Entity) -> Entity:
        enriched = copy.deepcopy(entity)
        enriched.metadata.setdefault("data_source", "mixed")
        if enriched.entity_type in PERSON_TYPES:
            self._enrich_person(enriched)
        elif enriched.entity_type == EntityType.ITEM.value:
            self._enrich_item(enriched)
        return enriched

    def _enrich_person(self, entity: Entity) -> None:
        if entity.is_template:
            self.resolve_template(entity)

        appearance = entity.attributes.setdefault("appearance", {})
        if appearance.get("gender") in (None, "", "unknown"):
            appearance["gender"] = entity.attributes.get("gender") or self.infer_gender(entity)

        for facet in PERSON_FACETS:
            if not facet_missing(entity, facet):
                continue
            factory = self._generators.get(facet)
            if factory is not None:
                generated = factory(entity)
            else:
                self._log.debug("enrichment.fallback", entity.id, "No %s generator registered; using fallback", facet)
                generated = self._fallback(facet, entity)
            self._splice(entity, facet, generated)

        personality = entity.attributes.get("personality")
        if isinstance(personality, dict) and personality.get("big_five") and not personality.get("temperament"):
            personality["temperament"] = calculate_temperament(personality["big_five"])

        entity.attributes.setdefault(
            "memory",
            {"interactions": [], "max_interactions": DEFAULT_MAX_INTERACTIONS, "archived_summary": ""},
        )
        entity.attributes.setdefault("relationships", {})

    def _enrich_item(self, entity: Entity) -> None:
        for facet in ITEM_FACETS:
            factory = self._generators.get(facet)
            if factory is None or not facet_missing(entity, facet):
                continue
            key = "appearance" if facet == "item_appearance" else facet
            self._splice(entity, key, factory(entity))

    @staticmethod
    def _splice(entity: Entity, key: str, generated: Any) -> None:
        existing = entity.attributes.get(key)
        if isinstance(generated, dict) and isinstance(existing, dict):
            entity.attributes[key] = deep_merge(generated, _populated(existing))
        else:
            entity.attributes[key] = generated

    # -- identity --------------------------------------------------------

    def resolve_template(self, entity: Entity) -> bool:
        if self._name_generator is None:
            self._log.warning("enrichment.template_unresolved", entity.id, "Template entity left unresolved; no name generator")
            return False

        archetype = template_archetype(entity.name)
        gender = entity.gender if entity.gender in {"male", "female"} else None
        social = entity.attributes.setdefault("social", {})
        casta = social.get("casta") or entity.attributes.get("casta") or self._scenario.names.default_casta or None

        generated = self._name_generator.generate_name(gender=gender, casta=casta, archetype=archetype or None)

        entity.name = str(generated["full_name"])
        entity.attributes["first_name"] = generated.get("first_name")
        entity.attributes["surname"] = generated.get("surname")
        entity.attributes["archetype"] = archetype
        entity.attributes["is_template"] = False
        entity.attributes.setdefault("appearance", {})["gender"] = generated.get("gender")
        social["casta"] = generated.get("casta")
        if not social.get("occupation") and archetype:
            social["occupation"] = archetype.lower()
        return True

    def infer_gender(self, entity: Entity) -> str:
        keywords = self._scenario.gender
        occupation = str(entity.facet("social").get("occupation") or "")
        if occupation:
            if _has_word(occupation, keywords.female_occupation):
                return "female"
            if _has_word(occupation, keywords.male_occupation):
                return "male"
        name = entity.name or ""
        if _has_prefix(name, keywords.female_name_prefixes):
            return "female"
        if _has_prefix(name, keywords.male_name_prefixes):
            return "male"
        return "unknown"

    # -- fallbacks ---------------------------------------------------------

    def _fallback(self, facet: str, entity: Entity) -> Any:
        occupation = entity.facet("social").get("occupation")
        if facet == "personality":
            big_five = basic_big_five(occupation, self._scenario.persona.occupation_modifiers, self._rng)
            return {"big_five": big_five, "temperament": calculate_temperament(big_five), "traits": []}
        if facet == "appearance":
            low, high = self._scenario.appearance.default_age_range
            return {"age": self._rng.randint(low, high)}
        if facet == "clothing":
            return {
                "style": str(occupation or "common"),
                "quality": "common",
                "cleanliness": "average",
                "items": [{"garment": "plain clothes", "material": "linen", "color": "undyed", "condition": "worn", "decorations": []}],
                "accessories": [],
            }
        if facet == "dialogue":
            return {"greeting": "Good day.", "farewell": "Farewell.", "personality_prompt": "unremarkable", "voice_style": "straightforward"}
        if facet == "biography":
            return {"birthplace": self._scenario.persona.fallback_birthplace, "major_events": [], "secrets": []}
        if facet == "skills":
            names = self._scenario.persona.skill_names or ("trade", "literacy", "craft")
            return {name: 0 for name in names}
        raise ValueError(f"Unknown facet: {facet}")


def _populated(values: Dict[str, Any]) -> Dict[str, Any]:
    """Drop placeholder values so generated data can fill them."""
    kept: Dict[str, Any] = {}
    for key, value in values.items():
        if isinstance(value, dict):
            value = _populated(value)
        if value in (None, "", "unknown") or value == [] or value == {}:
            continue
        kept[key] = value
    return kept


def _has_word(text: str, words: Tuple[str, ...]) -> bool:
    lowered = text.lower()
    return any(re.search(r"\b" + re.escape(word.lower()) + r"\b", lowered) for word in words)


def _has_prefix(name: str, prefixes: Tuple[str, ...]) -> bool:
    stripped = name.strip()
    return any(re.match(re.escape(prefix) + r"\b", stripped, re.IGNORECASE) for prefix in prefixes)


def default_pipeline_generators(
    pipeline: EnrichmentPipeline,
    scenario: ScenarioContent,
    *,
    rng: Optional[random.Random] = None,
) -> EnrichmentPipeline:
    """Register the procedural npc and item generators on ``pipeline``."""
    pipeline.register_npc_generator(ProceduralNpcGenerator(scenario, rng=rng))
    pipeline.register_item_generator(ProceduralItemGenerator(rng=rng))
    return pipeline
