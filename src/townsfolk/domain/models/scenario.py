from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from townsfolk.domain.errors import ScenarioContentError


def _strings(payload: Mapping[str, Any], key: str, default: Tuple[str, ...] = ()) -> Tuple[str, ...]:
    value = payload.get(key)
    if value is None:
        return default
    if not isinstance(value, (list, tuple)):
        raise ScenarioContentError(f"'{key}' must be a list of strings")
    return tuple(str(item) for item in value)


def _string_lists(payload: Mapping[str, Any], key: str) -> Dict[str, Tuple[str, ...]]:
    value = payload.get(key) or {}
    if not isinstance(value, Mapping):
        raise ScenarioContentError(f"'{key}' must be a mapping")
    return {str(name): _strings(value, name) for name in value}


def _int_maps(payload: Mapping[str, Any], key: str) -> Dict[str, Dict[str, int]]:
    value = payload.get(key) or {}
    if not isinstance(value, Mapping):
        raise ScenarioContentError(f"'{key}' must be a mapping")
    return {str(name): {str(k): int(v) for k, v in (mods or {}).items()} for name, mods in value.items()}


@dataclass(frozen=True)
class NameTables:
    male_first: Tuple[str, ...] = ()
    female_first: Tuple[str, ...] = ()
    surnames: Tuple[str, ...] = ()
    alternate_male_first: Tuple[str, ...] = ()
    alternate_female_first: Tuple[str, ...] = ()
    alternate_castas: Tuple[str, ...] = ()
    alternate_surname_chance: float = 0.5
    default_casta: str = ""

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "NameTables":
        tables = cls(
            male_first=_strings(payload, "male_first"),
            female_first=_strings(payload, "female_first"),
            surnames=_strings(payload, "surnames"),
            alternate_male_first=_strings(payload, "alternate_male_first"),
            alternate_female_first=_strings(payload, "alternate_female_first"),
            alternate_castas=_strings(payload, "alternate_castas"),
            alternate_surname_chance=float(payload.get("alternate_surname_chance", 0.5)),
            default_casta=str(payload.get("default_casta", "")),
        )
        if not tables.male_first or not tables.female_first:
            raise ScenarioContentError("name tables need male_first and female_first pools")
        return tables


@dataclass(frozen=True)
class GenderKeywords:
    female_archetype: Tuple[str, ...] = ()
    male_archetype: Tuple[str, ...] = ()
    female_occupation: Tuple[str, ...] = ()
    male_occupation: Tuple[str, ...] = ()
    female_name_prefixes: Tuple[str, ...] = ()
    male_name_prefixes: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "GenderKeywords":
        return cls(**{name: _strings(payload, name) for name in cls.__dataclass_fields__})


@dataclass(frozen=True)
class CastaFeatures:
    skin_tones: Tuple[str, ...]
    hair_colors: Tuple[str, ...]
    eye_colors: Tuple[str, ...]


@dataclass(frozen=True)
class AppearanceTables:
    builds: Tuple[str, ...] = ()
    face_shapes: Tuple[str, ...] = ()
    complexions: Tuple[str, ...] = ()
    eye_shapes: Tuple[str, ...] = ()
    nose_shapes: Tuple[str, ...] = ()
    mouth_shapes: Tuple[str, ...] = ()
    jawlines: Tuple[str, ...] = ()
    hair_textures: Tuple[str, ...] = ()
    hair_styles_male: Tuple[str, ...] = ()
    hair_styles_female: Tuple[str, ...] = ()
    facial_hair: Tuple[str, ...] = ()
    distinguishing_features: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    disabilities: Tuple[str, ...] = ()
    chronic_conditions: Tuple[str, ...] = ()
    features_by_casta: Dict[str, CastaFeatures] = field(default_factory=dict)
    default_feature_casta: str = ""
    age_ranges: Dict[str, Tuple[int, int]] = field(default_factory=dict)
    default_age_range: Tuple[int, int] = (20, 55)
    builds_by_occupation: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    elite_build_weights: Dict[str, int] = field(default_factory=dict)

    def features_for(self, casta: Optional[str]) -> Optional[CastaFeatures]:
        return self.features_by_casta.get(casta or "") or self.features_by_casta.get(self.default_feature_casta)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "AppearanceTables":
        features: Dict[str, CastaFeatures] = {}
        for casta, row in (payload.get("features_by_casta") or {}).items():
            features[str(casta)] = CastaFeatures(
                skin_tones=_strings(row, "skin_tones"),
                hair_colors=_strings(row, "hair_colors"),
                eye_colors=_strings(row, "eye_colors"),
            )
        age_ranges = {
            str(key): (int(bounds[0]), int(bounds[1])) for key, bounds in (payload.get("age_ranges") or {}).items()
        }
        default_range = payload.get("default_age_range") or (20, 55)
        scalar_fields = (
            "builds", "face_shapes", "complexions", "eye_shapes", "nose_shapes", "mouth_shapes",
            "jawlines", "hair_textures", "hair_styles_male", "hair_styles_female", "facial_hair",
            "disabilities", "chronic_conditions",
        )
        return cls(
            **{name: _strings(payload, name) for name in scalar_fields},
            distinguishing_features=_string_lists(payload, "distinguishing_features"),
            features_by_casta=features,
            default_feature_casta=str(payload.get("default_feature_casta", "")),
            age_ranges=age_ranges,
            default_age_range=(int(default_range[0]), int(default_range[1])),
            builds_by_occupation=_string_lists(payload, "builds_by_occupation"),
            elite_build_weights={str(k): int(v) for k, v in (payload.get("elite_build_weights") or {}).items()},
        )


@dataclass(frozen=True)
class GarmentTemplate:
    name: str
    materials: Tuple[str, ...] = ()
    colors: Tuple[str, ...] = ()
    decorations: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Wardrobe:
    garments: Tuple[GarmentTemplate, ...] = ()
    accessories: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ClothingTables:
    wardrobes: Dict[str, Dict[str, Wardrobe]] = field(default_factory=dict)
    cleanliness: Tuple[str, ...] = ("clean", "average", "dirty", "filthy")
    conditions: Tuple[str, ...] = ("excellent", "good", "worn", "tattered")

    def wardrobe(self, gender: str, tier: str) -> Wardrobe:
        by_tier = self.wardrobes.get(gender) or self.wardrobes.get("male") or {}
        return by_tier.get(tier) or by_tier.get("common") or Wardrobe()

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ClothingTables":
        wardrobes: Dict[str, Dict[str, Wardrobe]] = {}
        for gender, tiers in (payload.get("wardrobes") or {}).items():
            wardrobes[str(gender)] = {}
            for tier, row in (tiers or {}).items():
                garments = tuple(
                    GarmentTemplate(
                        name=str(item["name"]),
                        materials=_strings(item, "materials"),
                        colors=_strings(item, "colors"),
                        decorations=_strings(item, "decorations"),
                    )
                    for item in row.get("garments", [])
                )
                wardrobes[str(gender)][str(tier)] = Wardrobe(garments=garments, accessories=_strings(row, "accessories"))
        return cls(
            wardrobes=wardrobes,
            cleanliness=_strings(payload, "cleanliness", cls.cleanliness),
            conditions=_strings(payload, "conditions", cls.conditions),
        )


@dataclass(frozen=True)
class PersonaTables:
    """Personality, skill, biography and dialogue tables for procedural NPCs."""

    occupation_modifiers: Dict[str, Dict[str, int]] = field(default_factory=dict)
    occupation_traits: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    occupation_skills: Dict[str, Dict[str, int]] = field(default_factory=dict)
    skill_names: Tuple[str, ...] = ()
    current_year: int = 1680
    immigrant_castas: Tuple[str, ...] = ()
    homeland_birthplaces: Tuple[str, ...] = ()
    local_birthplaces: Tuple[str, ...] = ()
    immigration_reasons: Tuple[str, ...] = ()
    life_events: Tuple[str, ...] = ()
    secrets: Tuple[str, ...] = ()
    greetings: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    farewells: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    occupation_voice: Dict[str, str] = field(default_factory=dict)
    common_ailments: Tuple[str, ...] = ()

    @property
    def fallback_birthplace(self) -> str:
        return self.local_birthplaces[0] if self.local_birthplaces else "unknown"

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "PersonaTables":
        return cls(
            occupation_modifiers=_int_maps(payload, "occupation_modifiers"),
            occupation_traits=_string_lists(payload, "occupation_traits"),
            occupation_skills=_int_maps(payload, "occupation_skills"),
            skill_names=_strings(payload, "skill_names"),
            current_year=int(payload.get("current_year", 1680)),
            immigrant_castas=_strings(payload, "immigrant_castas"),
            homeland_birthplaces=_strings(payload, "homeland_birthplaces"),
            local_birthplaces=_strings(payload, "local_birthplaces"),
            immigration_reasons=_strings(payload, "immigration_reasons"),
            life_events=_strings(payload, "life_events"),
            secrets=_strings(payload, "secrets"),
            greetings=_string_lists(payload, "greetings"),
            farewells=_string_lists(payload, "farewells"),
            occupation_voice={str(k): str(v) for k, v in (payload.get("occupation_voice") or {}).items()},
            common_ailments=_strings(payload, "common_ailments"),
        )


@dataclass(frozen=True)
class SelectionTuning:
    pool_types: Tuple[str, ...] = ("npc", "patient", "antagonist", "state")
    workplace_keywords: Tuple[str, ...] = ("botica", "shop", "apothecary", "pharmacy", "store", "clinic", "office")
    business_hours: Tuple[int, int] = (8, 18)
    morning_hours: Tuple[int, int] = (8, 12)
    evening_hour: int = 18
    encounter_keywords: Tuple[str, ...] = (
        "answer", "open", "door", "greet", "who", "visit", "see", "meet", "talk", "speak", "ask",
        "approach", "enter", "call", "invite", "welcome", "knock",
    )
    avoidance_keywords: Tuple[str, ...] = (
        "sleep", "ignore", "hide", "leave", "go away", "dismiss", "close", "lock", "refuse",
    )
    base_encounter_chance: float = 0.3
    intent_encounter_chance: float = 0.85
    avoidance_encounter_chance: float = 0.05
    elite_classes: Tuple[str, ...] = ("elite", "noble")
    common_classes: Tuple[str, ...] = ("poor", "laborer", "common")
    faction_keywords: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    debt_collector_tag: str = "debt-collector-primary"
    low_wealth_threshold: float = 20

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "SelectionTuning":
        defaults = cls()
        business = payload.get("business_hours") or defaults.business_hours
        morning = payload.get("morning_hours") or defaults.morning_hours
        return cls(
            pool_types=_strings(payload, "pool_types", defaults.pool_types),
            workplace_keywords=_strings(payload, "workplace_keywords", defaults.workplace_keywords),
            business_hours=(int(business[0]), int(business[1])),
            morning_hours=(int(morning[0]), int(morning[1])),
            evening_hour=int(payload.get("evening_hour", defaults.evening_hour)),
            encounter_keywords=_strings(payload, "encounter_keywords", defaults.encounter_keywords),
            avoidance_keywords=_strings(payload, "avoidance_keywords", defaults.avoidance_keywords),
            base_encounter_chance=float(payload.get("base_encounter_chance", defaults.base_encounter_chance)),
            intent_encounter_chance=float(payload.get("intent_encounter_chance", defaults.intent_encounter_chance)),
            avoidance_encounter_chance=float(
                payload.get("avoidance_encounter_chance", defaults.avoidance_encounter_chance)
            ),
            elite_classes=_strings(payload, "elite_classes", defaults.elite_classes),
            common_classes=_strings(payload, "common_classes", defaults.common_classes),
            faction_keywords=_string_lists(payload, "faction_keywords"),
            debt_collector_tag=str(payload.get("debt_collector_tag", defaults.debt_collector_tag)),
            low_wealth_threshold=float(payload.get("low_wealth_threshold", defaults.low_wealth_threshold)),
        )


@dataclass(frozen=True)
class ExtractionVocabulary:
    titles: Tuple[str, ...] = ()
    feminine_titles: Tuple[str, ...] = ()
    masculine_titles: Tuple[str, ...] = ()
    elite_titles: Tuple[str, ...] = ()
    religious_titles: Tuple[str, ...] = ()
    professional_titles: Tuple[str, ...] = ()
    professional_occupations: Dict[str, str] = field(default_factory=dict)
    occupations_by_class: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    full_name_pattern: str = ""
    exclude_phrases: Tuple[str, ...] = ()
    protagonist_name: str = ""
    default_class: str = "common"
    languages: Tuple[str, ...] = ()
    default_casta: str = ""

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ExtractionVocabulary":
        return cls(
            titles=_strings(payload, "titles"),
            feminine_titles=_strings(payload, "feminine_titles"),
            masculine_titles=_strings(payload, "masculine_titles"),
            elite_titles=_strings(payload, "elite_titles"),
            religious_titles=_strings(payload, "religious_titles"),
            professional_titles=_strings(payload, "professional_titles"),
            professional_occupations={
                str(k): str(v) for k, v in (payload.get("professional_occupations") or {}).items()
            },
            occupations_by_class=_string_lists(payload, "occupations_by_class"),
            full_name_pattern=str(payload.get("full_name_pattern", "")),
            exclude_phrases=_strings(payload, "exclude_phrases"),
            protagonist_name=str(payload.get("protagonist_name", "")),
            default_class=str(payload.get("default_class", "common")),
            default_casta=str(payload.get("default_casta", "")),
            languages=_strings(payload, "languages"),
        )


@dataclass(frozen=True)
class ScenarioContent:
    id: str
    title: str = ""
    names: NameTables = field(default_factory=NameTables)
    gender: GenderKeywords = field(default_factory=GenderKeywords)
    appearance: AppearanceTables = field(default_factory=AppearanceTables)
    clothing: ClothingTables = field(default_factory=ClothingTables)
    persona: PersonaTables = field(default_factory=PersonaTables)
    selection: SelectionTuning = field(default_factory=SelectionTuning)
    extraction: ExtractionVocabulary = field(default_factory=ExtractionVocabulary)
    condition_rules: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)
    critical_deadlines: List[Dict[str, Any]] = field(default_factory=list)
    static_entities: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ScenarioContent":
        scenario_id = str(payload.get("id") or "").strip()
        if not scenario_id:
            raise ScenarioContentError("scenario content requires an 'id'")
        try:
            return cls(
                id=scenario_id,
                title=str(payload.get("title") or scenario_id),
                names=NameTables.from_dict(payload.get("names") or {}),
                gender=GenderKeywords.from_dict(payload.get("gender") or {}),
                appearance=AppearanceTables.from_dict(payload.get("appearance") or {}),
                clothing=ClothingTables.from_dict(payload.get("clothing") or {}),
                persona=PersonaTables.from_dict(payload.get("persona") or {}),
                selection=SelectionTuning.from_dict(payload.get("selection") or {}),
                extraction=ExtractionVocabulary.from_dict(payload.get("extraction") or {}),
                condition_rules={
                    str(name): [dict(clause) for clause in clauses]
                    for name, clauses in (payload.get("condition_rules") or {}).items()
                },
                critical_deadlines=[dict(row) for row in payload.get("critical_deadlines") or []],
                static_entities=[dict(row) for row in payload.get("static_entities") or []],
            )
        except (KeyError, TypeError, IndexError) as exc:
            raise ScenarioContentError(f"malformed scenario '{scenario_id}': {exc}") from exc
