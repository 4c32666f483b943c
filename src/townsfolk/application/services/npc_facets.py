from __future__ import annotations

import random
import re
from typing import Any, Dict, List, Mapping, Optional, Sequence, TypeVar

from townsfolk.domain.models.entity import Entity
from townsfolk.domain.models.scenario import ScenarioContent
from townsfolk.domain.services.temperament import calculate_temperament


T = TypeVar("T")

BIG_FIVE_TRAITS = ("openness", "conscientiousness", "extraversion", "agreeableness", "neuroticism")

_HEIGHT_MODS = {"thin": -2, "slight": -3, "wiry": -1, "average": 0, "stocky": 1, "muscular": 2, "portly": 1, "corpulent": 0}
_WEIGHT_MODS = {
    "thin": 0.8, "slight": 0.75, "wiry": 0.85, "average": 1.0,
    "stocky": 1.15, "muscular": 1.2, "portly": 1.3, "corpulent": 1.5,
}
_TRAIT_WORDS = {
    "extraversion": (("outgoing", "talkative", "sociable"), ("reserved", "quiet", "shy")),
    "agreeableness": (("kind", "friendly", "compassionate"), ("gruff", "unfriendly", "callous")),
    "conscientiousness": (("meticulous", "organized", "disciplined"), ("disorganized", "careless", "lazy")),
    "neuroticism": (("anxious", "nervous", "worried"), ("calm", "stable", "unflappable")),
    "openness": (("curious", "imaginative", "open-minded"), ("traditional", "conventional", "close-minded")),
}
_MAX_TRAITS = 4
_HEIGHT_RE = re.compile(r"^(\d+)'(\d+)")


def match_occupation(occupation: object, table: Mapping[str, T]) -> Optional[str]:
    """Exact key first, then the first key found as a whole word in the occupation."""
    text = str(occupation or "").strip().lower()
    if not text:
        return None
    if text in table:
        return text
    for key in table:
        if re.search(r"\b" + re.escape(key) + r"\b", text):
            return key
    return None


def clamp_score(value: float) -> int:
    return max(0, min(100, int(value)))


def basic_big_five(occupation: object, modifiers: Mapping[str, Mapping[str, int]], rng: random.Random) -> Dict[str, int]:
    scores = {trait: rng.randint(30, 70) for trait in BIG_FIVE_TRAITS}
    key = match_occupation(occupation, modifiers)
    if key is not None:
        for trait, delta in modifiers[key].items():
            if trait in scores:
                scores[trait] = clamp_score(scores[trait] + delta)
    return scores


class ProceduralNpcGenerator:
    """Scenario-table driven facets for npc and patient entities."""

    def __init__(self, scenario: ScenarioContent, *, rng: random.Random | None = None) -> None:
        self._scenario = scenario
        self._rng = rng or random.Random()

    def _pick(self, options: Sequence[T], default: T) -> T:
        return self._rng.choice(list(options)) if options else default

    @staticmethod
    def _occupation(entity: Entity) -> str:
        return str(entity.facet("social").get("occupation") or "").lower()

    # -- appearance -----------------------------------------------------

    def generate_appearance(self, entity: Entity) -> Dict[str, Any]:
        tables = self._scenario.appearance
        appearance = dict(entity.facet("appearance"))
        occupation = self._occupation(entity)
        social = entity.facet("social")

        if not appearance.get("age"):
            key = match_occupation(occupation, tables.age_ranges)
            low, high = tables.age_ranges[key] if key else tables.default_age_range
            appearance["age"] = self._rng.randint(low, high)
        if appearance.get("gender") not in {"male", "female"}:
            appearance["gender"] = "male" if self._rng.random() > 0.5 else "female"
        if not appearance.get("build"):
            appearance["build"] = self._build(occupation, str(social.get("class") or ""))
        if not appearance.get("height"):
            appearance["height"] = self._height(appearance["gender"], appearance["build"])
        if not appearance.get("weight"):
            appearance["weight"] = self._weight(appearance["gender"], appearance["build"], appearance["height"])
        if not appearance.get("face"):
            appearance["face"] = self._face(social.get("casta"))
        if not appearance.get("hair"):
            appearance["hair"] = self._hair(appearance["gender"], int(appearance["age"]), social.get("casta"))
        if not appearance.get("distinguishing_features"):
            appearance["distinguishing_features"] = self._distinguishing_features(occupation, int(appearance["age"]))
        if not appearance.get("disabilities"):
            appearance["disabilities"] = (
                [self._pick(tables.disabilities, "lame leg")] if self._rng.random() < 0.10 else []
            )
        if not appearance.get("chronic_conditions"):
            appearance["chronic_conditions"] = self._chronic_conditions(int(appearance["age"]))
        return appearance

    def _build(self, occupation: str, social_class: str) -> str:
        tables = self._scenario.appearance
        if social_class == "elite" and tables.elite_build_weights:
            builds = list(tables.elite_build_weights)
            weights = [tables.elite_build_weights[build] for build in builds]
            return self._rng.choices(builds, weights=weights, k=1)[0]
        key = match_occupation(occupation, tables.builds_by_occupation)
        if key is not None:
            return self._pick(tables.builds_by_occupation[key], "average")
        return self._pick(tables.builds, "average")

    def _height(self, gender: str, build: str) -> str:
        base = 66 if gender == "male" else 61
        total = base + _HEIGHT_MODS.get(build, 0) + self._rng.randint(-2, 2)
        return f"{total // 12}'{total % 12}\""

    @staticmethod
    def _weight(gender: str, build: str, height: str) -> str:
        match = _HEIGHT_RE.match(str(height))
        inches = int(match.group(1)) * 12 + int(match.group(2)) if match else 64
        if gender == "male":
            base = (inches - 60) * 3 + 130
        else:
            base = (inches - 60) * 2.5 + 110
        return f"{round(base * _WEIGHT_MODS.get(build, 1.0))} lbs"

    def _face(self, casta: Optional[str]) -> Dict[str, Any]:
        tables = self._scenario.appearance
        features = tables.features_for(casta)
        return {
            "shape": self._pick(tables.face_shapes, "oval"),
            "skin_tone": self._pick(features.skin_tones if features else (), "olive"),
            "complexion": self._pick(tables.complexions, "weathered"),
            "eye_color": self._pick(features.eye_colors if features else (), "brown"),
            "eye_shape": self._pick(tables.eye_shapes, "almond-shaped"),
            "nose_shape": self._pick(tables.nose_shapes, "straight"),
            "mouth_shape": self._pick(tables.mouth_shapes, "full"),
            "jawline": self._pick(tables.jawlines, "rounded"),
        }

    def _hair(self, gender: str, age: int, casta: Optional[str]) -> Dict[str, Any]:
        tables = self._scenario.appearance
        features = tables.features_for(casta)
        hair: Dict[str, Any] = {
            "color": self._pick(features.hair_colors if features else (), "black"),
            "texture": self._pick(tables.hair_textures, "straight"),
        }
        if age > 50:
            if self._rng.random() < 0.5:
                hair["color"] = "white" if age > 65 else "grey"
            else:
                hair["color"] = f"greying {hair['color']}"
        if gender == "male":
            hair["style"] = self._pick(tables.hair_styles_male, "short")
            hair["facial_hair"] = self._pick(tables.facial_hair, "clean-shaven")
            if age > 40 and self._rng.random() < 0.3:
                hair["style"] = self._rng.choice(["balding", "receding"])
        else:
            hair["style"] = self._pick(tables.hair_styles_female, "long and braided")
            hair["facial_hair"] = ""
        return hair

    def _distinguishing_features(self, occupation: str, age: int) -> List[Dict[str, str]]:
        catalogue = self._scenario.appearance.distinguishing_features
        features: List[Dict[str, str]] = []
        if self._rng.random() > 0.7 or not catalogue:
            return features

        count = 2 if self._rng.random() > 0.7 else 1
        for _ in range(count):
            feature_type = self._rng.choice(sorted(catalogue))
            variation = self._pick(catalogue[feature_type], "")
            features.append({"type": feature_type, "location": variation, "description": f"{feature_type} - {variation}"})

        if age > 60 and self._rng.random() < 0.4:
            features.append({"type": "feature", "location": "face", "description": "deeply wrinkled face"})
        if occupation == "soldier" and self._rng.random() < 0.6:
            location = self._rng.choice(["face", "arm", "leg", "chest"])
            features.append({"type": "scar", "location": location, "description": "battle scar from combat"})
        if occupation == "laborer" and self._rng.random() < 0.5:
            features.append({"type": "marking", "location": "hands", "description": "heavily calloused and scarred hands"})
        return features

    def _chronic_conditions(self, age: int) -> List[str]:
        pool = self._scenario.appearance.chronic_conditions
        conditions: List[str] = []
        if not pool or self._rng.random() >= max(0.0, (age - 30) / 100):
            return conditions
        count = 2 if self._rng.random() > 0.7 else 1
        for _ in range(count):
            condition = self._rng.choice(list(pool))
            if condition not in conditions:
                conditions.append(condition)
        return conditions

    # -- personality ----------------------------------------------------

    def generate_personality(self, entity: Entity) -> Dict[str, Any]:
        persona = self._scenario.persona
        occupation = self._occupation(entity)
        big_five = basic_big_five(occupation, persona.occupation_modifiers, self._rng)
        return {
            "big_five": big_five,
            "temperament": calculate_temperament(big_five),
            "traits": self._traits(big_five, occupation),
        }

    def _traits(self, big_five: Mapping[str, int], occupation: str) -> List[str]:
        traits: List[str] = []
        for trait in ("extraversion", "agreeableness", "conscientiousness", "neuroticism", "openness"):
            high_words, low_words = _TRAIT_WORDS[trait]
            if big_five[trait] > 65:
                traits.append(self._rng.choice(high_words))
            elif big_five[trait] < 35:
                traits.append(self._rng.choice(low_words))
        key = match_occupation(occupation, self._scenario.persona.occupation_traits)
        if key is not None:
            traits.append(self._pick(self._scenario.persona.occupation_traits[key], "unremarkable"))
        return traits[:_MAX_TRAITS]

    # -- clothing -------------------------------------------------------

    def generate_clothing(self, entity: Entity) -> Dict[str, Any]:
        tables = self._scenario.clothing
        gender = str(entity.facet("appearance").get("gender") or "male")
        social_class = str(entity.facet("social").get("class") or "common")
        if social_class == "elite":
            tier = "elite"
        elif social_class in {"merchant", "middling"}:
            tier = "middling"
        else:
            tier = "common"
        wardrobe = tables.wardrobe(gender, tier)

        clothing: Dict[str, Any] = {
            "style": self._occupation(entity) or "common",
            "quality": {"elite": "luxurious", "middling": "fine"}.get(tier, "common"),
            "cleanliness": self._pick(tables.cleanliness, "average"),
            "items": [],
            "accessories": [],
        }
        for template in wardrobe.garments:
            if not template.materials or not template.colors:
                continue
            clothing["items"].append(
                {
                    "garment": template.name,
                    "material": self._rng.choice(list(template.materials)),
                    "color": self._rng.choice(list(template.colors)),
                    "condition": self._pick(tables.conditions, "worn"),
                    "decorations": [self._rng.choice(list(template.decorations))] if template.decorations else [],
                }
            )
        if wardrobe.accessories:
            metals = ["gold", "silver"] if tier == "elite" else ["iron", "brass", "wood"]
            for _ in range(self._rng.randint(1, min(3, len(wardrobe.accessories)))):
                accessory = self._rng.choice(list(wardrobe.accessories))
                if any(row["item"] == accessory for row in clothing["accessories"]):
                    continue
                clothing["accessories"].append({"item": accessory, "material": self._rng.choice(metals), "description": ""})
        return clothing

    # -- biography ------------------------------------------------------

    def generate_biography(self, entity: Entity) -> Dict[str, Any]:
        persona = self._scenario.persona
        age = int(entity.facet("appearance").get("age") or 30)
        casta = str(entity.facet("social").get("casta") or self._scenario.extraction.default_casta or "")
        occupation = self._occupation(entity) or "laborer"
        birth_year = persona.current_year - age

        biography: Dict[str, Any] = {
            "birth_year": birth_year,
            "birthplace": "",
            "immigration_year": None,
            "immigration_reason": "",
            "major_events": [],
            "secrets": [],
        }
        if casta in persona.immigrant_castas and persona.homeland_birthplaces:
            biography["birthplace"] = self._rng.choice(list(persona.homeland_birthplaces))
            if age < 50:
                biography["immigration_year"] = birth_year + self._rng.randint(18, 30)
                biography["immigration_reason"] = self._pick(persona.immigration_reasons, "")
        else:
            biography["birthplace"] = self._pick(persona.local_birthplaces, persona.fallback_birthplace)

        seen_years: set[int] = set()
        for _ in range(self._rng.randint(2, 4)):
            year = birth_year + self._rng.randint(15, max(15, age - 5))
            if year in seen_years or not persona.life_events:
                continue
            seen_years.add(year)
            event = self._rng.choice(list(persona.life_events)).format(occupation=occupation)
            biography["major_events"].append({"year": year, "event": event})
        biography["major_events"].sort(key=lambda row: row["year"])

        if persona.secrets and self._rng.random() < 0.2:
            biography["secrets"].append(self._rng.choice(list(persona.secrets)))
        return biography

    # -- skills ---------------------------------------------------------

    def generate_skills(self, entity: Entity) -> Dict[str, int]:
        persona = self._scenario.persona
        occupation = self._occupation(entity) or "laborer"
        age = int(entity.facet("appearance").get("age") or 30)

        skills = {name: 0 for name in persona.skill_names}
        key = match_occupation(occupation, persona.occupation_skills)
        if key is not None:
            skills.update(persona.occupation_skills[key])

        bonus = ((age - 20) // 5) * 5
        return {name: min(100, value + bonus) if value > 0 else value for name, value in skills.items()}

    # -- dialogue -------------------------------------------------------

    def generate_dialogue(self, entity: Entity) -> Dict[str, Any]:
        persona = self._scenario.persona
        big_five = entity.facet("personality").get("big_five") or {}
        relationship = entity.get_path("relationships", "player", "value", default=50)
        relationship = 50 if relationship is None else int(relationship)
        band = "high" if relationship > 65 else "low" if relationship < 35 else "neutral"

        traits = entity.facet("personality").get("traits") or []
        styles: List[str] = []
        if big_five:
            if big_five.get("extraversion", 50) > 65:
                styles.append("enthusiastic")
            if big_five.get("extraversion", 50) < 35:
                styles.append("reserved")
            if big_five.get("conscientiousness", 50) > 65:
                styles.append("formal")
            if big_five.get("conscientiousness", 50) < 35:
                styles.append("casual")
            if big_five.get("openness", 50) > 65:
                styles.append("flowery language")
        voice_key = match_occupation(self._occupation(entity), persona.occupation_voice)
        if voice_key is not None:
            styles.append(persona.occupation_voice[voice_key])

        return {
            "greeting": self._pick(persona.greetings.get(band, ()), "Good day."),
            "farewell": self._pick(persona.farewells.get(band, ()), "Farewell."),
            "personality_prompt": ", ".join(traits) if traits else "unremarkable",
            "voice_style": ", ".join(styles) or "straightforward",
        }
