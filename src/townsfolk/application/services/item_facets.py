from __future__ import annotations

import random
from typing import Any, Dict, List, Sequence

from townsfolk.domain.models.entity import Entity


_MATERIA_MEDICA_FORMS = (
    ("herb", ("leaf", "flower"), ("dried leaves", "fresh leaves", "powdered herb", "bundled stems", "crushed petals")),
    ("resin", ("resin", "gum"), ("crystalline resin", "sticky resin", "hardened chunks", "amber-like lumps")),
    ("mineral", ("salt", "stone"), ("powdered mineral", "crystalline mineral", "ground stone", "fine powder")),
    ("animal", ("bone", "horn"), ("dried extract", "powdered bone", "ground horn", "prepared tissue")),
    ("spice", (), ("dried seeds", "ground powder", "aromatic bark", "dried roots")),
)
_CATEGORY_COLORS = {
    "herb": ("green", "brown", "yellow-green", "dried brown"),
    "resin": ("amber", "white", "translucent", "yellow"),
    "mineral": ("white", "grey", "red", "blue", "crystalline"),
    "spice": ("brown", "red", "yellow", "orange", "black"),
}
_CATEGORY_SMELLS = {
    "herb": ("aromatic", "pungent", "sweet", "earthy", "grassy"),
    "resin": ("strong aromatic", "sharp", "medicinal", "piney"),
    "mineral": ("odorless",),
    "animal": ("faint", "musky", "unpleasant", "gamey"),
    "spice": ("aromatic", "pungent", "sweet", "spicy"),
}
_TEXTURES = (
    ("powder", ("fine powder", "coarse powder", "gritty")),
    ("liquid", ("thin liquid", "viscous", "syrupy", "watery")),
    ("crystalline", ("hard crystals", "brittle", "sharp-edged")),
    ("dried", ("brittle", "crumbly", "papery", "leathery")),
)
_TASTES = ("bitter", "sweet", "sour", "acrid", "astringent", "bland", "pungent")
_METAL_COLORS = ("steel grey", "iron black", "bronze", "tarnished silver")
_WEAPONIZABLE_TOOLS = ("knife", "hammer", "axe", "saw", "pickaxe", "chisel")


class ProceduralItemGenerator:
    """Sensory appearance and combat properties for item entities."""

    def __init__(self, *, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()

    def _pick(self, options: Sequence[str]) -> str:
        return self._rng.choice(list(options))

    @staticmethod
    def _categories(entity: Entity) -> List[str]:
        return [str(item).lower() for item in entity.attributes.get("categories", []) or []]

    def generate_appearance(self, entity: Entity) -> Dict[str, Any]:
        appearance = dict(entity.facet("appearance"))
        item_type = str(entity.attributes.get("item_type") or "misc")
        categories = self._categories(entity)

        if not appearance.get("form"):
            appearance["form"] = self._form(item_type, entity.name, categories)
        if not appearance.get("color"):
            appearance["color"] = self._color(item_type, categories)
        if not appearance.get("smell"):
            appearance["smell"] = self._smell(item_type, categories)
        if not appearance.get("taste") and item_type in {"materia_medica", "consumable"}:
            appearance["taste"] = self._pick(_TASTES)
        if not appearance.get("texture"):
            appearance["texture"] = self._texture(str(appearance["form"]))
        if not appearance.get("visual_description"):
            appearance["visual_description"] = (
                f"{appearance['color']} {appearance['form']} with a {appearance['smell']} scent"
            )
        return appearance

    def _form(self, item_type: str, name: str, categories: List[str]) -> str:
        if item_type == "materia_medica":
            lowered = (name or "").lower()
            for category, name_hints, forms in _MATERIA_MEDICA_FORMS:
                if category in categories or any(hint in lowered for hint in name_hints):
                    return self._pick(forms)
            return "processed substance"
        if item_type == "consumable":
            return self._pick(("liquid", "powder", "paste", "solid"))
        return {"tool": "metal implement", "weapon": "forged weapon", "wearable": "garment"}.get(item_type, "object")

    def _color(self, item_type: str, categories: List[str]) -> str:
        if item_type == "materia_medica":
            for category, colors in _CATEGORY_COLORS.items():
                if category in categories:
                    return self._pick(colors)
        if item_type in {"tool", "weapon"}:
            return self._pick(_METAL_COLORS)
        return self._pick(("brown", "grey", "white", "black", "tan"))

    def _smell(self, item_type: str, categories: List[str]) -> str:
        if item_type == "materia_medica":
            for category, smells in _CATEGORY_SMELLS.items():
                if category in categories:
                    return self._pick(smells)
        if item_type in {"tool", "weapon"}:
            return self._pick(("metallic", "oily", "faint"))
        return "faint"

    def _texture(self, form: str) -> str:
        for marker, textures in _TEXTURES:
            if marker in form:
                return self._pick(textures)
        return "solid"

    def generate_combat(self, entity: Entity) -> Dict[str, Any]:
        combat: Dict[str, Any] = {
            "wieldable": False,
            "throwable": False,
            "damage": 0,
            "range": 0,
            "attack_type": None,
            "improvised_weapon": False,
        }
        item_type = str(entity.attributes.get("item_type") or "")
        lowered = (entity.name or "").lower()

        if item_type == "weapon":
            combat["wieldable"] = True
            combat["range"] = 1
            if "sword" in lowered or "rapier" in lowered:
                combat.update(damage=self._rng.randint(8, 15), attack_type="slashing")
            elif "knife" in lowered or "dagger" in lowered:
                combat.update(damage=self._rng.randint(4, 10), attack_type="piercing", throwable=True)
            elif "club" in lowered or "mace" in lowered:
                combat.update(damage=self._rng.randint(6, 12), attack_type="bludgeoning")
            elif "bow" in lowered:
                combat.update(damage=self._rng.randint(6, 12), attack_type="piercing", range=30)
            else:
                combat.update(damage=self._rng.randint(5, 10), attack_type="bludgeoning")
        elif item_type == "tool" and any(tool in lowered for tool in _WEAPONIZABLE_TOOLS):
            combat.update(
                improvised_weapon=True,
                wieldable=True,
                damage=self._rng.randint(3, 8),
                range=1,
                attack_type="piercing" if "knife" in lowered else "bludgeoning",
            )
        return combat
