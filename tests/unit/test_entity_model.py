import sys
from pathlib import Path
import unittest

sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from townsfolk.domain.models.entity import (
    Entity,
    deep_merge,
    derive_entity_id,
    identity_patch,
    is_template_name,
    normalize_name,
    template_archetype,
)


class NormalizeNameTests(unittest.TestCase):
    def test_strips_accents_case_and_punctuation(self) -> None:
        self.assertEqual("leonor mendez de arteaga", normalize_name("  Leonor Méndez de Arteaga! "))
        self.assertEqual("tia makeda", normalize_name("Tía Makeda"))

    def test_drops_leading_article_only(self) -> None:
        self.assertEqual("apothecary", normalize_name("The Apothecary"))
        self.assertEqual("an old friar", normalize_name("An an old friar"))
        self.assertEqual("theodora", normalize_name("Theodora"))

    def test_empty_values_normalize_to_empty_string(self) -> None:
        self.assertEqual("", normalize_name(None))
        self.assertEqual("", normalize_name(""))
        self.assertEqual("", normalize_name("!!!"))

    def test_derived_id_uses_type_prefix_and_underscores(self) -> None:
        self.assertEqual("npc_padre_juan", derive_entity_id("npc", "Padre Juan"))
        self.assertEqual("antagonist_don_luis", derive_entity_id("antagonist", "Don Luis"))
        self.assertEqual("", derive_entity_id("npc", "   "))


class TemplateNameTests(unittest.TestCase):
    def test_sentinel_detection_is_case_insensitive(self) -> None:
        self.assertTrue(is_template_name("Shopkeeper [This is a generic shopkeeper]"))
        self.assertFalse(is_template_name("Shopkeeper Ana García"))

    def test_archetype_is_text_before_bracket(self) -> None:
        self.assertEqual("Old Washerwoman", template_archetype("Old Washerwoman [this is a generic washerwoman]"))

    def test_explicit_flag_overrides_sentinel(self) -> None:
        entity = Entity(
            id="npc_x",
            entity_type="npc",
            name="Porter [this is a generic porter]",
            attributes={"is_template": False},
        )
        self.assertFalse(entity.is_template)


class DeepMergeTests(unittest.TestCase):
    def test_nested_mappings_merge_and_scalars_overwrite(self) -> None:
        base = {"social": {"class": "common", "casta": "mestizo"}, "tags": ["a"], "age": 30}
        patch = {"social": {"class": "elite"}, "tags": ["b"], "age": 31}

        merged = deep_merge(base, patch)

        self.assertEqual({"class": "elite", "casta": "mestizo"}, merged["social"])
        self.assertEqual(["b"], merged["tags"])
        self.assertEqual(31, merged["age"])
        self.assertEqual("common", base["social"]["class"])

    def test_merge_result_does_not_alias_patch(self) -> None:
        patch = {"memory": {"interactions": [{"summary": "hello"}]}}
        merged = deep_merge({}, patch)
        merged["memory"]["interactions"].append({"summary": "again"})
        self.assertEqual(1, len(patch["memory"]["interactions"]))


class EntityRecordTests(unittest.TestCase):
    def test_round_trip_keeps_attribute_bag_and_metadata(self) -> None:
        record = {
            "id": "npc_padre_juan",
            "type": "npc",
            "tier": "recurring",
            "name": "Padre Juan",
            "clickable": True,
            "tags": ["clergy"],
            "social": {"occupation": "priest"},
            "metadata": {"version": 3, "data_source": "handcrafted"},
        }

        entity = Entity.from_record(record)

        self.assertEqual("npc", entity.entity_type)
        self.assertEqual("recurring", entity.tier)
        self.assertTrue(entity.clickable)
        self.assertEqual(["clergy"], entity.tags)
        self.assertEqual("priest", entity.facet("social")["occupation"])
        self.assertEqual(3, entity.metadata["version"])
        self.assertNotIn("metadata", entity.attributes)
        self.assertEqual(record, entity.to_record())

    def test_missing_tier_defaults_to_background(self) -> None:
        entity = Entity.from_record({"id": "item_salt", "type": "item", "name": "Salt"})
        self.assertEqual("background", entity.tier)

    def test_get_path_and_gender_lookups(self) -> None:
        entity = Entity(
            id="npc_ana",
            entity_type="npc",
            name="Ana",
            attributes={"appearance": {"gender": "female"}, "relationships": {"player": {"value": 72}}},
        )
        self.assertEqual("female", entity.gender)
        self.assertEqual(72, entity.get_path("relationships", "player", "value"))
        self.assertEqual("n/a", entity.get_path("relationships", "nobody", "value", default="n/a"))
        self.assertEqual({}, entity.facet("clothing"))

    def test_identity_patch_pins_resolved_fields(self) -> None:
        entity = Entity(
            id="npc_shopkeeper",
            entity_type="npc",
            name="Ana García (Shopkeeper)",
            attributes={
                "first_name": "Ana",
                "surname": "García",
                "archetype": "Shopkeeper",
                "appearance": {"gender": "female", "age": 41},
                "social": {"casta": "español", "occupation": "shopkeeper", "class": "middling"},
            },
        )

        patch = identity_patch(entity)

        self.assertEqual("Ana García (Shopkeeper)", patch["name"])
        self.assertFalse(patch["is_template"])
        self.assertEqual({"gender": "female"}, patch["appearance"])
        self.assertEqual({"casta": "español", "occupation": "shopkeeper"}, patch["social"])
        self.assertEqual("García", patch["surname"])


if __name__ == "__main__":
    unittest.main()
