import sys
from datetime import datetime, timezone
from pathlib import Path
import unittest

sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from townsfolk.application.services.entity_store import EntityStore
from townsfolk.application.services.event_bus import EventBus
from townsfolk.domain.errors import EntityNotFoundError, EntityValidationError
from townsfolk.domain.events import EntityRegistered, EntityRemoved, EntityUpdated, StoreReset
from townsfolk.domain.models.entity import Entity


_FIXED_NOW = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


class _CountingEnricher:
    def __init__(self) -> None:
        self.calls = 0

    def enrich(self, entity: Entity) -> Entity:
        self.calls += 1
        entity.attributes.setdefault("personality", {})["traits"] = ["curious"]
        return entity


class _TemplateResolver:
    def __init__(self) -> None:
        self.calls = 0

    def enrich(self, entity: Entity) -> Entity:
        self.calls += 1
        if entity.is_template:
            entity.name = f"Ana García {self.calls} (Shopkeeper)"
            entity.attributes["is_template"] = False
            entity.attributes["first_name"] = "Ana"
            entity.attributes.setdefault("appearance", {})["gender"] = "female"
        return entity


def _store(**kwargs) -> EntityStore:
    kwargs.setdefault("clock", lambda: _FIXED_NOW)
    return EntityStore(**kwargs)


class RegistrationTests(unittest.TestCase):
    def test_register_derives_id_and_stamps_metadata(self) -> None:
        store = _store()

        entity = store.register({"type": "npc", "name": "Padre Juan"})

        self.assertEqual("npc_padre_juan", entity.id)
        self.assertEqual("background", entity.tier)
        self.assertEqual(1, entity.metadata["version"])
        self.assertEqual("mixed", entity.metadata["data_source"])
        self.assertEqual(_FIXED_NOW.isoformat(), entity.metadata["created"])
        self.assertEqual(1, store.count())

    def test_register_accepts_entity_instances(self) -> None:
        store = _store()
        store.register(Entity(id="item_salt", entity_type="item", name="Salt"))
        self.assertIn("item_salt", store)

    def test_register_twice_merges_instead_of_duplicating(self) -> None:
        store = _store()
        store.register({"id": "npc_ana", "type": "npc", "name": "Ana", "social": {"class": "common", "casta": "mestizo"}})

        merged = store.register({"id": "npc_ana", "type": "npc", "social": {"class": "middling"}, "clickable": True})

        self.assertEqual(1, len(store))
        self.assertEqual(["npc_ana"], [entity.id for entity in store.get_by_type("npc")])
        self.assertEqual({"class": "middling", "casta": "mestizo"}, merged.facet("social"))
        self.assertTrue(merged.clickable)
        self.assertEqual("Ana", merged.name)
        self.assertEqual(2, merged.metadata["version"])

    def test_structural_errors_are_rejected(self) -> None:
        store = _store()
        with self.assertRaises(EntityValidationError):
            store.register({"name": "No Type"})
        with self.assertRaises(EntityValidationError):
            store.register({"type": "dragon", "name": "Smaug"})
        with self.assertRaises(EntityValidationError):
            store.register({"type": "npc"})
        with self.assertRaises(EntityValidationError):
            store.register({"type": "npc", "name": "Ana", "tier": "legendary"})
        with self.assertRaises(EntityValidationError):
            store.register(["not", "a", "record"])

    def test_id_and_type_are_immutable(self) -> None:
        store = _store()
        store.register({"id": "npc_ana", "type": "npc", "name": "Ana"})

        with self.assertRaises(EntityValidationError):
            store.register({"id": "npc_ana", "type": "patient", "name": "Ana"})
        with self.assertRaises(EntityValidationError):
            store.update("npc_ana", {"id": "npc_other"})

    def test_update_unknown_id_raises(self) -> None:
        with self.assertRaises(EntityNotFoundError):
            _store().update("npc_missing", {"name": "Ghost"})


class LookupTests(unittest.TestCase):
    def test_exact_name_lookup_ignores_case_and_accents(self) -> None:
        store = _store()
        store.register({"type": "npc", "name": "Leonor Méndez de Arteaga"})

        found = store.get_by_name("leonor mendez de arteaga")

        self.assertIsNotNone(found)
        self.assertEqual("npc_leonor_mendez_de_arteaga", found.id)

    def test_fuzzy_lookup_prefers_shortest_then_earliest(self) -> None:
        store = _store()
        store.register({"type": "npc", "name": "Juan de la Cruz"})
        store.register({"type": "npc", "name": "Padre Juan"})

        self.assertEqual("npc_padre_juan", store.get_raw_by_name("juan").id)

        store.register({"type": "antagonist", "name": "Juan Pérez"})
        self.assertEqual("npc_padre_juan", store.get_raw_by_name("juan").id)

        store.register({"type": "patient", "name": "Juana"})
        self.assertEqual("patient_juana", store.get_raw_by_name("juan").id)

    def test_fuzzy_lookup_matches_either_direction(self) -> None:
        store = _store()
        store.register({"type": "antagonist", "name": "Don Luis"})
        self.assertEqual("antagonist_don_luis", store.get_raw_by_name("Don Luis de Castilla").id)
        self.assertIsNone(store.get_raw_by_name("Catalina"))
        self.assertIsNone(store.get_raw_by_name(""))

    def test_queries_by_type_tier_and_search(self) -> None:
        store = _store()
        store.register({"type": "npc", "name": "Padre Juan", "tier": "recurring", "clickable": True})
        store.register({"type": "patient", "name": "Catalina de Fuentes", "tier": "story-critical"})
        store.register({"type": "item", "name": "Quina bark"})

        self.assertEqual(["patient_catalina_de_fuentes"], [e.id for e in store.get_by_tier("story-critical")])
        self.assertEqual(2, len(store.get_by_types(["npc", "patient"])))
        self.assertEqual(["npc_padre_juan"], [e.id for e in store.get_clickable()])
        self.assertEqual(["item_quina_bark"], [e.id for e in store.search(name="quina")])
        self.assertEqual(
            ["npc_padre_juan"],
            [e.id for e in store.search(predicate=lambda entity: entity.tier == "recurring")],
        )

        stats = store.stats()
        self.assertEqual(3, stats.total)
        self.assertEqual({"npc": 1, "patient": 1, "item": 1}, stats.by_type)
        self.assertEqual(1, stats.clickable)

    def test_returned_entities_are_copies(self) -> None:
        store = _store()
        store.register({"type": "npc", "name": "Ana", "social": {"class": "common"}})

        copy_a = store.get_raw_by_id("npc_ana")
        copy_a.attributes["social"]["class"] = "elite"

        self.assertEqual("common", store.get_raw_by_id("npc_ana").facet("social")["class"])

    def test_find_entities_in_text_uses_word_boundaries_and_longest_first(self) -> None:
        store = _store()
        store.register({"type": "npc", "name": "Juan", "clickable": True})
        store.register({"type": "npc", "name": "Padre Juan", "clickable": True})
        store.register({"type": "npc", "name": "Ana", "clickable": True})
        store.register({"type": "npc", "name": "Inés", "clickable": False})

        found = store.find_entities_in_text("Padre Juan nods at Inés while the banana seller passes.")

        self.assertEqual(["Padre Juan", "Juan"], [entity.name for entity in found])

    def test_find_entities_in_text_matches_names_ending_in_punctuation(self) -> None:
        store = _store()
        store.register({"type": "npc", "name": "Pedro Rivas (Shopkeeper)", "clickable": True})

        found = store.find_entities_in_text("You greet Pedro Rivas (Shopkeeper) at the counter.")
        missed = store.find_entities_in_text("You greet Pedro Rivas (Shopkeeper)s at the counter.")

        self.assertEqual(["Pedro Rivas (Shopkeeper)"], [entity.name for entity in found])
        self.assertEqual([], missed)


class EnrichmentCacheTests(unittest.TestCase):
    def test_enriched_view_is_cached_until_update(self) -> None:
        enricher = _CountingEnricher()
        store = _store(enricher=enricher)
        store.register({"type": "npc", "name": "Ana"})

        first = store.get_by_id("npc_ana")
        store.get_by_name("Ana")
        self.assertEqual(1, enricher.calls)
        self.assertEqual(["curious"], first.facet("personality")["traits"])
        self.assertTrue(store.is_enriched("npc_ana"))
        self.assertNotIn("personality", store.get_raw_by_id("npc_ana").attributes)

        store.update("npc_ana", {"social": {"class": "elite"}})
        self.assertFalse(store.is_enriched("npc_ana"))
        refreshed = store.get_by_id("npc_ana")
        self.assertEqual(2, enricher.calls)
        self.assertEqual("elite", refreshed.facet("social")["class"])

    def test_template_identity_is_resolved_once_and_written_back(self) -> None:
        resolver = _TemplateResolver()
        store = _store(enricher=resolver)
        store.register({"id": "npc_shopkeeper", "type": "npc", "name": "Shopkeeper [this is a generic shopkeeper]"})

        first = store.get_by_id("npc_shopkeeper")
        second = store.get_by_id("npc_shopkeeper")

        self.assertEqual("Ana García 1 (Shopkeeper)", first.name)
        self.assertEqual(first.name, second.name)
        raw = store.get_raw_by_id("npc_shopkeeper")
        self.assertEqual(first.name, raw.name)
        self.assertFalse(raw.is_template)
        self.assertEqual("female", raw.gender)

        store.update("npc_shopkeeper", {"clickable": True})
        self.assertEqual(first.name, store.get_by_id("npc_shopkeeper").name)
        self.assertEqual("npc_shopkeeper", store.get_raw_by_name(first.name).id)


class SnapshotTests(unittest.TestCase):
    def test_export_and_import_round_trip_raw_records(self) -> None:
        source = _store(enricher=_CountingEnricher())
        source.register({"type": "npc", "name": "Ana", "tier": "recurring"})
        source.register({"type": "item", "name": "Quina bark"})
        source.get_by_id("npc_ana")

        records = source.export_snapshot()
        target = _store()
        report = target.import_snapshot(records)

        self.assertTrue(report.ok)
        self.assertEqual(["npc_ana", "item_quina_bark"], report.imported)
        self.assertEqual(records, target.export_snapshot())
        self.assertNotIn("personality", records[0])

    def test_import_reports_rejected_records_and_continues(self) -> None:
        store = _store()
        with self.assertLogs("townsfolk.application.services.entity_store", level="ERROR"):
            report = store.import_snapshot(
                [
                    {"id": "npc_ana", "type": "npc", "name": "Ana"},
                    {"id": "npc_bad", "type": "wyvern", "name": "Bad"},
                    {"id": "npc_luz", "type": "npc", "name": "Luz"},
                ]
            )

        self.assertFalse(report.ok)
        self.assertEqual(["npc_ana", "npc_luz"], report.imported)
        self.assertEqual("npc_bad", report.failed[0][0]["id"])
        self.assertIsInstance(report.failed[0][1], EntityValidationError)

    def test_snapshot_restore_undoes_later_changes(self) -> None:
        store = _store()
        store.register({"type": "npc", "name": "Ana"})
        snapshot = store.snapshot()

        store.register({"type": "npc", "name": "Luz"})
        store.update("npc_ana", {"tier": "recurring"})
        store.restore(snapshot)

        self.assertEqual(["npc_ana"], [entity.id for entity in store.all_raw()])
        self.assertEqual("background", store.get_raw_by_id("npc_ana").tier)
        self.assertGreater(store.version, snapshot.version)

    def test_delete_and_clear(self) -> None:
        store = _store()
        store.register({"type": "npc", "name": "Ana"})
        store.register({"type": "npc", "name": "Luz"})

        self.assertTrue(store.delete("npc_ana"))
        self.assertFalse(store.delete("npc_ana"))
        self.assertIsNone(store.get_by_name("Ana"))

        store.clear()
        self.assertEqual(0, len(store))
        self.assertEqual({}, store.stats().by_type)


class StoreEventTests(unittest.TestCase):
    def test_every_mutation_publishes_an_event(self) -> None:
        bus = EventBus()
        seen = []
        bus.subscribe_many((EntityRegistered, EntityUpdated, EntityRemoved, StoreReset), seen.append)
        store = _store(event_bus=bus)

        store.register({"type": "npc", "name": "Ana"})
        store.update("npc_ana", {"tier": "recurring", "clickable": True})
        store.delete("npc_ana")
        store.clear()

        self.assertEqual(
            [EntityRegistered, EntityUpdated, EntityRemoved, StoreReset],
            [type(event) for event in seen],
        )
        self.assertEqual(("clickable", "tier"), seen[1].changed_keys)
        self.assertEqual([1, 2, 3, 4], [event.store_version for event in seen])


if __name__ == "__main__":
    unittest.main()
