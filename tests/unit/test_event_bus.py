import sys
from pathlib import Path
import unittest

sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from townsfolk.application.services.entity_store import EntityStore
from townsfolk.application.services.event_bus import EventBus
from townsfolk.domain.events import EntityRegistered, EntityRemoved, EntityUpdated, StoreReset


class EventBusTests(unittest.TestCase):
    def test_publish_notifies_all_handlers_for_event_type(self) -> None:
        bus = EventBus()
        seen: list[str] = []

        class ExampleEvent:
            pass

        bus.subscribe(ExampleEvent, lambda evt: seen.append("first"))
        bus.subscribe(ExampleEvent, lambda evt: seen.append("second"))

        bus.publish(ExampleEvent())

        self.assertEqual(["first", "second"], seen)

    def test_publish_filters_handlers_by_event_class(self) -> None:
        bus = EventBus()
        seen: list[str] = []

        class Alpha:
            pass

        class Beta:
            pass

        bus.subscribe(Alpha, lambda evt: seen.append("alpha"))
        bus.subscribe(Beta, lambda evt: seen.append("beta"))

        bus.publish(Alpha())

        self.assertEqual(["alpha"], seen)

    def test_publish_honors_priority_then_registration_order(self) -> None:
        bus = EventBus()
        seen: list[str] = []

        class ExampleEvent:
            pass

        bus.subscribe(ExampleEvent, lambda evt: seen.append("normal"), priority=100)
        bus.subscribe(ExampleEvent, lambda evt: seen.append("early"), priority=10)
        bus.subscribe(ExampleEvent, lambda evt: seen.append("late"), priority=200)
        bus.subscribe(ExampleEvent, lambda evt: seen.append("normal-2"), priority=100)

        bus.publish(ExampleEvent())

        self.assertEqual(["early", "normal", "normal-2", "late"], seen)

    def test_unsubscribe_handles(self) -> None:
        bus = EventBus()
        seen: list[str] = []

        class Alpha:
            pass

        class Beta:
            pass

        single = bus.subscribe(Alpha, lambda evt: seen.append("single"))
        many = bus.subscribe_many([Alpha, Beta], lambda evt: seen.append(type(evt).__name__))

        bus.publish(Alpha())
        single()
        single()
        bus.publish(Alpha())
        many()
        bus.publish(Beta())

        self.assertEqual(["single", "Alpha", "Alpha"], seen)

    def test_failing_handler_is_isolated_and_logged(self) -> None:
        bus = EventBus()
        seen: list[str] = []

        class ExampleEvent:
            pass

        def _broken(_evt) -> None:
            raise RuntimeError("boom")

        bus.subscribe(ExampleEvent, _broken, priority=10)
        bus.subscribe(ExampleEvent, lambda evt: seen.append("still-runs"), priority=20)

        with self.assertLogs("townsfolk.application.services.event_bus", level="ERROR"):
            bus.publish(ExampleEvent())

        self.assertEqual(["still-runs"], seen)
        self.assertEqual(1, len(bus.last_publish_errors()))

        bus.publish(object())
        self.assertEqual([], bus.last_publish_errors())


class StoreEventTests(unittest.TestCase):
    def test_store_lifecycle_events(self) -> None:
        bus = EventBus()
        events: list[object] = []
        bus.subscribe_many([EntityRegistered, EntityUpdated, EntityRemoved, StoreReset], events.append)
        store = EntityStore(event_bus=bus)

        store.register({"type": "npc", "name": "Ana"})
        store.update("npc_ana", {"clickable": True})
        store.delete("npc_ana")
        store.clear()

        self.assertEqual(
            [EntityRegistered, EntityUpdated, EntityRemoved, StoreReset],
            [type(event) for event in events],
        )
        self.assertEqual(("clickable",), events[1].changed_keys)
        self.assertEqual("npc_ana", events[2].entity_id)

    def test_broken_subscriber_does_not_block_writes(self) -> None:
        bus = EventBus()

        def _broken(_evt) -> None:
            raise ValueError("listener bug")

        bus.subscribe(EntityRegistered, _broken)
        store = EntityStore(event_bus=bus)

        with self.assertLogs("townsfolk.application.services.event_bus", level="ERROR"):
            store.register({"type": "npc", "name": "Ana"})

        self.assertIn("npc_ana", store)


if __name__ == "__main__":
    unittest.main()
