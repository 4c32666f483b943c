import logging
import sys
from pathlib import Path
import unittest

sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from townsfolk.application.services.log_throttle import RateLimitedLogger


class _FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class RateLimitedLoggerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.clock = _FakeClock()
        self.logger = logging.getLogger("townsfolk.tests.log_throttle")
        self.log = RateLimitedLogger(self.logger, interval_seconds=10, clock=self.clock)

    def test_repeats_within_interval_are_suppressed(self) -> None:
        with self.assertLogs(self.logger, level="WARNING") as captured:
            self.assertTrue(self.log.warning("date.unparseable", "npc_ana", "Bad date %s", "someday"))
            self.assertFalse(self.log.warning("date.unparseable", "npc_ana", "Bad date %s", "someday"))
            self.assertFalse(self.log.warning("date.unparseable", "npc_ana", "Bad date %s", "someday"))

        self.assertEqual(1, len(captured.records))
        self.assertEqual("Bad date someday", captured.records[0].getMessage())
        self.assertEqual(2, self.log.suppressed_count("date.unparseable", "npc_ana"))

    def test_suppressed_count_rides_on_next_record(self) -> None:
        with self.assertLogs(self.logger, level="INFO") as captured:
            self.log.info("turn.skipped", None, "skipped")
            self.log.info("turn.skipped", None, "skipped")
            self.clock.now = 11
            self.log.info("turn.skipped", None, "skipped")

        self.assertEqual([0, 1], [record.suppressed for record in captured.records])
        self.assertEqual("-", captured.records[0].entity_id)
        self.assertEqual("turn.skipped", captured.records[0].event_type)
        self.assertEqual(0, self.log.suppressed_count("turn.skipped", None))

    def test_keys_are_independent(self) -> None:
        with self.assertLogs(self.logger, level="DEBUG") as captured:
            self.log.debug("lookup", "npc_a", "a")
            self.log.debug("lookup", "npc_b", "b")
            self.log.debug("other", "npc_a", "c")

        self.assertEqual(3, len(captured.records))

    def test_reset_and_extra_fields(self) -> None:
        with self.assertLogs(self.logger, level="WARNING") as captured:
            self.log.warning("x", "1", "first")
            self.log.reset()
            self.log.warning("x", "1", "second", turn=4)

        self.assertEqual(2, len(captured.records))
        self.assertEqual(4, captured.records[1].turn)
        self.assertIs(self.logger, self.log.logger)


if __name__ == "__main__":
    unittest.main()
