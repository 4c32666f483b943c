import io
import sys
from contextlib import redirect_stdout
from pathlib import Path
import unittest

from rich.console import Console

sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from townsfolk import __main__ as entry
from townsfolk.bootstrap import create_runtime
from townsfolk.presentation.cli import build_parser, run


class CliFlowE2ETests(unittest.TestCase):
    def setUp(self) -> None:
        self.runtime = create_runtime()
        self.addCleanup(self.runtime.shutdown)
        self.parser = build_parser()

    def _run(self, *argv: str):
        buffer = io.StringIO()
        console = Console(file=buffer, width=200)
        code = run(self.runtime, self.parser.parse_args(list(argv)), console=console)
        return code, buffer.getvalue()

    def test_roster_lists_seeded_population(self) -> None:
        code, output = self._run("roster")

        self.assertEqual(0, code)
        self.assertIn("Roster", output)
        self.assertIn("Don Luis", output)
        self.assertIn("Padre Juan", output)

    def test_roster_filters_by_type(self) -> None:
        code, output = self._run("roster", "--type", "antagonist")

        self.assertEqual(0, code)
        self.assertIn("Don Luis", output)
        self.assertNotIn("Padre Juan", output)

    def test_show_renders_enriched_profile(self) -> None:
        code, output = self._run("show", "Don Luis")

        self.assertEqual(0, code)
        self.assertIn("Don Luis", output)
        self.assertIn("Occupation", output)
        self.assertIn("Temperament", output)

    def test_show_unknown_name_fails(self) -> None:
        code, output = self._run("show", "Zzyzx")

        self.assertEqual(1, code)
        self.assertIn("No entity matches 'Zzyzx'", output)

    def test_simulate_plays_requested_turns(self) -> None:
        code, output = self._run("simulate", "--turns", "3", "--church", "40")

        self.assertEqual(0, code)
        self.assertIn("Mexico City, 1680", output)
        self.assertIn("Turn", output)
        for turn in (1, 2, 3):
            self.assertIn(f"Turn {turn}:", output)

    def test_simulate_on_deadline_flags_critical_encounter(self) -> None:
        code, output = self._run("simulate", "--turns", "1", "--date", "1680-08-23", "--time", "8:00 PM")

        self.assertEqual(0, code)
        self.assertIn("Don Luis (critical)", output)

    def test_stats_counts_store(self) -> None:
        code, output = self._run("stats")

        self.assertEqual(0, code)
        self.assertIn("Total", output)
        self.assertIn("type:antagonist", output)

    def test_main_entry_runs_a_command(self) -> None:
        buffer = io.StringIO()
        with redirect_stdout(buffer):
            code = entry.main(["stats"])

        self.assertEqual(0, code)
        self.assertIn("Total", buffer.getvalue())


if __name__ == "__main__":
    unittest.main()
