import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

# Ensure the src directory is on sys.path when running as a script
_SRC_DIR = Path(__file__).resolve().parents[1]
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

from townsfolk.bootstrap import create_runtime
from townsfolk.presentation.cli import build_parser, run

load_dotenv()


def _print_help_surface() -> None:
    print("\nHelp:")
    print("- Commands: roster, show NAME, simulate --turns N, stats.")
    print("- Scenario issues: check TOWNSFOLK_SCENARIO names a bundled id or a readable JSON file.")
    print("- Persistence issues: verify TOWNSFOLK_DATABASE_URL / TOWNSFOLK_SNAPSHOT_PATH or unset them for in-memory mode.")


def _configure_logging() -> None:
    level_name = os.getenv("TOWNSFOLK_LOG_LEVEL", "WARNING").strip().upper()
    logging.basicConfig(level=getattr(logging, level_name, logging.WARNING))


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    _configure_logging()
    try:
        runtime = create_runtime()
        try:
            return run(runtime, args)
        finally:
            runtime.shutdown()
    except KeyboardInterrupt:
        print("\nSession ended.")
        return 130
    except Exception as exc:
        print("An unexpected error occurred. The session closed safely.")
        print(f"Reason: {exc}")
        _print_help_surface()
        return 1


if __name__ == "__main__":
    sys.exit(main())
