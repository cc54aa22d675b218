import argparse
import sys

from dotenv import load_dotenv

from .config import ENV_PATH, SCORE_STRATEGIES, ConfigError, load_settings
from .ingestion import run_ingestion


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pr-ingest", description="Power rankings ingestion")
    parser.add_argument("--dry-run", action="store_true", help="Fetch and parse, but write nothing")
    parser.add_argument("--cleanup-global-only", action="store_true",
                        help="Delete players that only have GLOBAL snapshots before ingesting")
    parser.add_argument("--cleanup-only", action="store_true",
                        help="Run the GLOBAL-only cleanup and exit without ingesting")
    parser.add_argument("--regions", type=str, help="Comma separated region allow-list (e.g. EU,NAW)")
    parser.add_argument("--include-global", action="store_true", default=None,
                        help="Also scrape the GLOBAL leaderboard")
    parser.add_argument("--score-strategy", type=str.upper, choices=SCORE_STRATEGIES,
                        help="Which row provides the season score (default: MAX)")
    parser.add_argument("--no-scores", dest="write_scores", action="store_false", default=None,
                        help="Skip writing season scores")
    return parser


def main(argv=None) -> int:
    load_dotenv(ENV_PATH)
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings(vars(args))
    except ConfigError as e:
        print(f"Ingestion failed: {e}")
        return 1

    try:
        run_ingestion(settings)
    except Exception as e:
        print(f"Ingestion failed: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
