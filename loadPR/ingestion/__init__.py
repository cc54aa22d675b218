"""
Ingestion pipeline for power rankings leaderboards.

Provides a unified pipeline that:
1. Plans (region, page) fetch tasks
2. Fetches pages through rotating scraping providers, retrying in rounds
3. Normalizes and deduplicates rows
4. Builds player, snapshot and score payloads
5. Upserts into the datastore and records the run
"""
from .pipeline import run_ingestion
from .planner import plan_tasks
from .fetcher import fetch_all_regions, fetch_region, should_retry, backoff_seconds
from .payloads import build_upsert_payloads, map_snapshots, map_scores

__all__ = [
    "run_ingestion",
    "plan_tasks",
    "fetch_all_regions",
    "fetch_region",
    "should_retry",
    "backoff_seconds",
    "build_upsert_payloads",
    "map_snapshots",
    "map_scores",
]
