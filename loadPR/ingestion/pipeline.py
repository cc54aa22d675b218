"""
Main ingestion pipeline.

Orchestrates one run:
1. Optional cleanup of aggregate-only players
2. Opens an ingestion run record
3. Fetches every planned page (rounds with retries)
4. Normalizes and deduplicates rows
5. Builds player, snapshot and score payloads
6. Upserts them and seals the run as SUCCESS, PARTIAL or FAILED
"""
import asyncio
from datetime import datetime, timezone
from typing import Optional

from ..cleanup import cleanup_global_only_players
from ..config import Settings
from ..db_utils import (
    DatastoreError,
    add_existing_players_for_global_rows,
    compute_status,
    create_ingestion_run,
    finalize_run,
    get_client,
    upsert_players,
    upsert_scores,
    upsert_snapshots,
)
from ..display import print_cleanup_summary, print_dry_run_summary, print_ingestion_summary
from ..models import IngestionResult
from ..normalizers.rows import prepare_rows
from .fetcher import FetchFn, SleepFn, fetch_all_regions
from .payloads import build_upsert_payloads, map_scores, map_snapshots


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def run_ingestion(settings: Settings, client=None, fetch: Optional[FetchFn] = None,
                  sleep: SleepFn = asyncio.sleep) -> IngestionResult:
    """
    Run the full ingestion pipeline.

    Args:
        settings: Run settings
        client: Datastore client; built from settings when omitted
        fetch: Coroutine executing one fetch attempt; real HTTP when omitted
        sleep: Backoff delay coroutine

    Returns:
        IngestionResult with counts and final status

    Raises:
        DatastoreError: a datastore write failed (the run is marked FAILED first)
    """
    client = client if client is not None else get_client(settings)
    result = IngestionResult(status='RUNNING', dry_run=settings.dry_run)
    run = None

    try:
        if settings.cleanup_global_only:
            result.cleanup = cleanup_global_only_players(client, settings)
            print_cleanup_summary(result.cleanup)
            if settings.cleanup_only:
                result.status = 'SUCCESS'
                return result

        if not settings.dry_run:
            run = create_ingestion_run(client, settings)
            result.run_id = run.get('id')

        outcome = asyncio.run(fetch_all_regions(settings, fetch=fetch, sleep=sleep))
        prepared = prepare_rows(outcome.rows, settings)
        payloads = build_upsert_payloads(prepared.rows, settings)

        result.pages = outcome.pages
        result.failed_pages = outcome.failed_pages
        result.raw_rows = len(outcome.rows)
        result.clean_rows = len(prepared.rows)

        if settings.dry_run:
            print_dry_run_summary(outcome, prepared, payloads)
            result.status = 'DRY_RUN'
            result.players = len(payloads.player_upserts)
            result.snapshots = len(payloads.snapshot_rows)
            result.scores = len(payloads.score_rows)
            return result

        player_ids = upsert_players(client, payloads.player_upserts, settings)
        result.players = len(payloads.player_upserts)
        if settings.include_global:
            add_existing_players_for_global_rows(client, payloads.snapshot_rows, player_ids, settings)

        mapped = map_snapshots(payloads.snapshot_rows, player_ids, settings, result.run_id)
        result.skipped = mapped.skipped
        result.ignored_global = mapped.ignored_global
        result.snapshots = upsert_snapshots(client, mapped.rows, settings)

        if settings.write_scores:
            result.scores = upsert_scores(client, map_scores(payloads.score_rows, player_ids, settings), settings)

        result.status = compute_status(outcome.page_stats, result.skipped, result.ignored_global)
        finalize_run(client, run, result.status, result.snapshots, result.skipped, _now_iso())
        print_ingestion_summary(result)
        return result

    except Exception as e:
        result.status = 'FAILED'
        if run is not None:
            try:
                finalize_run(client, run, 'FAILED', result.snapshots, result.skipped, _now_iso(),
                             error_message=str(e) or e.__class__.__name__)
            except DatastoreError as finalize_error:
                print(f"[ERR] Could not mark run as FAILED: {finalize_error}")
        raise
