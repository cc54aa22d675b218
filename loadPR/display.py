from collections import Counter
from typing import Dict

from .models import CleanupSummary, FetchOutcome, IngestionResult, PayloadBundle, PreparedRows


def status_counts(outcome: FetchOutcome) -> Dict[int, int]:
    return dict(sorted(Counter(s.status for s in outcome.page_stats).items()))


def provider_counts(outcome: FetchOutcome) -> Dict[str, int]:
    return dict(sorted(Counter(s.provider for s in outcome.page_stats).items()))


def _format_counts(counts: Dict) -> str:
    return ', '.join(f"{k}:{v}" for k, v in counts.items()) or 'none'


def print_dry_run_summary(outcome: FetchOutcome, prepared: PreparedRows, payloads: PayloadBundle) -> None:
    """
    Print what a real run would have written.

    Status and provider counts are per attempt, so a page retried three times
    contributes three entries.
    """
    print(f"Dry run: pages={outcome.pages}, failedPages={outcome.failed_pages}")
    print(f"Dry run: rawRows={len(outcome.rows)}, cleanRows={len(prepared.rows)}")
    print(f"Dry run: players={len(payloads.player_upserts)}, "
          f"snapshots={len(payloads.snapshot_rows)}, scores={len(payloads.score_rows)}")
    print(f"Dry run: statusCounts={_format_counts(status_counts(outcome))}")
    print(f"Dry run: providerCounts={_format_counts(provider_counts(outcome))}")


def print_cleanup_summary(summary: CleanupSummary) -> None:
    print(f"Cleanup: global-only players={summary.players}, "
          f"snapshots={summary.snapshots}, scores={summary.scores}")


def print_ingestion_summary(result: IngestionResult) -> None:
    print(f"Ingestion done: status={result.status}, players={result.players}, "
          f"snapshots={result.snapshots}, scores={result.scores}, "
          f"skipped={result.skipped}, ignoredGlobal={result.ignored_global}")
