"""
Row validation and deduplication.

Rows that fail validation are dropped, never retried. Deduplication keeps one
row per (region, player key): highest points wins, a points tie goes to the
lower rank.
"""
from typing import Dict, Iterable, Optional, Sequence, Tuple

from ..config import AGGREGATE_REGION, PR_REGIONS, Settings
from ..models import NormalizedRow, PreparedRows, RawRow
from .player import normalize_name, sanitize_text


def _to_int(value) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def is_better(candidate, current) -> bool:
    """True if `candidate` should replace `current` (more points, then lower rank)."""
    if candidate.points != current.points:
        return candidate.points > current.points
    return candidate.rank < current.rank


def pick_best(rows: Sequence):
    best = None
    for row in rows:
        if best is None or is_better(row, best):
            best = row
    return best


def normalize_row(row: RawRow, settings: Settings) -> Optional[NormalizedRow]:
    """
    Validate and clean one scraped row.

    Args:
        row: Row as produced by the leaderboard parser
        settings: Run settings (aggregate region inclusion)

    Returns:
        NormalizedRow, or None if the row must be dropped
    """
    region = str(row.region or '').upper()
    if region not in PR_REGIONS:
        return None
    if region == AGGREGATE_REGION and not settings.include_global:
        return None

    player = sanitize_text(row.player)
    player_normalized = normalize_name(player)
    if not player or not player_normalized:
        return None

    points = _to_int(row.points)
    rank = _to_int(row.rank)
    if points is None or points <= 0 or rank is None or rank <= 0:
        return None

    return NormalizedRow(
        region=region,
        page=row.page,
        rank=rank,
        player=player,
        team=sanitize_text(row.team),
        points=points,
        platform=row.platform,
        timeframe=row.timeframe,
        provider=row.provider,
        player_normalized=player_normalized,
    )


def prepare_rows(raw_rows: Iterable[RawRow], settings: Settings) -> PreparedRows:
    deduped: Dict[Tuple[str, str], NormalizedRow] = {}
    raw_count = 0
    dropped = 0
    duplicates = 0

    for raw in raw_rows:
        raw_count += 1
        row = normalize_row(raw, settings)
        if row is None:
            dropped += 1
            continue

        key = (row.region, row.player_normalized)
        existing = deduped.get(key)
        if existing is None:
            deduped[key] = row
            continue

        duplicates += 1
        if is_better(row, existing):
            deduped[key] = row

    if settings.debug:
        print(f"Prepare rows: input={raw_count}, clean={len(deduped)}, dropped={dropped}, dup={duplicates}")

    return PreparedRows(rows=list(deduped.values()), dropped=dropped, duplicates=duplicates)
