"""
Upsert payload building.

Derives three views from the same normalized rows:
- one player record per player key (identity resolution)
- snapshot rows (every surviving row)
- one score row per player key, chosen by the configured strategy
"""
from typing import Dict, List, Mapping, Optional, Sequence

from ..config import AGGREGATE_REGION, PLAYER_REGIONS, Settings
from ..models import (
    MappedSnapshots,
    NormalizedRow,
    PayloadBundle,
    PlayerCandidate,
    ScoreCandidate,
)
from ..normalizers.player import build_username, tranche_from_rank
from ..normalizers.rows import is_better, pick_best


def resolve_player_region(row: NormalizedRow) -> Optional[str]:
    """Home region a row can vouch for; None for the aggregate leaderboard."""
    if row.region in PLAYER_REGIONS:
        return row.region
    return None


def _candidate_from(row: NormalizedRow, region: str) -> PlayerCandidate:
    return PlayerCandidate(
        nickname=row.player,
        region=region,
        rank=row.rank,
        points=row.points,
        source_region=row.region,
    )


def resolve_player_candidates(rows: Sequence[NormalizedRow]) -> Dict[str, PlayerCandidate]:
    """
    Pick one canonical record per player key across all regions.

    Only rows from a home region create or replace a candidate, so aggregate
    rows never decide identity even with more points. Among regional rows the
    better row (points, then rank) wins.
    """
    candidates: Dict[str, PlayerCandidate] = {}
    for row in rows:
        region = resolve_player_region(row)
        if region is None:
            continue
        existing = candidates.get(row.player_normalized)
        if existing is None or is_better(row, existing):
            candidates[row.player_normalized] = _candidate_from(row, region)
    return candidates


def select_score_candidate(rows: Sequence[NormalizedRow], strategy: str,
                           player_region: Optional[str]) -> Optional[NormalizedRow]:
    """
    Choose the row whose points become the player's season score.

    Args:
        rows: Every surviving row for one player key
        strategy: MAX, GLOBAL or REGION
        player_region: Canonical home region, if the player has one

    Returns:
        The chosen row, or None for an empty input. GLOBAL and REGION fall
        back to MAX when no row matches.
    """
    if not rows:
        return None

    if strategy == 'GLOBAL':
        aggregate_rows = [row for row in rows if row.region == AGGREGATE_REGION]
        if aggregate_rows:
            return pick_best(aggregate_rows)

    if strategy == 'REGION' and player_region:
        region_rows = [row for row in rows if row.region == player_region]
        if region_rows:
            return pick_best(region_rows)

    return pick_best(rows)


def build_upsert_payloads(rows: Sequence[NormalizedRow], settings: Settings) -> PayloadBundle:
    rows_by_player: Dict[str, List[NormalizedRow]] = {}
    for row in rows:
        rows_by_player.setdefault(row.player_normalized, []).append(row)

    candidates = resolve_player_candidates(rows)

    player_upserts = [
        {
            'nickname': candidate.nickname,
            'username': build_username(candidate.nickname),
            'region': candidate.region,
            'tranche': tranche_from_rank(candidate.rank),
            'current_season': settings.current_season,
        }
        for candidate in candidates.values()
    ]

    score_rows = []
    for player_normalized, player_rows in rows_by_player.items():
        candidate = candidates.get(player_normalized)
        chosen = select_score_candidate(
            player_rows,
            settings.score_strategy,
            candidate.region if candidate else None,
        )
        if chosen is not None:
            score_rows.append(ScoreCandidate(
                player_normalized=player_normalized,
                points=chosen.points,
                rank=chosen.rank,
            ))

    return PayloadBundle(
        player_upserts=player_upserts,
        snapshot_rows=list(rows),
        score_rows=score_rows,
    )


def map_snapshots(rows: Sequence[NormalizedRow], player_ids: Mapping[str, object],
                  settings: Settings, run_id=None) -> MappedSnapshots:
    """
    Turn snapshot rows into datastore records.

    Rows whose player has no id are counted: aggregate-region rows as ignored
    (expected), everything else as skipped.
    """
    mapped = MappedSnapshots(rows=[])
    for row in rows:
        player_id = player_ids.get(row.player_normalized)
        if not player_id:
            if row.region == AGGREGATE_REGION:
                mapped.ignored_global += 1
            else:
                mapped.skipped += 1
            continue

        mapped.rows.append({
            'player_id': player_id,
            'region': row.region,
            'snapshot_date': settings.snapshot_date,
            'points': row.points,
            'rank': row.rank,
            'collected_at': settings.collected_at,
            'run_id': run_id,
        })
    return mapped


def map_scores(rows: Sequence[ScoreCandidate], player_ids: Mapping[str, object],
               settings: Settings) -> List[Dict[str, object]]:
    return [
        {
            'player_id': player_ids[row.player_normalized],
            'season': settings.current_season,
            'points': row.points,
            'rank': row.rank,
            'date': settings.snapshot_date,
            'timestamp': settings.collected_at,
        }
        for row in rows
        if player_ids.get(row.player_normalized)
    ]
