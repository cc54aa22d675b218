"""
Removal of players known only through the aggregate leaderboard.

A player whose every snapshot comes from the aggregate region is deleted along
with its scores and snapshots. Players with at least one regional snapshot are
left untouched.
"""
from .config import Settings
from .db_utils import (
    PLAYERS_TABLE,
    SCORES_TABLE,
    SNAPSHOTS_TABLE,
    delete_rows_by_player_ids,
    fetch_snapshot_player_regions,
)
from .models import CleanupSummary


def find_global_only_players(client) -> list:
    has_global, has_regional = fetch_snapshot_player_regions(client)
    return sorted(has_global - has_regional, key=str)


def cleanup_global_only_players(client, settings: Settings) -> CleanupSummary:
    """
    Delete aggregate-only players with their scores and snapshots.

    In dry-run mode nothing is deleted; only the player count is reported.

    Args:
        client: Datastore client
        settings: Run settings (lookup batch size, dry run)

    Returns:
        CleanupSummary with deleted row counts per table
    """
    global_only = find_global_only_players(client)
    if not global_only:
        return CleanupSummary()
    if settings.dry_run:
        return CleanupSummary(players=len(global_only))

    # Children first: scores and snapshots reference the player row.
    scores = delete_rows_by_player_ids(client, SCORES_TABLE, global_only, 'player_id', settings)
    snapshots = delete_rows_by_player_ids(client, SNAPSHOTS_TABLE, global_only, 'player_id', settings)
    players = delete_rows_by_player_ids(client, PLAYERS_TABLE, global_only, 'id', settings)
    return CleanupSummary(players=players, snapshots=snapshots, scores=scores)
