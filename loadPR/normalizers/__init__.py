"""
Normalizer modules for cleaning scraped leaderboard rows.

- player: nickname canonicalization, usernames and rank tranches
- rows: row validation and (region, player) deduplication
"""
from .player import normalize_name, sanitize_text, build_username, tranche_from_rank
from .rows import normalize_row, prepare_rows, is_better, pick_best

__all__ = [
    "normalize_name",
    "sanitize_text",
    "build_username",
    "tranche_from_rank",
    "normalize_row",
    "prepare_rows",
    "is_better",
    "pick_best",
]
