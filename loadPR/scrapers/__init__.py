"""
Scraper modules for the power rankings leaderboard.

- providers: proxy request templates, weighted provider routing, credential choice
- base: single-request executor and response classification
- leaderboard: table row extraction
"""
from .base import fetch_once, extract_html, classify
from .leaderboard import parse_html_rows
from .providers import pick_primary_provider, reassign_provider, enabled_providers

__all__ = [
    "fetch_once",
    "extract_html",
    "classify",
    "parse_html_rows",
    "pick_primary_provider",
    "reassign_provider",
    "enabled_providers",
]
