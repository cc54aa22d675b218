"""
Player name normalization.

The canonical player key is what merges observations of the same nickname
across pages and regions, so every stage must derive it through normalize_name.
"""
import re
import unicodedata

from ..utils import stable_hash

_COMBINING_MARKS = re.compile(r"[\u0300-\u036f]")
_ZERO_WIDTH = re.compile(r"[\u200b-\u200d\ufeff]")
_WHITESPACE = re.compile(r'\s+')
_NON_ALNUM = re.compile(r'[^a-z0-9]')

# (highest rank included, label)
TRANCHES = (
    (5, '1-5'),
    (10, '6-10'),
    (15, '11-15'),
    (20, '16-20'),
    (25, '21-25'),
    (30, '26-30'),
)
OPEN_TRANCHE = '31-infini'


def sanitize_text(value) -> str:
    """Collapse runs of whitespace and trim. None becomes an empty string."""
    if not value:
        return ''
    return _WHITESPACE.sub(' ', str(value)).strip()


def normalize_name(value) -> str:
    """
    Canonical player key for a displayed nickname.

    Args:
        value: Nickname as shown on the leaderboard

    Returns:
        NFKD-decomposed name without diacritics or zero-width characters,
        whitespace collapsed and lower-cased. Empty string if nothing remains.
    """
    text = unicodedata.normalize('NFKD', str(value or ''))
    text = _COMBINING_MARKS.sub('', text)
    text = _ZERO_WIDTH.sub('', text)
    return _WHITESPACE.sub(' ', text).strip().lower()


def build_username(nickname) -> str:
    base = _NON_ALNUM.sub('', str(nickname or '').lower())
    if base:
        return base
    return f"player{abs(stable_hash(str(nickname)))}"


def tranche_from_rank(rank: int) -> str:
    for limit, label in TRANCHES:
        if rank <= limit:
            return label
    return OPEN_TRANCHE
