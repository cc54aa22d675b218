"""
Leaderboard table extraction.

Extracts one RawRow per table row: rank, player, team and points. The points
column is marked up inconsistently across the site, so several locations are
tried in a fixed order.
"""
import re
from typing import Callable, List, Optional

from bs4 import BeautifulSoup, Tag

from ..config import Settings
from ..models import FetchTask, RawRow
from ..normalizers.player import sanitize_text

_NUMBER = re.compile(r'^\s*([\d.,\s]+)')
_NUMBER_ONLY = re.compile(r'^\s*([\d.,\s]+?)\s*$')
_DIGITS = re.compile(r'\d+')


def _has_class(fragment: str) -> Callable[[object], bool]:
    def match(classes) -> bool:
        if not classes:
            return False
        if isinstance(classes, str):
            classes = classes.split()
        return any(fragment in c for c in classes)
    return match


def _digits(text: Optional[str]) -> str:
    return ''.join(_DIGITS.findall(text or ''))


def _first_numeric_div(row: Tag, column_class: str) -> str:
    for cell in row.find_all(class_=_has_class(column_class)):
        for div in cell.find_all('div'):
            m = _NUMBER.match(div.get_text())
            if m and _digits(m.group(1)):
                return _digits(m.group(1))
    return ''


def _bare_numeric_text(row: Tag, column_class: str) -> str:
    for cell in row.find_all('td', class_=_has_class(column_class)):
        if cell.find(True) is not None:
            continue
        m = _NUMBER_ONLY.match(cell.get_text())
        if m and _digits(m.group(1)):
            return _digits(m.group(1))
    return ''


# Order matters: the first strategy that yields digits wins.
POINTS_STRATEGIES = (
    lambda row: _first_numeric_div(row, 'column--highlight'),
    lambda row: _bare_numeric_text(row, 'column--highlight'),
    lambda row: _first_numeric_div(row, 'column--right'),
    lambda row: _bare_numeric_text(row, 'column--right'),
)


def extract_points(row: Tag) -> str:
    for strategy in POINTS_STRATEGIES:
        points = strategy(row)
        if points:
            return points
    return ''


def extract_rank(row: Tag) -> str:
    """Explicit placement from a leaderboard-rank element, or '' if absent."""
    for el in row.find_all(True):
        if el.name != 'leaderboard-rank' and not _has_class('leaderboard-rank')(el.get('class')):
            continue
        for attr in (':placement', 'placement', 'v-bind:placement'):
            value = el.get(attr)
            if value is not None and _digits(str(value)):
                return _digits(str(value))
    return ''


def _text_of(row: Tag, css_class: str) -> str:
    el = row.find(class_=_has_class(css_class))
    return sanitize_text(el.get_text(' ', strip=True)) if el else ''


def parse_html_rows(html: str, task: FetchTask, settings: Settings) -> List[RawRow]:
    """
    Parse the leaderboard table body of one page.

    Args:
        html: Page HTML (already unwrapped from any provider envelope)
        task: Task that produced the page (region, page, provider)
        settings: Run settings (page size, platform, timeframe)

    Returns:
        RawRows in source order. Rows missing rank, player or points are skipped.
    """
    soup = BeautifulSoup(html or '', 'html.parser')
    tbody = soup.find('tbody')
    if tbody is None:
        return []

    rows = []
    for i, tr in enumerate(tbody.find_all('tr')):
        rank = extract_rank(tr) or str((task.page - 1) * settings.page_size + i + 1)
        player = _text_of(tr, 'leaderboard-user__nickname')
        team = _text_of(tr, 'leaderboard-team__name')
        points = extract_points(tr)

        if not rank or not player or not points:
            continue

        rows.append(RawRow(
            region=task.region,
            page=task.page,
            rank=int(rank),
            player=player,
            team=team,
            points=int(points),
            platform=settings.platform,
            timeframe=settings.timeframe,
            provider=task.provider,
        ))
    return rows
