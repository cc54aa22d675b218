# tests/helpers.py
"""Shared fakes and builders for the ingestion tests."""

from collections import defaultdict
from typing import Dict, List, Optional, Tuple

from loadPR.config import Settings
from loadPR.models import RawRow, RegionBounds
from loadPR.scrapers.base import classify


def make_settings(**overrides) -> Settings:
    base = dict(
        supabase_url='https://db.example.test',
        supabase_key='service-key',
        weights={'scrapfly': 1, 'scraperapi': 1, 'scrapedo': 1},
        keys={'scrapfly': ['fly-1'], 'scraperapi': ['api-1', 'api-2'], 'scrapedo': ['do-1']},
        regions=[RegionBounds('EU', 1, 1)],
        snapshot_date='2025-06-01',
        collected_at='2025-06-01T12:00:00+00:00',
        chunk_size=5,
        max_attempts=3,
    )
    base.update(overrides)
    return Settings(**base)


def raw_row(region='EU', player='Zed', points=1000, rank=1, page=1, team='', provider='scrapfly') -> RawRow:
    return RawRow(
        region=region,
        page=page,
        rank=rank,
        player=player,
        team=team,
        points=points,
        platform='pc',
        timeframe='year',
        provider=provider,
    )


def leaderboard_html(entries: List[dict], explicit_rank: bool = True) -> str:
    """Build a leaderboard page shaped like the live site's markup."""
    rows = []
    for entry in entries:
        if explicit_rank:
            rank_cell = f'<td class="column--left"><leaderboard-rank :placement="{entry["rank"]}"></leaderboard-rank></td>'
        else:
            rank_cell = '<td class="column--left"></td>'
        rows.append(
            '<tr>'
            f'{rank_cell}'
            '<td class="column--left">'
            f'<div class="leaderboard-user__nickname">{entry["player"]}</div>'
            f'<a class="leaderboard-team__name" href="#">{entry.get("team", "")}</a>'
            '</td>'
            f'<td class="column--right column--highlight"><div>{entry["points"]}</div></td>'
            '</tr>'
        )
    return '<html><body><table><thead><tr><th>Rank</th></tr></thead><tbody>' + ''.join(rows) + '</tbody></table></body></html>'


async def no_sleep(_seconds):
    return None


class StubFetch:
    """
    Fake fetch coroutine serving canned pages.

    `pages` maps (region, page) to HTML. Missing pages answer 503. `failures`
    queues (status, body) answers per (region, page) served before the page.
    """

    def __init__(self, pages: Dict[Tuple[str, int], str],
                 failures: Optional[Dict[Tuple[str, int], List[Tuple[int, str]]]] = None):
        self.pages = pages
        self.failures = {k: list(v) for k, v in (failures or {}).items()}
        self.calls = []

    async def __call__(self, task, settings):
        key = (task.region, task.page)
        self.calls.append((task.region, task.page, task.provider, task.attempts))
        queued = self.failures.get(key)
        if queued:
            status, body = queued.pop(0)
            return classify(task, status, body)
        html = self.pages.get(key)
        if html is None:
            return classify(task, 503, '')
        return classify(task, 200, html)


class FakeDatastore:
    """In-memory table store with the same surface as SupabaseClient."""

    def __init__(self):
        self.tables = defaultdict(list)
        self.calls = []
        self._next_id = 1

    def _new_id(self) -> int:
        value = self._next_id
        self._next_id += 1
        return value

    def insert(self, table, rows, on_conflict=None, prefer=None):
        self.calls.append(('insert', table, len(rows)))
        written = []
        for row in rows:
            row = dict(row)
            existing = None
            if on_conflict:
                cols = on_conflict.split(',')
                existing = next(
                    (r for r in self.tables[table] if all(r.get(c) == row.get(c) for c in cols)),
                    None,
                )
            if existing is not None:
                existing.update(row)
                written.append(dict(existing))
            else:
                row.setdefault('id', self._new_id())
                self.tables[table].append(row)
                written.append(dict(row))
        if prefer and 'return=representation' in prefer:
            return written
        return []

    def patch_by_id(self, table, row_id, payload):
        self.calls.append(('patch', table, row_id))
        for row in self.tables[table]:
            if row.get('id') == row_id:
                row.update(payload)

    def delete_in(self, table, column, values):
        self.calls.append(('delete', table, len(values)))
        values = set(values)
        before = len(self.tables[table])
        self.tables[table] = [r for r in self.tables[table] if r.get(column) not in values]
        return before - len(self.tables[table])

    def select_in(self, table, columns, column, values):
        self.calls.append(('select_in', table, len(values)))
        wanted = columns.split(',')
        return [{c: r.get(c) for c in wanted} for r in self.tables[table] if r.get(column) in set(values)]

    def select_page(self, table, columns, offset, limit):
        self.calls.append(('select_page', table, offset))
        wanted = columns.split(',')
        rows = self.tables[table][offset:offset + limit]
        return [{c: r.get(c) for c in wanted} for r in rows], len(self.tables[table])

    def player_id(self, nickname):
        for row in self.tables['players']:
            if row['nickname'] == nickname:
                return row['id']
        return None
