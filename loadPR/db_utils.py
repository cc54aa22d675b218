import json
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import requests

from .config import AGGREGATE_REGION, Settings
from .models import NormalizedRow, PageStat
from .normalizers.player import normalize_name, sanitize_text
from .utils import chunked

PLAYERS_TABLE = 'players'
SNAPSHOTS_TABLE = 'pr_snapshots'
SCORES_TABLE = 'scores'
RUNS_TABLE = 'ingestion_runs'

PLAYERS_CONFLICT = 'nickname'
SNAPSHOTS_CONFLICT = 'player_id,region,snapshot_date'
SCORES_CONFLICT = 'player_id,season'

MERGE_RETURN_ROWS = 'resolution=merge-duplicates,return=representation'
MERGE_MINIMAL = 'resolution=merge-duplicates,return=minimal'

REQUEST_TIMEOUT_S = 30


class DatastoreError(Exception):
    """Raised when a datastore request fails. Fatal for the run."""


def _error_message(text: str) -> str:
    try:
        payload = json.loads(text)
    except (TypeError, ValueError):
        return text
    if isinstance(payload, dict) and payload.get('message'):
        return str(payload['message'])
    return text


def _parse_json(text: str):
    if not text:
        return []
    try:
        return json.loads(text)
    except ValueError:
        return []


def escape_literal(value) -> str:
    return str(value).replace('\\', '\\\\').replace('"', '\\"')


def in_filter(values: Iterable) -> str:
    """PostgREST set-membership filter: in.("a","b")."""
    return 'in.(' + ','.join(f'"{escape_literal(v)}"' for v in values) + ')'


def parse_content_range_total(content_range: Optional[str]) -> Optional[int]:
    """Total from a Content-Range header such as '0-999/2500'; None when unknown."""
    if not content_range:
        return None
    parts = content_range.split('/')
    if len(parts) != 2:
        return None
    try:
        return int(parts[1])
    except ValueError:
        return None


class SupabaseClient:
    """
    Thin PostgREST client for the tables the ingestion writes.

    Every failed request raises DatastoreError.
    """

    def __init__(self, url: str, key: str, schema: Optional[str] = 'public',
                 session: Optional[requests.Session] = None, timeout: float = REQUEST_TIMEOUT_S):
        self.url = url.rstrip('/')
        self.key = key
        self.schema = schema
        self.session = session or requests.Session()
        self.timeout = timeout

    def _headers(self, prefer: Optional[str] = None) -> Dict[str, str]:
        headers = {
            'apikey': self.key,
            'Authorization': f'Bearer {self.key}',
            'Content-Type': 'application/json',
        }
        if prefer:
            headers['Prefer'] = prefer
        if self.schema:
            headers['Accept-Profile'] = self.schema
            headers['Content-Profile'] = self.schema
        return headers

    def _table_url(self, table: str) -> str:
        return f"{self.url}/rest/v1/{table}"

    def _request(self, op: str, method: str, table: str, **kwargs) -> requests.Response:
        try:
            resp = self.session.request(method, self._table_url(table), timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise DatastoreError(f"Supabase {op} failed ({table}): {e}") from e
        if not resp.ok:
            raise DatastoreError(f"Supabase {op} failed ({table}): {_error_message(resp.text)}")
        return resp

    def insert(self, table: str, rows: Sequence[dict], on_conflict: Optional[str] = None,
               prefer: Optional[str] = None) -> List[dict]:
        """
        Insert (or upsert, with on_conflict) a batch of rows.

        Returns:
            Written rows when prefer asks for return=representation, else []
        """
        if not rows:
            return []
        params = {'on_conflict': on_conflict} if on_conflict else None
        resp = self._request('insert', 'POST', table, params=params,
                             headers=self._headers(prefer), data=json.dumps(list(rows)))
        data = _parse_json(resp.text)
        return data if isinstance(data, list) else []

    def patch_by_id(self, table: str, row_id, payload: dict) -> None:
        self._request('update', 'PATCH', table, params={'id': f'eq.{row_id}'},
                      headers=self._headers('return=minimal'), data=json.dumps(payload))

    def delete_in(self, table: str, column: str, values: Sequence) -> int:
        """Delete rows whose column is in values. Returns the deleted count."""
        if not values:
            return 0
        resp = self._request('delete', 'DELETE', table, params={column: in_filter(values)},
                             headers=self._headers('count=exact,return=minimal'))
        deleted = parse_content_range_total(resp.headers.get('content-range'))
        return deleted if deleted is not None else len(values)

    def select_in(self, table: str, columns: str, column: str, values: Sequence) -> List[dict]:
        if not values:
            return []
        resp = self._request('lookup', 'GET', table,
                             params={'select': columns, column: in_filter(values)},
                             headers=self._headers())
        data = _parse_json(resp.text)
        return data if isinstance(data, list) else []

    def select_page(self, table: str, columns: str, offset: int, limit: int) -> Tuple[List[dict], Optional[int]]:
        """One page of rows plus the server-side total count (if reported)."""
        headers = self._headers('count=exact')
        headers['Range'] = f"{offset}-{offset + limit - 1}"
        resp = self._request('lookup', 'GET', table, params={'select': columns}, headers=headers)
        data = _parse_json(resp.text)
        rows = data if isinstance(data, list) else []
        return rows, parse_content_range_total(resp.headers.get('content-range'))


def get_client(settings: Settings) -> SupabaseClient:
    """
    Build a datastore client from run settings.

    Args:
        settings: Run settings holding the endpoint, key and schema

    Returns:
        SupabaseClient ready for use
    """
    return SupabaseClient(settings.supabase_url, settings.supabase_key, settings.supabase_schema)


def upsert_players(client, rows: Sequence[dict], settings: Settings) -> Dict[str, object]:
    """
    Upsert player records on nickname and map player keys to datastore ids.

    Args:
        client: Datastore client
        rows: Player payloads from build_upsert_payloads
        settings: Run settings (batch size)

    Returns:
        Dictionary mapping normalized nickname to player id
    """
    player_ids: Dict[str, object] = {}
    for batch in chunked(list(rows), settings.db_batch_size):
        written = client.insert(PLAYERS_TABLE, batch, on_conflict=PLAYERS_CONFLICT, prefer=MERGE_RETURN_ROWS)
        for row in written:
            key = normalize_name(row.get('nickname') or '')
            if key and row.get('id') is not None:
                player_ids[key] = row['id']
    return player_ids


def fetch_players_by_nicknames(client, nicknames: Iterable[str], settings: Settings) -> Dict[str, object]:
    unique = list(dict.fromkeys(n for n in (sanitize_text(name) for name in nicknames) if n))
    found: Dict[str, object] = {}
    for batch in chunked(unique, settings.lookup_batch_size):
        for row in client.select_in(PLAYERS_TABLE, 'id,nickname', 'nickname', batch):
            key = normalize_name(row.get('nickname') or '')
            if key and row.get('id') is not None:
                found[key] = row['id']
    return found


def add_existing_players_for_global_rows(client, rows: Sequence[NormalizedRow],
                                         player_ids: Dict[str, object], settings: Settings) -> int:
    """
    Resolve aggregate-region rows against players that already exist.

    Fills `player_ids` in place for aggregate rows whose player key was not
    resolved by this run's upsert. Returns how many ids were added.
    """
    missing = [
        row.player for row in rows
        if row.region == AGGREGATE_REGION and row.player_normalized not in player_ids and row.player
    ]
    if not missing:
        return 0

    added = 0
    for key, player_id in fetch_players_by_nicknames(client, missing, settings).items():
        if key not in player_ids:
            player_ids[key] = player_id
            added += 1
    return added


def upsert_snapshots(client, rows: Sequence[dict], settings: Settings) -> int:
    for batch in chunked(list(rows), settings.db_batch_size):
        client.insert(SNAPSHOTS_TABLE, batch, on_conflict=SNAPSHOTS_CONFLICT, prefer=MERGE_MINIMAL)
    return len(rows)


def upsert_scores(client, rows: Sequence[dict], settings: Settings) -> int:
    for batch in chunked(list(rows), settings.db_batch_size):
        client.insert(SCORES_TABLE, batch, on_conflict=SCORES_CONFLICT, prefer=MERGE_MINIMAL)
    return len(rows)


def create_ingestion_run(client, settings: Settings) -> dict:
    written = client.insert(RUNS_TABLE, [{
        'source': settings.ingestion_source,
        'status': 'RUNNING',
        'started_at': settings.collected_at,
    }], prefer='return=representation')
    if not written:
        raise DatastoreError('Failed to create ingestion run.')
    return written[0]


def compute_status(page_stats: Sequence[PageStat], skipped_snapshots: int,
                   ignored_snapshots: int = 0) -> str:
    """
    PARTIAL when any page never succeeded or any snapshot was skipped or
    ignored, SUCCESS otherwise.
    """
    succeeded = {(s.region, s.page) for s in page_stats if s.success}
    failed = {(s.region, s.page) for s in page_stats} - succeeded
    if failed or skipped_snapshots > 0 or ignored_snapshots > 0:
        return 'PARTIAL'
    return 'SUCCESS'


def finalize_run(client, run: Optional[dict], status: str, total_rows: int, skipped_rows: int,
                 finished_at: str, error_message: Optional[str] = None) -> None:
    if not run or run.get('id') is None:
        return
    payload = {
        'status': status,
        'finished_at': finished_at,
        'total_rows_written': total_rows,
    }
    if skipped_rows > 0:
        payload['error_message'] = f"Skipped rows: {skipped_rows}"
    if error_message:
        payload['error_message'] = error_message
    client.patch_by_id(RUNS_TABLE, run['id'], payload)


def fetch_snapshot_player_regions(client, page_size: int = 1000) -> Tuple[set, set]:
    """
    Scan every snapshot and split player ids by where they were observed.

    Returns:
        (ids with an aggregate-region snapshot, ids with any other snapshot)
    """
    has_global, has_regional = set(), set()
    offset = 0
    total = None
    while total is None or offset < total:
        rows, page_total = client.select_page(SNAPSHOTS_TABLE, 'player_id,region', offset, page_size)
        if total is None:
            total = page_total
        for row in rows:
            if not row or not row.get('player_id') or not row.get('region'):
                continue
            if row['region'] == AGGREGATE_REGION:
                has_global.add(row['player_id'])
            else:
                has_regional.add(row['player_id'])
        if len(rows) < page_size:
            break
        offset += page_size
    return has_global, has_regional


def delete_rows_by_player_ids(client, table: str, ids: Sequence, column: str, settings: Settings) -> int:
    deleted = 0
    for batch in chunked(list(ids), settings.lookup_batch_size):
        deleted += client.delete_in(table, column, batch)
    return deleted
