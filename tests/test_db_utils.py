import json

import pytest
import requests

from loadPR.db_utils import (
    DatastoreError,
    SupabaseClient,
    add_existing_players_for_global_rows,
    compute_status,
    create_ingestion_run,
    fetch_snapshot_player_regions,
    finalize_run,
    in_filter,
    parse_content_range_total,
    upsert_players,
    upsert_snapshots,
)
from loadPR.models import PageStat
from loadPR.normalizers import prepare_rows
from tests.helpers import FakeDatastore, make_settings, raw_row


class FakeHTTPResponse:
    def __init__(self, status_code=200, body='', headers=None):
        self.status_code = status_code
        self.text = body if isinstance(body, str) else json.dumps(body)
        self.headers = headers or {}

    @property
    def ok(self):
        return self.status_code < 400


class RecordingSession:
    def __init__(self, responses=None, error=None):
        self.responses = list(responses or [])
        self.error = error
        self.requests = []

    def request(self, method, url, **kwargs):
        self.requests.append((method, url, kwargs))
        if self.error is not None:
            raise self.error
        if self.responses:
            return self.responses.pop(0)
        return FakeHTTPResponse(200, '[]')


def _client(session):
    return SupabaseClient('https://db.example.test/', 'secret', 'public', session=session)


class TestSupabaseClient:
    def test_upsert_sends_conflict_and_prefer(self):
        session = RecordingSession([FakeHTTPResponse(201, [{'id': 1, 'nickname': 'Zed'}])])
        written = _client(session).insert('players', [{'nickname': 'Zed'}], on_conflict='nickname',
                                          prefer='resolution=merge-duplicates,return=representation')

        method, url, kwargs = session.requests[0]
        assert method == 'POST'
        assert url == 'https://db.example.test/rest/v1/players'
        assert kwargs['params'] == {'on_conflict': 'nickname'}
        assert kwargs['headers']['apikey'] == 'secret'
        assert kwargs['headers']['Authorization'] == 'Bearer secret'
        assert kwargs['headers']['Prefer'] == 'resolution=merge-duplicates,return=representation'
        assert kwargs['headers']['Content-Profile'] == 'public'
        assert json.loads(kwargs['data']) == [{'nickname': 'Zed'}]
        assert written == [{'id': 1, 'nickname': 'Zed'}]

    def test_empty_insert_sends_nothing(self):
        session = RecordingSession()
        assert _client(session).insert('players', []) == []
        assert session.requests == []

    def test_error_response_raises_with_server_message(self):
        session = RecordingSession([FakeHTTPResponse(409, {'message': 'duplicate key'})])
        with pytest.raises(DatastoreError, match=r'Supabase insert failed \(scores\): duplicate key'):
            _client(session).insert('scores', [{'player_id': 1}])

    def test_network_error_raises(self):
        session = RecordingSession(error=requests.ConnectionError('refused'))
        with pytest.raises(DatastoreError, match='lookup failed'):
            _client(session).select_in('players', 'id,nickname', 'nickname', ['Zed'])

    def test_delete_uses_content_range_count(self):
        session = RecordingSession([FakeHTTPResponse(204, '', {'content-range': '*/2'})])
        deleted = _client(session).delete_in('scores', 'player_id', [4, 5, 6])

        method, _, kwargs = session.requests[0]
        assert method == 'DELETE'
        assert kwargs['params'] == {'player_id': 'in.("4","5","6")'}
        assert deleted == 2

    def test_select_page_sends_range(self):
        session = RecordingSession([FakeHTTPResponse(206, [{'player_id': 1, 'region': 'EU'}],
                                                     {'content-range': '0-0/1'})])
        rows, total = _client(session).select_page('pr_snapshots', 'player_id,region', 0, 1000)

        assert session.requests[0][2]['headers']['Range'] == '0-999'
        assert rows == [{'player_id': 1, 'region': 'EU'}]
        assert total == 1


def test_in_filter_escapes_quotes():
    assert in_filter(['a"b', 'c\\d']) == 'in.("a\\"b","c\\\\d")'


@pytest.mark.parametrize('header,expected', [
    ('0-999/2500', 2500),
    ('*/0', 0),
    ('0-9/*', None),
    (None, None),
])
def test_parse_content_range_total(header, expected):
    assert parse_content_range_total(header) == expected


def test_upsert_players_batches_and_maps_ids():
    store = FakeDatastore()
    settings = make_settings(db_batch_size=2)
    rows = [{'nickname': n, 'username': n.lower(), 'region': 'EU', 'tranche': '1-5', 'current_season': 2025}
            for n in ('Zed', 'Ána', 'Bo')]
    ids = upsert_players(store, rows, settings)

    assert [c for c in store.calls if c[0] == 'insert'] == [('insert', 'players', 2), ('insert', 'players', 1)]
    assert ids == {'zed': 1, 'ana': 2, 'bo': 3}


def test_upsert_snapshots_is_idempotent():
    store = FakeDatastore()
    settings = make_settings()
    rows = [{'player_id': 1, 'region': 'EU', 'snapshot_date': '2025-06-01', 'points': 10, 'rank': 1}]
    upsert_snapshots(store, rows, settings)
    upsert_snapshots(store, [dict(rows[0], points=12)], settings)

    assert len(store.tables['pr_snapshots']) == 1
    assert store.tables['pr_snapshots'][0]['points'] == 12


def test_aggregate_rows_resolve_existing_players():
    store = FakeDatastore()
    store.insert('players', [{'nickname': 'Ghost'}])
    settings = make_settings(include_global=True)
    rows = prepare_rows([
        raw_row(region='GLOBAL', player='Ghost'),
        raw_row(region='GLOBAL', player='Nobody'),
    ], settings).rows
    player_ids = {}

    assert add_existing_players_for_global_rows(store, rows, player_ids, settings) == 1
    assert player_ids == {'ghost': store.player_id('Ghost')}


def _stat(page, success, status=200):
    return PageStat(region='EU', page=page, provider='scrapfly', attempts=1, status=status, success=success)


def test_compute_status():
    assert compute_status([_stat(1, True)], 0) == 'SUCCESS'
    assert compute_status([_stat(1, False, 503), _stat(1, True)], 0) == 'SUCCESS'
    assert compute_status([_stat(1, True), _stat(2, False, 404)], 0) == 'PARTIAL'
    assert compute_status([_stat(1, True)], 3) == 'PARTIAL'
    assert compute_status([_stat(1, True)], 0, 1) == 'PARTIAL'
    assert compute_status([_stat(1, True)], 0, 0) == 'SUCCESS'


def test_run_lifecycle():
    store = FakeDatastore()
    settings = make_settings()
    run = create_ingestion_run(store, settings)
    assert store.tables['ingestion_runs'][0]['status'] == 'RUNNING'
    assert store.tables['ingestion_runs'][0]['source'] == 'FORTNITE_TRACKER'

    finalize_run(store, run, 'PARTIAL', 40, 2, '2025-06-01T12:05:00+00:00')
    sealed = store.tables['ingestion_runs'][0]
    assert sealed['status'] == 'PARTIAL'
    assert sealed['total_rows_written'] == 40
    assert sealed['error_message'] == 'Skipped rows: 2'


def test_finalize_error_message_wins():
    store = FakeDatastore()
    run = create_ingestion_run(store, make_settings())
    finalize_run(store, run, 'FAILED', 0, 1, 'now', error_message='boom')
    assert store.tables['ingestion_runs'][0]['error_message'] == 'boom'


def test_finalize_without_run_is_noop():
    store = FakeDatastore()
    finalize_run(store, None, 'SUCCESS', 0, 0, 'now')
    assert store.calls == []


def test_snapshot_scan_pages_through_table():
    store = FakeDatastore()
    store.insert('pr_snapshots', [
        {'player_id': 1, 'region': 'GLOBAL'},
        {'player_id': 1, 'region': 'EU'},
        {'player_id': 2, 'region': 'GLOBAL'},
        {'player_id': 3, 'region': 'NAW'},
        {'player_id': None, 'region': 'EU'},
    ])
    has_global, has_regional = fetch_snapshot_player_regions(store, page_size=2)

    assert has_global == {1, 2}
    assert has_regional == {1, 3}
    assert [c[2] for c in store.calls if c[0] == 'select_page'] == [0, 2, 4]
