import pytest

from loadPR.normalizers import (
    build_username,
    normalize_name,
    normalize_row,
    pick_best,
    prepare_rows,
    sanitize_text,
    tranche_from_rank,
)
from loadPR.utils import stable_hash
from tests.helpers import make_settings, raw_row


class TestNames:
    def test_sanitize_collapses_whitespace(self):
        assert sanitize_text('  Ana \t  Lu\n') == 'Ana Lu'
        assert sanitize_text(None) == ''

    def test_normalize_strips_marks_and_case(self):
        assert normalize_name('Zéd') == 'zed'
        assert normalize_name('  ZED  ') == 'zed'
        assert normalize_name('Ze\u200bd') == 'zed'
        assert normalize_name('Bu  gha') == 'bu gha'

    def test_normalize_empty(self):
        assert normalize_name('\u200b ') == ''
        assert normalize_name(None) == ''

    def test_username(self):
        assert build_username('Zed_FN 99') == 'zedfn99'
        assert build_username('ゼッド') == f"player{abs(stable_hash('ゼッド'))}"

    @pytest.mark.parametrize('rank,label', [
        (1, '1-5'), (5, '1-5'), (6, '6-10'), (15, '11-15'),
        (20, '16-20'), (21, '21-25'), (30, '26-30'), (31, '31-infini'), (900, '31-infini'),
    ])
    def test_tranche(self, rank, label):
        assert tranche_from_rank(rank) == label


class TestNormalizeRow:
    def test_clean_row(self):
        row = normalize_row(raw_row(region='eu', player='  Zéd ', points='1200', rank='3'), make_settings())
        assert row.region == 'EU'
        assert row.player == 'Zéd'
        assert row.player_normalized == 'zed'
        assert (row.points, row.rank) == (1200, 3)

    @pytest.mark.parametrize('overrides', [
        {'region': 'MARS'},
        {'player': '   '},
        {'points': 0},
        {'points': -5},
        {'points': 'n/a'},
        {'rank': 0},
        {'rank': None},
    ])
    def test_rejected_rows(self, overrides):
        assert normalize_row(raw_row(**overrides), make_settings()) is None

    def test_aggregate_rows_need_include_global(self):
        row = raw_row(region='GLOBAL')
        assert normalize_row(row, make_settings()) is None
        assert normalize_row(row, make_settings(include_global=True)).region == 'GLOBAL'


class TestPrepareRows:
    def test_higher_points_wins(self):
        prepared = prepare_rows([
            raw_row(player='Zed', points=900, rank=2),
            raw_row(player='zed', points=1000, rank=5),
        ], make_settings())
        assert len(prepared.rows) == 1
        assert prepared.rows[0].points == 1000
        assert prepared.duplicates == 1

    def test_points_tie_goes_to_lower_rank(self):
        prepared = prepare_rows([
            raw_row(player='Zed', points=1000, rank=7),
            raw_row(player='ZED', points=1000, rank=4),
            raw_row(player='Zed', points=1000, rank=9),
        ], make_settings())
        assert [(r.player, r.rank) for r in prepared.rows] == [('ZED', 4)]

    def test_same_player_in_two_regions_is_kept_twice(self):
        prepared = prepare_rows([
            raw_row(region='EU', player='Zed'),
            raw_row(region='NAW', player='Zed'),
        ], make_settings())
        assert sorted(r.region for r in prepared.rows) == ['EU', 'NAW']

    def test_dropped_rows_are_counted(self):
        prepared = prepare_rows([raw_row(points=0), raw_row(player='Ok')], make_settings())
        assert prepared.dropped == 1
        assert [r.player for r in prepared.rows] == ['Ok']


def test_pick_best_handles_empty():
    assert pick_best([]) is None
