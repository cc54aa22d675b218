"""
Record types passed between ingestion stages.

Lifecycle: FetchTask -> FetchResult -> RawRow -> NormalizedRow ->
PlayerCandidate / snapshot rows / ScoreCandidate -> datastore records.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass(frozen=True)
class RegionBounds:
    """Inclusive page range to fetch for one region."""
    code: str
    first: int
    last: int


@dataclass
class FetchTask:
    """One (region, page) fetch. Provider and attempts change across retry rounds."""
    region: str
    page: int
    provider: str
    attempts: int = 0


@dataclass
class FetchResult:
    task: FetchTask
    status: int
    html: str
    has_data: bool
    success: bool
    url: str = ''
    duration_ms: int = 0


@dataclass(frozen=True)
class PageStat:
    """Outcome of a single executed attempt."""
    region: str
    page: int
    provider: str
    attempts: int
    status: int
    success: bool


@dataclass
class RawRow:
    region: str
    page: int
    rank: int
    player: str
    team: str
    points: int
    platform: str
    timeframe: str
    provider: str


@dataclass
class NormalizedRow(RawRow):
    player_normalized: str = ''


@dataclass
class PlayerCandidate:
    nickname: str
    region: str
    rank: int
    points: int
    source_region: str


@dataclass
class ScoreCandidate:
    player_normalized: str
    points: int
    rank: int


@dataclass
class FetchOutcome:
    """Rows and per-attempt statistics collected for one or more regions."""
    rows: List[RawRow] = field(default_factory=list)
    page_stats: List[PageStat] = field(default_factory=list)

    def extend(self, other: 'FetchOutcome') -> None:
        self.rows.extend(other.rows)
        self.page_stats.extend(other.page_stats)

    @property
    def pages(self) -> int:
        return len({(s.region, s.page) for s in self.page_stats})

    @property
    def failed_pages(self) -> int:
        """Pages where no attempt succeeded."""
        succeeded = {(s.region, s.page) for s in self.page_stats if s.success}
        return len({(s.region, s.page) for s in self.page_stats} - succeeded)


@dataclass
class PreparedRows:
    rows: List[NormalizedRow]
    dropped: int = 0
    duplicates: int = 0


@dataclass
class PayloadBundle:
    player_upserts: List[Dict[str, object]]
    snapshot_rows: List[NormalizedRow]
    score_rows: List[ScoreCandidate]


@dataclass
class MappedSnapshots:
    rows: List[Dict[str, object]]
    skipped: int = 0
    ignored_global: int = 0


@dataclass
class CleanupSummary:
    players: int = 0
    snapshots: int = 0
    scores: int = 0


@dataclass
class IngestionResult:
    """Summary of one ingestion run."""
    status: str
    pages: int = 0
    failed_pages: int = 0
    raw_rows: int = 0
    clean_rows: int = 0
    players: int = 0
    snapshots: int = 0
    scores: int = 0
    skipped: int = 0
    ignored_global: int = 0
    run_id: Optional[object] = None
    cleanup: Optional[CleanupSummary] = None
    dry_run: bool = False
