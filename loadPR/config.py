import os
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Mapping, Optional

from .models import RegionBounds

# Base paths
REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
ENV_PATH = os.path.join(REPO_ROOT, '.env')

# Cross-regional leaderboard; lowest priority for player identity
AGGREGATE_REGION = 'GLOBAL'

# Regions a leaderboard row may come from
PR_REGIONS = frozenset({'EU', 'NAW', 'BR', 'ASIA', 'OCE', 'NAC', 'ME', AGGREGATE_REGION})

# Regions a player can call home
PLAYER_REGIONS = frozenset({'EU', 'NAW', 'BR', 'ASIA', 'OCE', 'NAC', 'ME', 'NA'})

# Fetch order; the aggregate region always goes first when enabled
REGION_ORDER = ('GLOBAL', 'ASIA', 'BR', 'EU', 'ME', 'NAW', 'NAC', 'OCE')

# Rotation order for retries
PROVIDER_ORDER = ('scrapfly', 'scraperapi', 'scrapedo')

SCORE_STRATEGIES = ('MAX', 'GLOBAL', 'REGION')

_DATE_RE = re.compile(r'^\d{4}-\d{2}-\d{2}$')


class ConfigError(Exception):
    """Raised when the environment cannot produce a runnable configuration."""


@dataclass
class Settings:
    """Everything one ingestion run needs, passed explicitly through each stage."""
    supabase_url: str
    supabase_key: str
    supabase_schema: str = 'public'
    platform: str = 'pc'
    timeframe: str = 'year'
    page_size: int = 100
    scraperapi_render: bool = False
    chunk_size: int = 40
    max_attempts: int = 8
    request_timeout_ms: int = 20000
    debug: bool = False
    weights: Dict[str, int] = field(default_factory=dict)
    keys: Dict[str, List[str]] = field(default_factory=dict)
    scrapedo_base_url: str = 'http://api.scrape.do/'
    regions: List[RegionBounds] = field(default_factory=list)
    include_global: bool = False
    ingestion_source: str = 'FORTNITE_TRACKER'
    current_season: int = 2025
    snapshot_date: str = ''
    collected_at: str = ''
    db_batch_size: int = 500
    lookup_batch_size: int = 50
    score_strategy: str = 'MAX'
    write_scores: bool = True
    cleanup_global_only: bool = False
    cleanup_only: bool = False
    dry_run: bool = False

    @property
    def request_timeout_s(self) -> float:
        return self.request_timeout_ms / 1000.0


def parse_bool(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    return str(value).strip().lower() == 'true'


def parse_int(value: Optional[str], default: int) -> int:
    """Parse an integer setting, falling back to the default on empty or garbage input."""
    if value is None or str(value).strip() == '':
        return default
    try:
        return int(str(value).strip())
    except ValueError:
        return default


def parse_list(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(',') if item.strip()]


def merge_tokens(tokens: List[str], token: Optional[str]) -> List[str]:
    """Append a single token to a token list, dropping blanks and duplicates in order."""
    merged = list(tokens)
    if token:
        merged.append(token.strip())
    return list(dict.fromkeys(t.strip() for t in merged if t and t.strip()))


def parse_snapshot_date(value: Optional[str], now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    if value and _DATE_RE.match(value.strip()):
        return value.strip()
    return now.strftime('%Y-%m-%d')


def build_regions(global_pages: int, region_pages: int, include_global: bool,
                  region_filter: Optional[str] = None) -> List[RegionBounds]:
    """
    Build the ordered list of regions to scrape with their page bounds.

    Args:
        global_pages: Last page to fetch for the aggregate region
        region_pages: Last page to fetch for every other region
        include_global: Whether the aggregate region is scraped at all
        region_filter: Optional comma separated allow-list (e.g. "EU,NAW")

    Returns:
        List of RegionBounds in fetch order
    """
    allowed = [code.upper() for code in parse_list(region_filter)] or None

    regions = []
    for code in REGION_ORDER:
        last = global_pages if code == AGGREGATE_REGION else region_pages
        if code == AGGREGATE_REGION and not include_global:
            continue
        if allowed is not None and code not in allowed:
            continue
        regions.append(RegionBounds(code=code, first=1, last=last))
    return regions


def load_settings(args: Optional[Mapping[str, object]] = None,
                  environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build run settings from CLI overrides and environment variables.

    CLI overrides win over the environment. Raises ConfigError when the datastore
    endpoint or credentials are missing, or when no scraping provider is usable.
    """
    args = dict(args or {})
    env = os.environ if environ is None else environ

    supabase_url = env.get('SUPABASE_URL')
    supabase_key = (env.get('SUPABASE_SERVICE_ROLE_KEY')
                    or env.get('SUPABASE_API_KEY')
                    or env.get('SUPABASE_ANON_KEY'))
    if not supabase_url:
        raise ConfigError('SUPABASE_URL is required.')
    if not supabase_key:
        raise ConfigError('SUPABASE_SERVICE_ROLE_KEY (or SUPABASE_API_KEY) is required.')

    keys = {
        'scrapfly': parse_list(env.get('SCRAPFLY_KEYS')),
        'scraperapi': parse_list(env.get('SCRAPERAPI_KEYS')),
        'scrapedo': merge_tokens(parse_list(env.get('SCRAPEDO_TOKENS')), env.get('SCRAPEDO_TOKEN')),
    }
    if not any(keys.values()):
        raise ConfigError('Missing SCRAPFLY_KEYS, SCRAPERAPI_KEYS, or SCRAPEDO_TOKEN.')

    weights = {
        'scrapfly': parse_int(env.get('SCRAPFLY_WEIGHT'), 1),
        'scraperapi': parse_int(env.get('SCRAPERAPI_WEIGHT'), 1),
        'scrapedo': parse_int(env.get('SCRAPEDO_WEIGHT'), 1),
    }
    for name in PROVIDER_ORDER:
        if not keys[name] or weights[name] < 0:
            weights[name] = 0
    if sum(weights.values()) == 0:
        raise ConfigError('At least one provider must have keys.')

    include_global = args.get('include_global')
    if include_global is None:
        include_global = parse_bool(env.get('SCRAPE_INCLUDE_GLOBAL'), False)

    region_filter = args.get('regions') or env.get('SCRAPE_REGIONS') or ''
    regions = build_regions(
        parse_int(env.get('SCRAPE_GLOBAL_PAGES'), 21),
        parse_int(env.get('SCRAPE_REGION_PAGES'), 3),
        bool(include_global),
        str(region_filter),
    )

    score_strategy = str(args.get('score_strategy') or env.get('SCORE_STRATEGY') or 'MAX').upper()
    if score_strategy not in SCORE_STRATEGIES:
        print(f"[WARNING] Unknown score strategy '{score_strategy}', using MAX")
        score_strategy = 'MAX'

    write_scores = args.get('write_scores')
    if write_scores is None:
        write_scores = parse_bool(env.get('INGESTION_WRITE_SCORES'), True)

    return Settings(
        supabase_url=supabase_url.rstrip('/'),
        supabase_key=supabase_key,
        supabase_schema=env.get('SUPABASE_SCHEMA') or 'public',
        platform=env.get('SCRAPE_PLATFORM') or 'pc',
        timeframe=env.get('SCRAPE_TIMEFRAME') or 'year',
        page_size=parse_int(env.get('SCRAPE_PAGE_SIZE'), 100),
        scraperapi_render=parse_bool(env.get('SCRAPERAPI_RENDER'), False),
        chunk_size=max(1, parse_int(env.get('SCRAPE_CHUNK_SIZE'), 40)),
        max_attempts=max(1, parse_int(env.get('SCRAPE_MAX_ATTEMPTS'), 8)),
        request_timeout_ms=parse_int(env.get('SCRAPE_TIMEOUT_MS'), 20000),
        debug=parse_bool(env.get('SCRAPE_DEBUG'), False),
        weights=weights,
        keys=keys,
        scrapedo_base_url=env.get('SCRAPEDO_BASE_URL') or 'http://api.scrape.do/',
        regions=regions,
        include_global=bool(include_global),
        ingestion_source=env.get('INGESTION_SOURCE') or 'FORTNITE_TRACKER',
        current_season=parse_int(env.get('INGESTION_SEASON'), 2025),
        snapshot_date=parse_snapshot_date(env.get('SNAPSHOT_DATE')),
        collected_at=datetime.now(timezone.utc).isoformat(),
        db_batch_size=max(1, parse_int(env.get('INGESTION_BATCH_SIZE'), 500)),
        lookup_batch_size=max(1, parse_int(env.get('INGESTION_LOOKUP_BATCH_SIZE'), 50)),
        score_strategy=score_strategy,
        write_scores=bool(write_scores),
        cleanup_global_only=bool(args.get('cleanup_global_only') or args.get('cleanup_only')),
        cleanup_only=bool(args.get('cleanup_only')),
        dry_run=bool(args.get('dry_run')),
    )
