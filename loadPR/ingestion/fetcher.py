"""
Round-based fetching with retries.

Each region is fetched on its own. Within a round, tasks go out in chunks of
`chunk_size` concurrent requests; chunks run one after another. Failed tasks
that may be retried are collected into the next round, which starts after a
single backoff delay. Fetching stops when a round produces no retries.
"""
import asyncio
import random
from functools import partial
from itertools import groupby
from typing import Awaitable, Callable, List, Optional

import aiohttp

from ..config import Settings
from ..models import FetchOutcome, FetchResult, FetchTask, PageStat
from ..scrapers.base import fetch_once
from ..scrapers.leaderboard import parse_html_rows
from ..scrapers.providers import reassign_provider
from ..utils import chunked
from .planner import plan_tasks

FetchFn = Callable[[FetchTask, Settings], Awaitable[FetchResult]]
SleepFn = Callable[[float], Awaitable[None]]

BACKOFF_BASE_MS = 300
BACKOFF_FACTOR = 1.9
BACKOFF_JITTER_MS = 300


def backoff_seconds(attempt: int, rng: Optional[random.Random] = None) -> float:
    """Exponential backoff with jitter: 300ms * 1.9^attempt + [0, 300)ms."""
    rng = rng or random
    delay_ms = int(BACKOFF_BASE_MS * (BACKOFF_FACTOR ** attempt)) + int(rng.random() * BACKOFF_JITTER_MS)
    return delay_ms / 1000.0


def should_retry(status: int, has_data: bool, attempts: int, max_attempts: int) -> bool:
    """
    Decide whether a failed attempt is worth another try.

    Retryable: a 200 without the table marker (soft block), network errors and
    timeouts (status 0), 403, 429 and any 5xx. Anything else, e.g. 404, is final.
    """
    if attempts >= max_attempts:
        return False
    if status == 200 and not has_data:
        return True
    if status in (0, 403, 429):
        return True
    return 500 <= status < 600


async def fetch_region(tasks: List[FetchTask], settings: Settings, fetch: FetchFn,
                       sleep: SleepFn = asyncio.sleep) -> FetchOutcome:
    """
    Run all retry rounds for one region's tasks.

    Args:
        tasks: Planned tasks for a single region (attempts == 0)
        settings: Run settings (chunk size, attempt budget)
        fetch: Coroutine executing one attempt
        sleep: Awaitable delay, replaceable in tests

    Returns:
        FetchOutcome with parsed rows and one PageStat per executed attempt
    """
    outcome = FetchOutcome()
    pending = list(tasks)

    while pending:
        next_round: List[FetchTask] = []
        for batch in chunked(pending, settings.chunk_size):
            for task in batch:
                task.attempts += 1
            results = await asyncio.gather(*(fetch(task, settings) for task in batch))

            for result in results:
                task = result.task
                if result.success:
                    outcome.rows.extend(parse_html_rows(result.html, task, settings))

                outcome.page_stats.append(PageStat(
                    region=task.region,
                    page=task.page,
                    provider=task.provider,
                    attempts=task.attempts,
                    status=result.status,
                    success=result.success,
                ))

                if not result.success and should_retry(result.status, result.has_data,
                                                       task.attempts, settings.max_attempts):
                    next_round.append(reassign_provider(task, settings))

        if not next_round:
            break

        await sleep(backoff_seconds(next_round[0].attempts))
        pending = next_round

    return outcome


async def fetch_all_regions(settings: Settings, fetch: Optional[FetchFn] = None,
                            sleep: SleepFn = asyncio.sleep) -> FetchOutcome:
    """
    Fetch every planned page, one region at a time.

    When no fetch coroutine is given, a shared aiohttp session is opened for the
    whole run and each attempt goes through `fetch_once`.
    """
    if fetch is None:
        async with aiohttp.ClientSession() as session:
            return await fetch_all_regions(settings, fetch=partial(fetch_once, session), sleep=sleep)

    outcome = FetchOutcome()
    for region, region_tasks in groupby(plan_tasks(settings), key=lambda t: t.region):
        region_outcome = await fetch_region(list(region_tasks), settings, fetch, sleep=sleep)
        failed = region_outcome.failed_pages
        tag = '[OK]' if failed == 0 else '[WARNING]'
        print(f"{tag} {region}: pages={region_outcome.pages}, failed={failed}, rows={len(region_outcome.rows)}")
        outcome.extend(region_outcome)
    return outcome
