"""
Base scraping utilities for the power rankings leaderboard.

Provides the single-request executor used by every retry round:
- request URL building through the task's provider
- timeout handling (a timeout or network error is reported as status 0)
- JSON envelope unwrapping and data-marker detection
"""
import asyncio
import json
import re
import time

import aiohttp

from ..config import Settings
from ..models import FetchResult, FetchTask
from .providers import build_provider_url, build_target, pick_key_for

HEADERS = {
    'User-Agent': 'fortnite-pronos-ingest/1.0',
}

TBODY_MARKER = re.compile(r'<tbody[^>]*>', re.IGNORECASE)


def extract_html(body: str) -> str:
    """
    Return the HTML carried by a provider response.

    Some providers answer with a JSON envelope ({"result": {"content": "<html>"}})
    instead of raw HTML. A malformed envelope yields an empty string.

    Args:
        body: Raw response body

    Returns:
        HTML string, possibly empty
    """
    if not body:
        return ''
    trimmed = body.strip()
    if not trimmed.startswith('{'):
        return trimmed
    try:
        payload = json.loads(trimmed)
    except ValueError:
        return ''
    if not isinstance(payload, dict):
        return ''
    result = payload.get('result')
    if isinstance(result, dict) and isinstance(result.get('content'), str):
        return result['content']
    if isinstance(payload.get('content'), str):
        return payload['content']
    return ''


def has_data_marker(html: str) -> bool:
    return bool(html) and TBODY_MARKER.search(html) is not None


def classify(task: FetchTask, status: int, body: str, url: str = '', duration_ms: int = 0) -> FetchResult:
    """Build a FetchResult. Success needs HTTP 200 and a table body in the HTML."""
    html = extract_html(body)
    has_data = has_data_marker(html)
    return FetchResult(
        task=task,
        status=status,
        html=html,
        has_data=has_data,
        success=status == 200 and has_data,
        url=url,
        duration_ms=duration_ms,
    )


async def fetch_once(session: aiohttp.ClientSession, task: FetchTask, settings: Settings) -> FetchResult:
    """
    Execute one attempt for a task through its assigned provider.

    Args:
        session: aiohttp client session shared by the run
        task: Task whose `attempts` already counts this attempt
        settings: Run settings

    Returns:
        FetchResult; never raises for network failures
    """
    # Keys are hashed on the attempts made before this one
    key = pick_key_for(task.provider, task.region, task.page, task.attempts - 1, settings)
    target_url = build_target(task.region, task.page, settings)
    url = build_provider_url(task.provider, target_url, key, settings)

    start = time.monotonic()
    status = 0
    body = ''
    try:
        timeout = aiohttp.ClientTimeout(total=settings.request_timeout_s)
        async with session.get(url, timeout=timeout, headers=HEADERS) as resp:
            status = resp.status
            body = await resp.text()
    except (aiohttp.ClientError, asyncio.TimeoutError, UnicodeDecodeError) as e:
        status = 0
        body = ''
        if settings.debug:
            print(f"[ERR] Fetch error {task.region} p{task.page} via {task.provider}: {e!r}")

    duration_ms = int((time.monotonic() - start) * 1000)
    return classify(task, status, body, url=url, duration_ms=duration_ms)
