"""
Scraping provider templates and routing.

Each provider wraps the leaderboard URL in its own proxy request URL. Tasks are
assigned a provider by weighted selection over a stable hash of the task
identity, and rotate to the next provider on every other retry.
"""
from dataclasses import dataclass
from typing import Callable, Dict, List
from urllib.parse import quote

from ..config import PROVIDER_ORDER, Settings
from ..models import FetchTask
from ..utils import stable_hash

TARGET_URL = (
    "https://fortnitetracker.com/events/powerrankings"
    "?platform={platform}&region={region}&time={timeframe}&page={page}"
)


def _enc(value) -> str:
    return quote(str(value), safe='')


def _scrapfly_url(target_url: str, key: str, settings: Settings) -> str:
    return (
        "https://api.scrapfly.io/scrape"
        f"?key={_enc(key)}"
        "&asp=true&render_js=true&country=us"
        f"&url={_enc(target_url)}"
    )


def _scraperapi_url(target_url: str, key: str, settings: Settings) -> str:
    render = 'true' if settings.scraperapi_render else 'false'
    return (
        "https://api.scraperapi.com/?"
        f"api_key={_enc(key)}"
        f"&render={render}"
        "&wait_selector=tbody"
        f"&timeout={settings.request_timeout_ms}"
        f"&url={_enc(target_url)}"
    )


def _scrapedo_url(target_url: str, key: str, settings: Settings) -> str:
    base = settings.scrapedo_base_url or 'http://api.scrape.do/'
    separator = '&' if '?' in base else '?'
    return f"{base}{separator}url={_enc(target_url)}&token={_enc(key)}"


@dataclass(frozen=True)
class ProviderTemplate:
    name: str
    build_url: Callable[[str, str, Settings], str]


PROVIDERS: Dict[str, ProviderTemplate] = {
    'scrapfly': ProviderTemplate('scrapfly', _scrapfly_url),
    'scraperapi': ProviderTemplate('scraperapi', _scraperapi_url),
    'scrapedo': ProviderTemplate('scrapedo', _scrapedo_url),
}


def build_target(region: str, page: int, settings: Settings) -> str:
    return TARGET_URL.format(
        platform=settings.platform,
        region=region,
        timeframe=settings.timeframe,
        page=page,
    )


def build_provider_url(provider: str, target_url: str, key: str, settings: Settings) -> str:
    template = PROVIDERS.get(provider)
    if template is None:
        raise ValueError(f"Unknown provider: {provider}")
    return template.build_url(target_url, key, settings)


def is_provider_enabled(provider: str, settings: Settings) -> bool:
    return settings.weights.get(provider, 0) > 0 and bool(settings.keys.get(provider))


def enabled_providers(settings: Settings) -> List[str]:
    """Providers with a positive weight and at least one credential, in rotation order."""
    return [name for name in PROVIDER_ORDER if is_provider_enabled(name, settings)]


def pick_primary_provider(region: str, page: int, settings: Settings) -> str:
    """
    Weighted, deterministic provider choice for a (region, page) task.

    Raises:
        ValueError: if no provider is enabled
    """
    providers = enabled_providers(settings)
    if not providers:
        raise ValueError("No scraping provider is enabled")

    total = sum(settings.weights[name] for name in providers)
    slot = abs(stable_hash(f"{region}-{page}")) % total
    cursor = 0
    for name in providers:
        cursor += settings.weights[name]
        if slot < cursor:
            return name
    return providers[0]


def pick_key_for(provider: str, region: str, page: int, attempt: int, settings: Settings) -> str:
    keys = settings.keys.get(provider) or []
    if not keys:
        raise ValueError(f"No keys configured for {provider}")
    idx = abs(stable_hash(f"{provider}:{region}:{page}:{attempt}")) % len(keys)
    return keys[idx]


def next_provider(current: str, providers: List[str]) -> str:
    if current not in providers:
        return providers[0]
    return providers[(providers.index(current) + 1) % len(providers)]


def reassign_provider(task: FetchTask, settings: Settings) -> FetchTask:
    """
    Pick the provider for the task's next attempt, in place.

    A provider that is no longer enabled is replaced by the first enabled one.
    With more than one provider, odd attempt counts rotate to the next provider.
    """
    providers = enabled_providers(settings)
    if not providers:
        return task

    if task.provider not in providers:
        task.provider = providers[0]
    elif task.attempts % 2 == 1 and len(providers) > 1:
        task.provider = next_provider(task.provider, providers)
    return task
