"""
Fetch task planning.

Expands the configured region page ranges into (region, page) tasks. Pure and
deterministic: no network or storage access.
"""
from typing import Iterable, List

from ..config import Settings
from ..models import FetchTask, RegionBounds
from ..scrapers.providers import pick_primary_provider


def plan_region_tasks(region: RegionBounds, settings: Settings) -> List[FetchTask]:
    return [
        FetchTask(
            region=region.code,
            page=page,
            provider=pick_primary_provider(region.code, page, settings),
            attempts=0,
        )
        for page in range(region.first, region.last + 1)
    ]


def plan_tasks(settings: Settings, regions: Iterable[RegionBounds] = None) -> List[FetchTask]:
    """
    Flat, ordered task list for every configured region.

    Args:
        settings: Run settings (regions and provider weights)
        regions: Optional override of settings.regions

    Returns:
        FetchTasks grouped by region in configuration order, pages ascending
    """
    tasks: List[FetchTask] = []
    for region in (settings.regions if regions is None else regions):
        tasks.extend(plan_region_tasks(region, settings))
    return tasks
