"""Worker roster, icons and per-worker views over normalized routes."""

from __future__ import annotations

import datetime as dt
import logging
from typing import Final, Iterable

from spfm_routes.route_tools.route_model import Route
from spfm_routes.route_tools.route_repository import RouteRepository
from spfm_routes.sheet_tools.workbook_source import VEHICLES_TABLE, WORKERS_TABLE
from spfm_routes.utils.text_helpers import (
    cell_text,
    flexible_text_includes,
    flexible_text_match,
)

# =============================================================================
# CONFIGURATION
# =============================================================================

DEFAULT_UPCOMING_LIMIT: Final[int] = 8
COMPLETED_STATUS: Final[str] = "completed"
ROSTER_CACHE_NAME: Final[str] = "all_workers"

logger = logging.getLogger(__name__)

# =============================================================================
# FUNCTIONS
# =============================================================================


def _collect_workers(repository: RouteRepository) -> list[str]:
    workers: set[str] = set()
    for row in repository.get_table(WORKERS_TABLE):
        name = cell_text(row.get("name"))
        if name and not flexible_text_includes(name, "volunteer"):
            workers.add(name)
    for route in repository.get_all_routes():
        workers.update(w for w in route.workers if not flexible_text_includes(w, "volunteer"))
    return sorted(workers)


def all_workers(repository: RouteRepository) -> list[str]:
    """Sorted distinct worker names from the Workers table and every route.

    Names containing "volunteer" are left out. The result lives in the
    repository's derived cache, so it is rebuilt together with the routes.
    """
    return list(repository.derived(ROSTER_CACHE_NAME, lambda: _collect_workers(repository)))


def _icon_for(repository: RouteRepository, table: str, name: str | None) -> str:
    if not name:
        return ""
    for row in repository.get_table(table):
        if flexible_text_match(row.get("name"), name):
            return cell_text(row.get("emoji"))
    return ""


def worker_icon(repository: RouteRepository, name: str | None) -> str:
    """Emoji configured for a worker, ``""`` when none is set."""
    return _icon_for(repository, WORKERS_TABLE, name)


def vehicle_icon(repository: RouteRepository, name: str | None) -> str:
    return _icon_for(repository, VEHICLES_TABLE, name)


def worker_assignments(routes: Iterable[Route], worker_name: str) -> list[Route]:
    """Routes on which *worker_name* is listed as a worker."""
    if not worker_name:
        return []
    return [
        route
        for route in routes
        if any(flexible_text_match(worker, worker_name) for worker in route.workers)
    ]


def _sort_key(route: Route) -> tuple[dt.date, str]:
    return (route.sort_date or dt.date.max, route.start_time)


def upcoming_routes(
    routes: Iterable[Route],
    today: dt.date | None = None,
    limit: int = DEFAULT_UPCOMING_LIMIT,
) -> list[Route]:
    """Routes dated today or later that are not completed, soonest first.

    Args:
        routes: Normalized routes.
        today: First date to include; defaults to the local date.
        limit: Maximum number of routes returned.
    """
    today = today or dt.date.today()
    pending = [
        route
        for route in routes
        if route.sort_date is not None
        and route.sort_date >= today
        and not flexible_text_match(route.status, COMPLETED_STATUS)
    ]
    return sorted(pending, key=_sort_key)[:limit]
