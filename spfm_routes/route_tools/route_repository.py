"""Route repository: raw tables in, normalized routes out.

Owns the :class:`RawTableStore`, the fetch gate in front of it and the cache
of normalized routes derived from it. One repository is built per process and
handed to whatever needs routes.

Flow of :meth:`RouteRepository.get_all_routes`::

    store snapshot --> market rows ------------------> normalize
                   --> Routes template --+
                   --> Recovery rows  ---+--> expand --> normalize
                   --> Delivery rows  ---+
                   => de-duplicate by route id, cache by (signature, today)
"""

from __future__ import annotations

import asyncio
import datetime as dt
import logging
import time
from collections.abc import Mapping
from typing import Any, Callable, Final, Protocol

from spfm_routes.route_tools import periodic_expander
from spfm_routes.route_tools.contacts import ContactDirectory
from spfm_routes.route_tools.route_model import Contact, Route, RouteKind
from spfm_routes.route_tools.route_normalizer import normalize_route
from spfm_routes.sheet_tools.local_store import LocalStore
from spfm_routes.sheet_tools.table_store import RawTableStore, RowView
from spfm_routes.sheet_tools.workbook_source import (
    CONTACTS_TABLE,
    DELIVERY_TABLE,
    RECOVERY_TABLE,
    ROUTES_TABLE,
    SPFM_TABLE,
)

# =============================================================================
# CONFIGURATION
# =============================================================================

SHEETS_TTL_SECONDS: Final[float] = 120.0
DEFAULT_WINDOW_WEEKS: Final[int] = periodic_expander.DEFAULT_WINDOW_WEEKS

# Legacy per-kind sheets and the kind their rows default to.
LEGACY_TEMPLATE_TABLES: Final[tuple[tuple[str, RouteKind], ...]] = (
    (RECOVERY_TABLE, RouteKind.RECOVERY),
    (DELIVERY_TABLE, RouteKind.SPFM_DELIVERY),
)

META_LAST_FETCH: Final[str] = "last_fetch_ts"
META_SOURCE_VERSION: Final[str] = "source_version"

logger = logging.getLogger(__name__)


class TableSource(Protocol):
    """Anything that can hand back the latest rows for every table."""

    def fetch_tables(self) -> Mapping[str, list[Mapping[str, Any]]]: ...


def _log_fetch_failure(task: asyncio.Future[None]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Table fetch failed: %s", exc)


# =============================================================================
# REPOSITORY
# =============================================================================


class RouteRepository:
    """Raw table store plus the normalized-route cache built on top of it.

    Args:
        source: Fetch service. When it also has a ``version()`` method, a
            stale store is only refetched if the version changed.
        local_store: Optional persistence; tables are read back from it at
            construction and written to it after each fetch.
        window_weeks: Weeks of periodic occurrences to generate.
        ttl_seconds: Age after which loaded tables count as stale.
        clock: Wall-clock source (seconds), replaceable in tests.
        today: Callable returning the local date the window starts on.
    """

    def __init__(
        self,
        source: TableSource | None = None,
        *,
        local_store: LocalStore | None = None,
        window_weeks: int = DEFAULT_WINDOW_WEEKS,
        ttl_seconds: float = SHEETS_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
        today: Callable[[], dt.date] = dt.date.today,
    ) -> None:
        self.source = source
        self.local_store = local_store
        self.window_weeks = window_weeks
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._today = today

        self.store = RawTableStore()
        self.recompute_count = 0
        self._inflight: asyncio.Future[None] | None = None
        self._source_version: str | None = None
        self._cache_key: tuple[str, str] | None = None
        self._cache_routes: list[Route] = []
        self._derived: dict[str, tuple[tuple[str, str], Any]] = {}
        self._contacts_key: str | None = None
        self._contacts = ContactDirectory()

        if local_store is not None:
            self._hydrate(local_store)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _hydrate(self, local_store: LocalStore) -> None:
        tables = local_store.get_tables()
        if not tables:
            return
        self.store.put_tables(tables, fetched_at=local_store.get_meta(META_LAST_FETCH, 0.0))
        self._source_version = local_store.get_meta(META_SOURCE_VERSION)
        logger.info("Restored %d tables from %s", len(tables), local_store.path)

    @property
    def is_loading(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    async def load_raw_tables(self, force: bool = False) -> None:
        """Make sure the raw tables are loaded and fresh.

        Only one fetch runs at a time: a caller arriving while one is in
        flight waits for it and then returns, whatever *force* says.

        Args:
            force: Refetch even if the tables are fresh or the source
                version is unchanged.
        """
        if not self.is_loading:
            self._inflight = asyncio.ensure_future(self._refresh(force))
            self._inflight.add_done_callback(_log_fetch_failure)
        await asyncio.shield(self._inflight)

    def _source_version_now(self) -> str | None:
        version = getattr(self.source, "version", None)
        return version() if callable(version) else None

    async def _refresh(self, force: bool) -> None:
        if self.source is None:
            logger.debug("No table source configured; nothing to load")
            return

        loaded = self.store.last_fetch_ts > 0
        if not force and loaded:
            age = self._clock() - self.store.last_fetch_ts
            if age <= self.ttl_seconds:
                return

        version = await asyncio.to_thread(self._source_version_now)
        if not force and loaded and version is not None and version == self._source_version:
            logger.debug("Source unchanged (version %s); keeping loaded tables", version)
            return

        tables = await asyncio.to_thread(self.source.fetch_tables)
        fetched_at = self._clock()
        self.store.put_tables(tables, fetched_at=fetched_at)
        self._source_version = version
        logger.info("Fetched %d tables (signature %s)", len(tables), self.store.signature())

        if self.local_store is not None:
            await asyncio.to_thread(self._persist, fetched_at, version)

    def _persist(self, fetched_at: float, version: str | None) -> None:
        self.local_store.put_tables(self.store.to_plain(), replace=True)
        self.local_store.set_meta(META_LAST_FETCH, fetched_at)
        self.local_store.set_meta(META_SOURCE_VERSION, version)

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def signature(self) -> str:
        return self.store.signature()

    def get_table(self, name: str) -> list[RowView]:
        return self.store.get_table(name)

    def contacts(self) -> ContactDirectory:
        """Address book for the currently loaded Contacts table."""
        with self.store.lock:
            signature = self.store.signature()
            if signature != self._contacts_key:
                self._contacts = ContactDirectory(self.store.get_table(CONTACTS_TABLE))
                self._contacts_key = signature
            return self._contacts

    def lookup_contact(self, name: str | None) -> Contact | None:
        return self.contacts().lookup(name)

    def get_all_routes(self) -> list[Route]:
        """Every normalized route from the loaded tables, de-duplicated by id.

        Results are cached until the store signature or the date changes.
        Before any successful load this is an empty list.
        """
        today = periodic_expander.window_start(self._today())
        with self.store.lock:
            signature, tables = self.store.snapshot()
            key = (signature, today.isoformat())
            if key != self._cache_key:
                self._cache_routes = self._build_routes(tables, today)
                self._cache_key = key
                self.recompute_count += 1
            else:
                logger.debug("Route cache hit for signature %s", signature)
            return list(self._cache_routes)

    def cache_key(self) -> tuple[str, str]:
        """(signature, ISO date) pair that every derived value is keyed on."""
        today = periodic_expander.window_start(self._today())
        return self.store.signature(), today.isoformat()

    def derived(self, name: str, build: Callable[[], Any]) -> Any:
        """Value of *build* kept under *name* until the signature or date changes.

        Lets helpers built on top of the routes (the roster, for one) share
        the route cache lifetime without holding state of their own.
        """
        with self.store.lock:
            key = self.cache_key()
            cached = self._derived.get(name)
            if cached is not None and cached[0] == key:
                return cached[1]
            value = build()
            self._derived[name] = (key, value)
            return value

    def _build_routes(self, tables: dict[str, list[RowView]], today: dt.date) -> list[Route]:
        contacts = self.contacts()
        routes = [
            normalize_route(row, RouteKind.SPFM, contacts) for row in tables.get(SPFM_TABLE, [])
        ]
        routes.extend(
            periodic_expander.expand(
                tables.get(ROUTES_TABLE, []),
                self.window_weeks,
                today=today,
                contacts=contacts,
            )
        )
        for table_name, kind in LEGACY_TEMPLATE_TABLES:
            routes.extend(
                periodic_expander.expand(
                    tables.get(table_name, []),
                    self.window_weeks,
                    today=today,
                    fallback_kind=kind,
                    contacts=contacts,
                )
            )

        unique: dict[str, Route] = {}
        for route in routes:
            unique.setdefault(route.id, route)
        if len(unique) != len(routes):
            logger.debug("Dropped %d duplicate routes", len(routes) - len(unique))
        return list(unique.values())
