"""In-memory holder for the latest rows of each spreadsheet table.

Tables are replaced wholesale on every fetch, never patched, so the change
token (:meth:`RawTableStore.signature`) is built from the fetch timestamp and
per-table row counts rather than content hashes.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any, Iterable

from spfm_routes.utils.errors import InvalidInputError

logger = logging.getLogger(__name__)

RowView = Mapping[str, str]


def _freeze_rows(name: str, rows: Any) -> tuple[RowView, ...]:
    if not isinstance(rows, (list, tuple)):
        raise InvalidInputError(
            f"Table '{name}' must be a list of rows, got {type(rows).__name__}."
        )
    frozen: list[RowView] = []
    for index, row in enumerate(rows):
        if not isinstance(row, Mapping):
            raise InvalidInputError(
                f"Row {index} of table '{name}' is a {type(row).__name__}, not a mapping."
            )
        frozen.append(MappingProxyType(dict(row)))
    return tuple(frozen)


class RawTableStore:
    """Named tables of raw rows plus the time they were last fetched.

    All access is guarded by one re-entrant lock so a reader never sees some
    tables replaced while the signature still describes the old state.
    """

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self._tables: dict[str, tuple[RowView, ...]] = {}
        self._last_fetch_ts: float = 0.0

    @property
    def last_fetch_ts(self) -> float:
        with self.lock:
            return self._last_fetch_ts

    def put_table(self, name: str, rows: Iterable[Mapping[str, Any]]) -> None:
        """Replace table *name* with *rows*.

        Raises:
            InvalidInputError: *rows* is not a list of mappings.
        """
        frozen = _freeze_rows(name, rows)
        with self.lock:
            self._tables[name] = frozen
        logger.debug("Stored table %s (%d rows)", name, len(frozen))

    def put_tables(
        self,
        tables: Mapping[str, Iterable[Mapping[str, Any]]],
        fetched_at: float | None = None,
    ) -> None:
        """Replace the whole set of tables and stamp the fetch time in one step.

        Tables absent from *tables* are dropped, matching a full re-fetch.
        """
        if not isinstance(tables, Mapping):
            raise InvalidInputError(
                f"Expected a mapping of table name to rows, got {type(tables).__name__}."
            )
        frozen = {name: _freeze_rows(name, rows) for name, rows in tables.items()}
        with self.lock:
            self._tables = frozen
            self._last_fetch_ts = time.time() if fetched_at is None else float(fetched_at)

    def mark_fetched(self, fetched_at: float | None = None) -> None:
        with self.lock:
            self._last_fetch_ts = time.time() if fetched_at is None else float(fetched_at)

    def get_table(self, name: str) -> list[RowView]:
        """Return the rows of *name*; an unknown table is simply empty."""
        with self.lock:
            return list(self._tables.get(name, ()))

    def table_names(self) -> list[str]:
        with self.lock:
            return sorted(self._tables)

    def has_data(self) -> bool:
        with self.lock:
            return any(self._tables.values())

    def signature(self) -> str:
        """Opaque change token: fetch timestamp plus every table's row count."""
        with self.lock:
            parts = [repr(self._last_fetch_ts)]
            parts.extend(f"{name}={len(self._tables[name])}" for name in sorted(self._tables))
            return "|".join(parts)

    def snapshot(self) -> tuple[str, dict[str, list[RowView]]]:
        """Return ``(signature, tables)`` read under the same lock."""
        with self.lock:
            return self.signature(), {name: list(rows) for name, rows in self._tables.items()}

    def to_plain(self) -> dict[str, list[dict[str, str]]]:
        """Copy of every table as plain dicts, for persistence."""
        with self.lock:
            return {name: [dict(r) for r in rows] for name, rows in self._tables.items()}
