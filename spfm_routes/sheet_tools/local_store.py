"""JSON-file persistence for raw tables, derived caches and metadata.

Keeps the last fetched spreadsheet tables on disk so a restart can serve
routes before the first fetch finishes. Layout of the file::

    {"tables": {name: {"rows": [...], "updated_at": ts}},
     "caches": {name: {"data": ..., "updated_at": ts}},
     "meta":   {key: value}}
"""

from __future__ import annotations

import json
import logging
import threading
import time
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

_SECTIONS = ("tables", "caches", "meta")


class LocalStore:
    """Small key/value store persisted to one JSON file.

    Read failures (missing or corrupt file) are logged and treated as an
    empty store; write failures propagate.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()
        self._data: dict[str, dict[str, Any]] | None = None

    def _load(self) -> dict[str, dict[str, Any]]:
        if self._data is not None:
            return self._data
        data: dict[str, dict[str, Any]] = {section: {} for section in _SECTIONS}
        if self.path.exists():
            try:
                raw = json.loads(self.path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as exc:
                logger.warning("Ignoring unreadable local store %s: %s", self.path, exc)
            else:
                if isinstance(raw, dict):
                    for section in _SECTIONS:
                        if isinstance(raw.get(section), dict):
                            data[section] = raw[section]
        self._data = data
        return data

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(self._data, ensure_ascii=False), encoding="utf-8")
        tmp_path.replace(self.path)

    def put_table(self, name: str, rows: list[dict[str, str]], **extra: Any) -> None:
        with self._lock:
            data = self._load()
            data["tables"][name] = {"rows": rows, "updated_at": time.time(), **extra}
            self._save()

    def put_tables(
        self, tables: dict[str, list[dict[str, str]]], replace: bool = False
    ) -> None:
        """Write several tables with a single file write.

        With *replace*, tables not in *tables* are removed first.
        """
        with self._lock:
            data = self._load()
            if replace:
                data["tables"] = {}
            now = time.time()
            for name, rows in tables.items():
                data["tables"][name] = {"rows": rows, "updated_at": now}
            self._save()

    def get_table(self, name: str) -> dict[str, Any] | None:
        with self._lock:
            return self._load()["tables"].get(name)

    def get_tables(self) -> dict[str, list[dict[str, str]]]:
        """Every persisted table's rows, keyed by table name."""
        with self._lock:
            tables = self._load()["tables"]
            return {name: entry.get("rows", []) for name, entry in tables.items()}

    def put_cache(self, name: str, data: Any) -> None:
        with self._lock:
            store = self._load()
            store["caches"][name] = {"data": data, "updated_at": time.time()}
            self._save()

    def get_cache(self, name: str) -> dict[str, Any] | None:
        with self._lock:
            return self._load()["caches"].get(name)

    def set_meta(self, key: str, value: Any) -> None:
        with self._lock:
            self._load()["meta"][key] = value
            self._save()

    def get_meta(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._load()["meta"].get(key, default)

    def clear_all(self) -> None:
        with self._lock:
            self._data = {section: {} for section in _SECTIONS}
            self._save()
