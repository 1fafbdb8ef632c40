"""Spreadsheet fetch service backed by an exported workbook.

Reads either an ``.xlsx`` workbook (one sheet per table) or a folder of CSV
exports (``SPFM.csv``, ``Routes.csv``, ...) and returns parsed rows per
table. :meth:`WorkbookTableSource.version` gives a cheap change token from
file metadata, playing the role an ETag plays for a hosted spreadsheet.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Callable, Final

import pandas as pd

from spfm_routes.sheet_tools import sheet_tables

# =============================================================================
# CONFIGURATION
# =============================================================================

SPFM_TABLE: Final[str] = "SPFM"
ROUTES_TABLE: Final[str] = "Routes"
RECOVERY_TABLE: Final[str] = "Recovery"
DELIVERY_TABLE: Final[str] = "SPFM_Delivery"
STATUS_TABLE: Final[str] = "Status"
CONTACTS_TABLE: Final[str] = "Contacts"
WORKERS_TABLE: Final[str] = "Workers"
VEHICLES_TABLE: Final[str] = "Vehicles"

TABLE_PARSERS: Final[dict[str, Callable[[Any], list[dict[str, str]]]]] = {
    SPFM_TABLE: sheet_tables.parse_spfm_grid,
    ROUTES_TABLE: sheet_tables.parse_routes_grid,
    RECOVERY_TABLE: sheet_tables.objects_from_table,
    DELIVERY_TABLE: sheet_tables.objects_from_table,
    STATUS_TABLE: sheet_tables.objects_from_table,
    CONTACTS_TABLE: sheet_tables.objects_from_table,
    WORKERS_TABLE: lambda values: sheet_tables.parse_lookup_grid(values, r"worker"),
    VEHICLES_TABLE: lambda values: sheet_tables.parse_lookup_grid(values, r"van|vehicle"),
}

logger = logging.getLogger(__name__)

# =============================================================================
# FUNCTIONS
# =============================================================================


def frame_to_grid(data_frame: pd.DataFrame) -> list[list[Any]]:
    """Convert a header-less DataFrame to a list-of-lists grid."""
    return data_frame.astype(object).where(data_frame.notna(), "").values.tolist()


def read_workbook_grids(path: str | Path) -> dict[str, list[list[Any]]]:
    """Read every sheet of an ``.xlsx`` workbook as a raw grid.

    Raises:
        OSError: *path* does not exist.
        ValueError: The workbook cannot be parsed.
    """
    path = Path(path)
    if not path.exists():
        raise OSError(f"The workbook '{path}' does not exist.")
    try:
        sheets = pd.read_excel(path, sheet_name=None, header=None, dtype=str)
    except ValueError as exc:
        raise ValueError(f"Could not read workbook '{path}': {exc}") from exc
    return {name: frame_to_grid(df) for name, df in sheets.items()}


def read_csv_folder_grids(
    folder: str | Path, table_names: tuple[str, ...]
) -> dict[str, list[list[Any]]]:
    """Read ``<table>.csv`` files from *folder* as raw grids.

    Tables with no CSV file are left out (they read as empty downstream).

    Raises:
        OSError: *folder* does not exist.
        ValueError: A CSV file is empty or malformed.
        RuntimeError: An OS-level error occurs while reading.
    """
    folder = Path(folder)
    if not folder.is_dir():
        raise OSError(f"The directory '{folder}' does not exist.")

    grids: dict[str, list[list[Any]]] = {}
    for name in table_names:
        file_path = folder / f"{name}.csv"
        if not file_path.exists():
            logger.debug("No %s in %s; table %s stays empty", file_path.name, folder, name)
            continue
        try:
            df = pd.read_csv(
                file_path,
                header=None,
                dtype=str,
                keep_default_na=False,
                skip_blank_lines=False,
            )
        except pd.errors.EmptyDataError as exc:
            raise ValueError(f"File '{file_path.name}' in '{folder}' is empty.") from exc
        except pd.errors.ParserError as exc:
            raise ValueError(f"Parser error in '{file_path.name}' in '{folder}': {exc}") from exc
        except OSError as exc:
            raise RuntimeError(
                f"OS error reading file '{file_path.name}' in '{folder}': {exc}"
            ) from exc
        grids[name] = frame_to_grid(df)
    return grids


class WorkbookTableSource:
    """Fetch service over a workbook file or a folder of CSV exports."""

    def __init__(
        self,
        path: str | Path,
        parsers: dict[str, Callable[[Any], list[dict[str, str]]]] | None = None,
    ) -> None:
        self.path = Path(path)
        self.parsers = dict(TABLE_PARSERS if parsers is None else parsers)

    def _grids(self) -> dict[str, list[list[Any]]]:
        if self.path.is_dir():
            return read_csv_folder_grids(self.path, tuple(self.parsers))
        return read_workbook_grids(self.path)

    def fetch_tables(self) -> dict[str, list[dict[str, str]]]:
        """Read and parse every configured table.

        Returns:
            ``{table name: rows}`` for each table found in the source.
        """
        grids = self._grids()
        tables: dict[str, list[dict[str, str]]] = {}
        for name, parser in self.parsers.items():
            if name not in grids:
                continue
            tables[name] = parser(grids[name])
            logger.info("Loaded %s (%d rows)", name, len(tables[name]))
        return tables

    def version(self) -> str:
        """Change token from modification time and size of the source files."""
        if not self.path.exists():
            raise OSError(f"The path '{self.path}' does not exist.")
        if self.path.is_dir():
            files = sorted(p for p in self.path.iterdir() if p.suffix.lower() == ".csv")
        else:
            files = [self.path]
        parts = []
        for file_path in files:
            stat = os.stat(file_path)
            parts.append(f"{file_path.name}:{stat.st_mtime_ns}:{stat.st_size}")
        return ";".join(parts)
