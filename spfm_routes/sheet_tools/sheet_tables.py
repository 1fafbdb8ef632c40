"""Turn raw spreadsheet value grids into lists of ``{header: cell}`` rows.

A grid is what a spreadsheet range export gives back: a list of rows, each a
list of cells, ragged on the right. Each sheet of the route workbook has its
own quirks:

- ``SPFM``: a few banner rows may sit above the header.
- ``Routes``: several tables stacked vertically (dated rows, then weekday
  rows), each with its own header, sometimes with the header pasted again.
- everything else: header in the first row.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Final, Sequence

from spfm_routes.utils.errors import InvalidInputError
from spfm_routes.utils.text_helpers import cell_text

# =============================================================================
# CONFIGURATION
# =============================================================================

SPFM_HEADER_MARKERS: Final[tuple[str, ...]] = ("date", "routeid", "market")
SPFM_HEADER_SCAN_ROWS: Final[int] = 10

ROUTES_HEADER_MARKERS: Final[tuple[str, ...]] = (
    "date",
    "weekday",
    "routeid",
    "market",
    "route",
)

logger = logging.getLogger(__name__)

RawRow = dict[str, str]

# =============================================================================
# FUNCTIONS
# =============================================================================


def _check_grid(values: Any) -> list[Sequence[Any]]:
    if values is None:
        return []
    if not isinstance(values, (list, tuple)):
        raise InvalidInputError(f"Expected a list of rows, got {type(values).__name__}.")
    for index, row in enumerate(values):
        if row is not None and not isinstance(row, (list, tuple)):
            raise InvalidInputError(
                f"Row {index} of the grid is a {type(row).__name__}, not a list of cells."
            )
    return [row or [] for row in values]


def _row_to_object(headers: Sequence[str], row: Sequence[Any]) -> RawRow:
    return {
        header: (cell_text(row[i]) if i < len(row) else "")
        for i, header in enumerate(headers)
    }


def _is_empty_row(row: Sequence[Any]) -> bool:
    return all(not cell_text(cell) for cell in row)


def objects_from_table(values: Any) -> list[RawRow]:
    """Map a grid with the header in its first row to a list of rows.

    Args:
        values: Spreadsheet grid.

    Returns:
        One mapping per body row; missing trailing cells become ``""``.
        Grids with fewer than two rows give ``[]``.

    Raises:
        InvalidInputError: *values* is not a list of lists.
    """
    grid = _check_grid(values)
    if len(grid) < 2:
        return []
    headers = [cell_text(h) for h in grid[0]]
    return [_row_to_object(headers, row) for row in grid[1:]]


def parse_spfm_grid(values: Any) -> list[RawRow]:
    """Parse the market-route sheet, whose header may follow banner rows.

    The header is the first of the first ten rows containing ``date``,
    ``routeid`` or ``market``; row 0 if none does. Body rows with a blank
    first cell are dropped.
    """
    grid = _check_grid(values)
    if len(grid) < 2:
        return []

    header_index = 0
    for i, row in enumerate(grid[:SPFM_HEADER_SCAN_ROWS]):
        lowered = {cell_text(c).lower() for c in row}
        if any(marker in lowered for marker in SPFM_HEADER_MARKERS):
            header_index = i
            break

    headers = [cell_text(h) for h in grid[header_index]]
    rows = [
        _row_to_object(headers, row)
        for row in grid[header_index + 1 :]
        if row and cell_text(row[0])
    ]
    logger.info("Processed %d routes from SPFM sheet", len(rows))
    return rows


def _looks_like_header(row: Sequence[Any]) -> bool:
    lowered = {cell_text(c).lower() for c in row}
    return any(marker in lowered for marker in ROUTES_HEADER_MARKERS)


def parse_routes_grid(values: Any) -> list[RawRow]:
    """Parse the consolidated Routes sheet (possibly several stacked tables).

    Blank rows are skipped. Any row that looks like a header replaces the
    current header. Rows before the first header are ignored, and a row
    whose every cell repeats its own header (or is blank) is dropped.
    """
    grid = _check_grid(values)
    rows: list[RawRow] = []
    headers: list[str] | None = None
    for row in grid:
        if _is_empty_row(row):
            continue
        if _looks_like_header(row):
            headers = [cell_text(h) for h in row]
            continue
        if headers is None:
            continue
        obj = _row_to_object(headers, row)
        if all(value == key.strip() or value == "" for key, value in obj.items()):
            continue
        rows.append(obj)
    return rows


def parse_lookup_grid(values: Any, name_pattern: str) -> list[dict[str, str]]:
    """Read a two-column ``name -> emoji`` lookup table.

    Args:
        values: Spreadsheet grid, header in the first row.
        name_pattern: Case-insensitive regex matched against header cells to
            find the name column (e.g. ``"worker"`` or ``"van|vehicle"``).

    Returns:
        ``[{"name": ..., "emoji": ...}]`` for every row with a name. An
        empty list when the name column cannot be found.
    """
    grid = _check_grid(values)
    if len(grid) < 2:
        return []
    headers = [cell_text(h) for h in grid[0]]
    name_re = re.compile(name_pattern, re.IGNORECASE)
    name_idx = next((i for i, h in enumerate(headers) if name_re.search(h)), -1)
    emoji_idx = next((i for i, h in enumerate(headers) if "emoji" in h.lower()), -1)
    if name_idx < 0:
        logger.warning("No column matching %r in lookup table headers %s", name_pattern, headers)
        return []

    out: list[dict[str, str]] = []
    for row in grid[1:]:
        name = cell_text(row[name_idx]) if name_idx < len(row) else ""
        if not name:
            continue
        emoji = cell_text(row[emoji_idx]) if 0 <= emoji_idx < len(row) else ""
        out.append({"name": name, "emoji": emoji})
    return out
