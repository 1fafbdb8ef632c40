"""Export the upcoming route schedule from a route workbook.

Reads the exported route workbook (``.xlsx`` or a folder of CSV sheets),
normalizes every market, recovery and delivery route, expands the weekly
templates over the configured window, and writes:

- A combined CSV (machine-readable).
- A single-sheet Excel file with one row per route (quick inspection).

Typical use cases
- Printing the coming weeks' assignments for the office wall.
- Checking that weekday templates and one-off overrides line up.
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Final, Iterable

import pandas as pd
from openpyxl.utils import get_column_letter

from spfm_routes.route_tools.route_model import Route
from spfm_routes.route_tools.route_repository import DEFAULT_WINDOW_WEEKS, RouteRepository
from spfm_routes.sheet_tools.workbook_source import WorkbookTableSource
from spfm_routes.utils.logging_helper import setup_logging

# =============================================================================
# CONFIGURATION
# =============================================================================

WORKBOOK_PATH: Final[Path] = Path(
    os.environ.get("SPFM_WORKBOOK", r"Path\To\Your\SPFM_Routes.xlsx")
)
OUTPUT_DIR: Final[Path] = Path(os.environ.get("SPFM_OUTPUT_DIR", r"Path\To\Your\Output_Folder"))
OUTPUT_STEM: Final[str] = "route_schedule"

WINDOW_WEEKS: Final[int] = DEFAULT_WINDOW_WEEKS

# Keep routes dated on/after today only; undated routes are always kept.
UPCOMING_ONLY: Final[bool] = True

EXPORT_COLUMNS: Final[list[str]] = [
    "date",
    "display_date",
    "start_time",
    "kind",
    "market",
    "drop_off",
    "workers",
    "volunteers",
    "vans",
    "stops",
    "status",
    "id",
]

# =============================================================================
# FUNCTIONS
# =============================================================================


def routes_to_frame(routes: Iterable[Route]) -> pd.DataFrame:
    """Flatten routes into one row each, list fields joined with ``", "``.

    Args:
        routes: Normalized routes.

    Returns:
        A DataFrame with :data:`EXPORT_COLUMNS`, sorted by date then start
        time (undated routes last).
    """
    records = [
        {
            "date": route.date,
            "display_date": route.display_date,
            "start_time": route.start_time,
            "kind": route.kind.value,
            "market": route.market,
            "drop_off": route.drop_off,
            "workers": ", ".join(route.workers),
            "volunteers": ", ".join(route.volunteers),
            "vans": ", ".join(route.vans),
            "stops": ", ".join(stop.location for stop in route.stops),
            "status": route.status,
            "id": route.id,
        }
        for route in routes
    ]
    data_frame = pd.DataFrame.from_records(records, columns=EXPORT_COLUMNS)
    data_frame["_undated"] = data_frame["date"] == ""
    data_frame = data_frame.sort_values(
        by=["_undated", "date", "start_time"], kind="mergesort"
    ).drop(columns="_undated")
    return data_frame.reset_index(drop=True)


def filter_upcoming(data_frame: pd.DataFrame, today: str) -> pd.DataFrame:
    """Drop dated rows before *today* (ISO string); undated rows stay."""
    keep = (data_frame["date"] == "") | (data_frame["date"] >= today)
    return data_frame[keep].reset_index(drop=True)


def export_to_csv(data_frame: pd.DataFrame, csv_file_path: Path) -> None:
    """Write *data_frame* to disk as a CSV, overwriting any existing file."""
    data_frame.to_csv(csv_file_path, index=False)
    logging.info("Route schedule saved to CSV: %s", csv_file_path)


def export_to_excel(data_frame: pd.DataFrame, output_file: Path) -> None:
    """Export *data_frame* to a single-sheet workbook with auto-sized columns."""
    with pd.ExcelWriter(output_file, engine="openpyxl") as writer:
        data_frame.to_excel(writer, index=False, sheet_name="Routes")
        worksheet = writer.sheets["Routes"]

        for idx, col in enumerate(data_frame.columns, 1):
            series = data_frame[col].astype(str)
            longest = series.map(len).max() if not series.empty else 0
            worksheet.column_dimensions[get_column_letter(idx)].width = (
                max(longest, len(str(col))) + 2
            )
    logging.info("Route schedule saved to Excel: %s", output_file)


def build_schedule(workbook_path: Path, window_weeks: int) -> pd.DataFrame:
    """Load *workbook_path* and return the flattened route schedule."""
    repository = RouteRepository(WorkbookTableSource(workbook_path), window_weeks=window_weeks)
    asyncio.run(repository.load_raw_tables(force=True))
    routes = repository.get_all_routes()
    logging.info("Built %d routes from %s", len(routes), workbook_path)
    return routes_to_frame(routes)


# =============================================================================
# MAIN
# =============================================================================


def main() -> None:
    """Build the schedule and write the CSV and Excel exports."""
    schedule = build_schedule(WORKBOOK_PATH, WINDOW_WEEKS)
    if UPCOMING_ONLY:
        schedule = filter_upcoming(schedule, pd.Timestamp.today().date().isoformat())

    OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
    export_to_csv(schedule, OUTPUT_DIR / f"{OUTPUT_STEM}.csv")
    export_to_excel(schedule, OUTPUT_DIR / f"{OUTPUT_STEM}.xlsx")


if __name__ == "__main__":
    setup_logging()
    main()
