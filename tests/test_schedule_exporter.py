from __future__ import annotations

import datetime as dt
from pathlib import Path

import pandas as pd
from openpyxl import load_workbook

from spfm_routes.route_tools import schedule_exporter
from spfm_routes.route_tools.route_model import Route, RouteKind, Stop

FIXTURE_WORKBOOK = Path(__file__).parent / "fixtures" / "workbook"


def _route(route_id: str, date: str, start_time: str = "", **fields) -> Route:
    sort_date = dt.date.fromisoformat(date) if date else None
    return Route(
        id=route_id,
        kind=fields.pop("kind", RouteKind.SPFM),
        date=date,
        display_date=date,
        sort_date=sort_date,
        start_time=start_time,
        **fields,
    )


def test_routes_to_frame_orders_undated_last() -> None:
    routes = [
        _route("undated", ""),
        _route("late", "2025-03-17", "8:00 AM"),
        _route("early", "2025-03-10", "9:00 AM", workers=("Sam", "Alex")),
        _route("earlier", "2025-03-10", "7:00 AM", stops=(Stop("Pantry A"), Stop("Fridge"))),
    ]
    df = schedule_exporter.routes_to_frame(routes)

    assert list(df.columns) == schedule_exporter.EXPORT_COLUMNS
    assert df["id"].tolist() == ["earlier", "early", "late", "undated"]
    assert df.loc[1, "workers"] == "Sam, Alex"
    assert df.loc[0, "stops"] == "Pantry A, Fridge"
    assert df.loc[0, "kind"] == "spfm"


def test_filter_upcoming_keeps_undated_rows() -> None:
    df = schedule_exporter.routes_to_frame(
        [_route("past", "2025-03-03"), _route("next", "2025-03-17"), _route("tbd", "")]
    )
    kept = schedule_exporter.filter_upcoming(df, "2025-03-10")
    assert kept["id"].tolist() == ["next", "tbd"]


def test_build_schedule_from_fixture_folder() -> None:
    df = schedule_exporter.build_schedule(FIXTURE_WORKBOOK, window_weeks=1)
    spfm = df[df["kind"] == "spfm"]
    assert spfm["date"].tolist() == ["2025-03-10", "2025-03-17"]
    assert set(df["kind"]) == {"spfm", "recovery", "spfm-delivery"}


def test_exports_write_files(tmp_path) -> None:
    df = schedule_exporter.routes_to_frame([_route("a", "2025-03-10", market="Downtown")])

    csv_path = tmp_path / "schedule.csv"
    schedule_exporter.export_to_csv(df, csv_path)
    assert pd.read_csv(csv_path, dtype=str)["market"].tolist() == ["Downtown"]

    xlsx_path = tmp_path / "schedule.xlsx"
    schedule_exporter.export_to_excel(df, xlsx_path)
    sheet = load_workbook(xlsx_path)["Routes"]
    assert sheet["A1"].value == "date"
    assert sheet.column_dimensions["A"].width == len("2025-03-10") + 2


def test_main_writes_both_outputs(tmp_path, monkeypatch) -> None:
    """main() reads the configured workbook and writes CSV + Excel to OUTPUT_DIR."""
    monkeypatch.setattr(schedule_exporter, "WORKBOOK_PATH", FIXTURE_WORKBOOK)
    monkeypatch.setattr(schedule_exporter, "OUTPUT_DIR", tmp_path / "out")
    monkeypatch.setattr(schedule_exporter, "UPCOMING_ONLY", False)

    written = []
    monkeypatch.setattr(
        schedule_exporter, "export_to_excel", lambda df, path: written.append((len(df), path))
    )

    schedule_exporter.main()

    assert (tmp_path / "out" / "route_schedule.csv").exists()
    assert written and written[0][1].name == "route_schedule.xlsx"
