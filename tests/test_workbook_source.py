from __future__ import annotations

import asyncio
import datetime as dt
from pathlib import Path

import pytest
from openpyxl import Workbook

from spfm_routes.route_tools.route_model import RouteKind
from spfm_routes.route_tools.route_repository import RouteRepository
from spfm_routes.sheet_tools.workbook_source import WorkbookTableSource, read_csv_folder_grids

FIXTURE_WORKBOOK = Path(__file__).parent / "fixtures" / "workbook"


def _write(path: Path, text: str) -> None:
    path.write_text(text, encoding="utf-8")


def test_csv_folder_tables() -> None:
    """Each sheet is parsed with its own rules; absent sheets are left out."""
    tables = WorkbookTableSource(FIXTURE_WORKBOOK).fetch_tables()

    assert set(tables) == {"SPFM", "Routes", "Contacts", "Status", "Workers"}
    assert len(tables["SPFM"]) == 2
    assert tables["SPFM"][0]["market"] == "Downtown"
    assert tables["SPFM"][1]["worker1"] == "Sam, Alex"
    assert len(tables["Routes"]) == 3
    assert tables["Routes"][1]["Weekday"] == "Tuesday"
    assert tables["Workers"] == [
        {"name": "Samuel", "emoji": "🐋"},
        {"name": "Volunteer", "emoji": "👤"},
    ]


def test_fixture_workbook_end_to_end() -> None:
    repository = RouteRepository(
        WorkbookTableSource(FIXTURE_WORKBOOK),
        window_weeks=2,
        today=lambda: dt.date(2025, 3, 10),
    )
    asyncio.run(repository.load_raw_tables())
    routes = repository.get_all_routes()

    by_kind = {kind: [r for r in routes if r.kind is kind] for kind in RouteKind}
    assert [r.date for r in by_kind[RouteKind.SPFM]] == ["2025-03-10", "2025-03-17"]
    assert [r.date for r in by_kind[RouteKind.RECOVERY]] == ["2025-03-18", "2025-03-11"]
    assert [r.date for r in by_kind[RouteKind.SPFM_DELIVERY]] == ["2025-03-10", "2025-03-17"]

    delivery = by_kind[RouteKind.SPFM_DELIVERY][0]
    assert [stop.location for stop in delivery.stops] == ["Eastside", "Pantry A"]
    assert delivery.stops[1].contact.contact_name == "Jo"

    market = by_kind[RouteKind.SPFM][0]
    assert market.workers == ("Sam",)
    assert market.vans == ("Green Bean",)
    assert market.stops[0].contact.address == "1 Main St"


def test_xlsx_workbook(tmp_path) -> None:
    workbook = Workbook()
    spfm = workbook.active
    spfm.title = "SPFM"
    spfm.append(["Market routes"])
    spfm.append(["date", "market", "worker1"])
    spfm.append(["2025-03-10", "Downtown", "Sam"])
    contacts = workbook.create_sheet("Contacts")
    contacts.append(["Location", "Address"])
    contacts.append(["Downtown", "1 Main St"])
    workbook.create_sheet("Scratch").append(["ignored"])
    path = tmp_path / "routes.xlsx"
    workbook.save(path)

    tables = WorkbookTableSource(path).fetch_tables()
    assert set(tables) == {"SPFM", "Contacts"}
    assert tables["SPFM"] == [{"date": "2025-03-10", "market": "Downtown", "worker1": "Sam"}]
    assert tables["Contacts"] == [{"Location": "Downtown", "Address": "1 Main St"}]


def test_missing_workbook_raises(tmp_path) -> None:
    missing = tmp_path / "no_such.xlsx"
    source = WorkbookTableSource(missing)
    with pytest.raises(OSError) as excinfo:
        source.fetch_tables()
    assert str(missing) in str(excinfo.value)
    with pytest.raises(OSError):
        source.version()


def test_missing_folder_raises(tmp_path) -> None:
    with pytest.raises(OSError):
        read_csv_folder_grids(tmp_path / "nope", ("SPFM",))


def test_empty_csv_raises(tmp_path) -> None:
    _write(tmp_path / "SPFM.csv", "")
    with pytest.raises(ValueError) as excinfo:
        read_csv_folder_grids(tmp_path, ("SPFM",))
    msg = str(excinfo.value)
    assert "SPFM.csv" in msg and "empty" in msg.lower()


def test_malformed_csv_raises(tmp_path) -> None:
    _write(tmp_path / "Routes.csv", 'routeType,date\nrecovery,"2025-03-18\n')
    with pytest.raises(ValueError) as excinfo:
        read_csv_folder_grids(tmp_path, ("Routes",))
    assert "Parser error" in str(excinfo.value)


def test_version_changes_with_file_contents(tmp_path) -> None:
    _write(tmp_path / "SPFM.csv", "date,market\n2025-03-10,Downtown\n")
    source = WorkbookTableSource(tmp_path)
    before = source.version()
    assert before == source.version()

    _write(tmp_path / "SPFM.csv", "date,market\n2025-03-10,Downtown\n2025-03-17,Downtown\n")
    assert source.version() != before
