from __future__ import annotations

import datetime as dt
import logging

import pytest

from spfm_routes.route_tools import periodic_expander
from spfm_routes.route_tools.route_model import RouteKind
from spfm_routes.utils.errors import InvalidInputError

# A Monday.
TODAY = dt.date(2025, 3, 10)


def _dates(routes) -> list[str]:
    return [route.date for route in routes]


def test_monday_template_starts_today() -> None:
    """When today is the template's weekday, today is the first occurrence."""
    template = [{"Weekday": "Monday", "routeType": "spfm", "market": "Downtown"}]
    routes = periodic_expander.expand(template, 3, today=TODAY)
    assert _dates(routes) == ["2025-03-10", "2025-03-17", "2025-03-24"]
    assert all(route.kind is RouteKind.SPFM for route in routes)


def test_occurrence_dates_from_sunday() -> None:
    sunday = dt.date(2025, 3, 9)
    assert periodic_expander.occurrence_dates(1, sunday, 2) == [
        dt.date(2025, 3, 10),
        dt.date(2025, 3, 17),
    ]
    assert periodic_expander.occurrence_dates(0, sunday, 1) == [sunday]


def test_dated_row_overrides_same_market() -> None:
    """Override matching ignores case and surrounding whitespace of the market."""
    rows = [
        {"date": "2025-03-17", "routeType": "spfm", "market": "  downtown "},
        {"Weekday": "Monday", "routeType": "spfm", "market": "Downtown"},
    ]
    routes = periodic_expander.expand(rows, 3, today=TODAY)
    assert _dates(routes) == ["2025-03-17", "2025-03-10", "2025-03-24"]
    assert routes[0].market == "downtown"


def test_blank_market_recovery_override_suppresses_whole_day() -> None:
    rows = [
        {"date": "2025-03-18", "routeType": "recovery", "market": ""},
        {"Weekday": "Tuesday", "routeType": "recovery", "market": "Stop X"},
        {"Weekday": "Tuesday", "routeType": "recovery", "market": "Stop Y"},
    ]
    routes = periodic_expander.expand(rows, 3, today=TODAY)

    assert len(routes) == 1 + 2 * 3 - 2
    on_override_day = [route for route in routes if route.date == "2025-03-18"]
    assert len(on_override_day) == 1
    assert on_override_day[0].market == ""


def test_override_does_not_cross_kinds() -> None:
    rows = [
        {"date": "2025-03-11", "routeType": "spfm", "market": "Stop X"},
        {"Weekday": "Tuesday", "routeType": "recovery", "market": "Stop X"},
    ]
    routes = periodic_expander.expand(rows, 1, today=TODAY)
    assert [(r.kind, r.date) for r in routes] == [
        (RouteKind.SPFM, "2025-03-11"),
        (RouteKind.RECOVERY, "2025-03-11"),
    ]


def test_blank_market_override_is_recovery_only() -> None:
    """A non-recovery dated row with no market only replaces blank-market occurrences."""
    rows = [
        {"date": "2025-03-10", "routeType": "spfm", "market": ""},
        {"Weekday": "Monday", "routeType": "spfm", "market": "Downtown"},
    ]
    routes = periodic_expander.expand(rows, 1, today=TODAY)
    assert len(routes) == 2


def test_expansion_is_idempotent() -> None:
    rows = [
        {"date": "2025-03-18", "routeType": "recovery"},
        {"Weekday": "Tuesday", "routeType": "recovery", "stop1": "Pantry A"},
        {"market": "Someday"},
    ]
    first = periodic_expander.expand(rows, 4, today=TODAY)
    second = periodic_expander.expand(rows, 4, today=TODAY)
    assert first == second


def test_other_rows_come_last() -> None:
    rows = [
        {"market": "No schedule"},
        {"Weekday": "Wednesday", "market": "Eastside"},
        {"date": "2025-03-20", "market": "Downtown"},
    ]
    routes = periodic_expander.expand(rows, 2, today=TODAY)
    assert _dates(routes) == ["2025-03-20", "2025-03-12", "2025-03-19", ""]
    assert routes[-1].market == "No schedule"
    assert routes[-1].sort_date is None


def test_unrecognized_weekday_is_skipped(caplog) -> None:
    rows = [{"Weekday": "Someday", "market": "Downtown"}, {"Weekday": "friday"}]
    with caplog.at_level(logging.WARNING):
        routes = periodic_expander.expand(rows, 2, today=TODAY)
    assert _dates(routes) == ["2025-03-14", "2025-03-21"]
    assert "Someday" in caplog.text


def test_fallback_kind_applies_to_occurrences() -> None:
    rows = [{"day": "Monday", "stop1": "Pantry A"}]
    routes = periodic_expander.expand(rows, 1, today=TODAY, fallback_kind=RouteKind.RECOVERY)
    assert routes[0].kind is RouteKind.RECOVERY
    assert routes[0].stops[0].location == "Pantry A"


def test_supplied_route_id_gets_date_suffix() -> None:
    rows = [{"Weekday": "Monday", "routeId": "MON-1"}]
    routes = periodic_expander.expand(rows, 2, today=TODAY)
    assert [route.id for route in routes] == ["MON-1|2025-03-10", "MON-1|2025-03-17"]


def test_template_rows_are_not_mutated() -> None:
    row = {"Weekday": "Monday", "date": "", "market": "Downtown"}
    periodic_expander.expand([row], 2, today=TODAY)
    assert row == {"Weekday": "Monday", "date": "", "market": "Downtown"}


@pytest.mark.parametrize("bad", ["rows", [{"Weekday": "Monday"}, "row"], None])
def test_invalid_template_input(bad) -> None:
    with pytest.raises(InvalidInputError):
        periodic_expander.expand(bad, 1, today=TODAY)


def test_datetime_today_is_cut_to_its_date() -> None:
    """An afternoon timestamp still lines up with the dated override for that day."""
    rows = [
        {"date": "2025-03-10", "routeType": "spfm", "market": "Downtown"},
        {"Weekday": "Monday", "routeType": "spfm", "market": "Downtown"},
    ]
    routes = periodic_expander.expand(rows, 2, today=dt.datetime(2025, 3, 10, 14, 30))
    assert _dates(routes) == ["2025-03-10", "2025-03-17"]


def test_window_start() -> None:
    assert periodic_expander.window_start(dt.datetime(2025, 3, 10, 23, 59)) == TODAY
    assert periodic_expander.window_start(TODAY) == TODAY
    assert isinstance(periodic_expander.window_start(), dt.date)
