"""Normalize raw spreadsheet rows into :class:`Route` records.

Rows come from several sheets (market routes, recovery pickups, deliveries,
the consolidated Routes template) that disagree on header spelling. Each
field is read through an alias list, most preferred spelling first, so
supporting a new sheet layout means adding an alias here rather than a new
code path.

Missing or unparseable fields degrade to empty values; only a row that is
not a mapping at all raises :class:`InvalidInputError`.
"""

from __future__ import annotations

import datetime as dt
import logging
import re
import warnings
from collections.abc import Mapping
from typing import Any, Final, Protocol

import pandas as pd

from spfm_routes.route_tools.contacts import numbered_values
from spfm_routes.route_tools.route_model import Contact, Materials, Route, RouteKind, Stop
from spfm_routes.utils.errors import InvalidInputError
from spfm_routes.utils.text_helpers import (
    cell_text,
    flexible_text_match,
    resolve_field,
    split_cell,
    unique_in_order,
)

# =============================================================================
# CONFIGURATION
# =============================================================================

KIND_ALIASES: Final[list[str]] = ["type", "routeType", "route type", "RouteType", "Route Type"]
DATE_ALIASES: Final[list[str]] = ["date", "Date", "DATE"]
PRESET_DATE_FIELDS: Final[list[str]] = ["sortDate", "parsed"]
START_TIME_ALIASES: Final[list[str]] = ["startTime", "Start Time", "start time", "Time", "time"]
MARKET_ALIASES: Final[list[str]] = ["market", "Market", "MARKET"]
DROP_OFF_ALIASES: Final[list[str]] = ["dropOff", "dropoff", "Drop Off", "drop off", "DropOff"]
ROUTE_ID_ALIASES: Final[list[str]] = ["routeId", "routeID", "RouteId", "Route ID", "route id"]
STATUS_ALIASES: Final[list[str]] = ["status", "Status"]
NOTES_ALIASES: Final[list[str]] = ["notes", "Notes"]
LEGACY_WORKER_ALIASES: Final[list[str]] = ["Worker", "worker"]
LEGACY_CONTACT_ALIASES: Final[list[str]] = ["contact", "Contact"]
LEGACY_PHONE_ALIASES: Final[list[str]] = ["phone", "Phone"]

MATERIALS_ALIASES: Final[dict[str, list[str]]] = {
    "office": ["materials_office", "Materials Office", "materialsOffice", "office"],
    "storage": ["materials_storage", "Materials Storage", "materialsStorage", "storage"],
    "at_market": ["atMarket", "at market", "materials_market", "Materials At Market"],
    "back_at_office": ["backAtOffice", "back at office", "materials_back_at_office"],
}

ID_SEPARATOR: Final[str] = "|"

# Cells without a year come back from the lenient parser as year 1.
MIN_ROUTE_YEAR: Final[int] = 1900

DATE_FORMATS: Final[tuple[str, ...]] = (
    "%Y-%m-%d",
    "%Y-%m-%d %H:%M:%S",
    "%m/%d/%Y",
    "%m/%d/%y",
    "%B %d, %Y",
    "%b %d, %Y",
    "%A, %B %d, %Y",
    "%a, %b %d, %Y",
    "%d-%b-%Y",
)

# Cell values that are really a header pasted into the body of a sheet.
HEADER_NAMES: Final[frozenset[str]] = frozenset(
    {
        "food from", "foodfrom", "food_from", "food source", "source", "from",
        "worker", "volunteer", "volunteers", "date", "time", "location",
        "address", "route", "delivery", "pickup", "dropoff", "drop off",
        "drop-off", "market", "vendor", "client", "organization", "notes",
        "comments", "status", "cancelled", "canceled", "phone", "email",
        "contact", "quantity", "amount", "pounds", "lbs", "weight", "items",
        "food type", "type", "description", "details", "instructions", "van",
        "vehicle", "driver", "team", "assignment", "task",
    }
)
_NUMBERED_HEADER_RE: Final[re.Pattern[str]] = re.compile(
    r"^(worker|volunteer|van|stop|contact|phone)\d+$"
)

logger = logging.getLogger(__name__)


class ContactLookup(Protocol):
    def lookup(self, name: str | None) -> Contact | None: ...


# =============================================================================
# FIELD HELPERS
# =============================================================================


def is_column_header_name(text: str) -> bool:
    """True when *text* is a header label rather than a person or vehicle."""
    lowered = text.strip().lower()
    return lowered in HEADER_NAMES or bool(_NUMBERED_HEADER_RE.match(lowered))


def _keep_name(name: str) -> bool:
    return (
        bool(name)
        and not flexible_text_match(name, "cancelled")
        and not is_column_header_name(name)
    )


def _split_names(cells: list[str]) -> list[str]:
    names: list[str] = []
    for cell in cells:
        if not _keep_name(cell):
            continue
        names.extend(part for part in split_cell(cell) if _keep_name(part))
    return unique_in_order(names)


def _require_mapping(row: Any) -> Mapping[str, Any]:
    if not isinstance(row, Mapping):
        raise InvalidInputError(f"Route row must be a mapping, got {type(row).__name__}.")
    return row


def get_workers_from_route(row: Mapping[str, Any]) -> list[str]:
    """Workers named in ``worker1..workerN``, else in a single ``Worker`` column.

    Cells are comma-split and trimmed; "cancelled" entries and header
    echoes such as a literal ``"worker1"`` are dropped.
    """
    row = _require_mapping(row)
    workers = _split_names(numbered_values(row, "worker"))
    if not workers:
        single = resolve_field(row, LEGACY_WORKER_ALIASES)
        if single:
            workers = _split_names([single])
    return workers


def get_volunteers_from_route(row: Mapping[str, Any]) -> list[str]:
    return _split_names(numbered_values(_require_mapping(row), "volunteer"))


def get_vans_from_route(row: Mapping[str, Any]) -> list[str]:
    return _split_names(numbered_values(_require_mapping(row), "van"))


def get_route_contacts(row: Mapping[str, Any]) -> list[str]:
    """Contact names from ``contact{N}`` columns, else a single ``contact`` column."""
    values = numbered_values(_require_mapping(row), "contact")
    if not values:
        single = resolve_field(row, LEGACY_CONTACT_ALIASES)
        values = [single] if single else []
    return values


def get_route_phones(row: Mapping[str, Any]) -> list[str]:
    values = numbered_values(_require_mapping(row), "phone")
    if not values:
        single = resolve_field(row, LEGACY_PHONE_ALIASES)
        values = [single] if single else []
    return values


def parse_route_date(value: Any) -> dt.date | None:
    """Parse a sheet date cell; ``None`` when it is blank, unparseable or
    earlier than :data:`MIN_ROUTE_YEAR` (a cell with no year).

    Known layouts are tried with :func:`datetime.strptime` first; anything
    else goes through :func:`pandas.to_datetime` with ``errors="coerce"``.
    """
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    text = cell_text(value)
    if not text:
        return None
    for fmt in DATE_FORMATS:
        try:
            return dt.datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            parsed = pd.to_datetime(text, errors="coerce")
    except (ValueError, TypeError, OverflowError):
        return None
    if pd.isna(parsed) or parsed.year < MIN_ROUTE_YEAR:
        return None
    return parsed.date()


def format_display_date(value: dt.date) -> str:
    """Long form, e.g. ``"Monday, March 10, 2025"``."""
    return f"{value:%A}, {value:%B} {value.day}, {value.year}"


def parse_materials(row: Mapping[str, Any]) -> Materials:
    parts = {
        name: tuple(split_cell(resolve_field(row, aliases)))
        for name, aliases in MATERIALS_ALIASES.items()
    }
    return Materials(**parts)


def _resolve_date(row: Mapping[str, Any]) -> tuple[str, str, dt.date | None]:
    raw: Any = resolve_field(row, DATE_ALIASES)
    if raw is None:
        raw = next((row[k] for k in PRESET_DATE_FIELDS if row.get(k) not in (None, "")), None)
    parsed = parse_route_date(raw)
    if parsed is not None:
        return parsed.isoformat(), format_display_date(parsed), parsed
    display = raw if isinstance(raw, str) else ""
    return "", display.strip(), None


def build_stops(
    row: Mapping[str, Any],
    kind: RouteKind,
    market: str,
    drop_off: str,
    contacts: ContactLookup | None = None,
) -> tuple[Stop, ...]:
    """Ordered stops, each enriched with an address-book contact when one matches.

    Recovery and delivery routes list their stops in ``stop{N}`` columns;
    without them, and always for market routes, the stops are the market
    and the drop-off.
    """
    locations: list[str] = []
    if kind is not RouteKind.SPFM:
        locations = numbered_values(row, "stop")
    if not locations:
        locations = [loc for loc in (market, drop_off) if loc]
    return tuple(
        Stop(location=loc, contact=contacts.lookup(loc) if contacts is not None else None)
        for loc in locations
    )


def route_id_for(
    row: Mapping[str, Any],
    kind: RouteKind,
    date: str,
    start_time: str,
    market: str,
    drop_off: str,
) -> str:
    supplied = resolve_field(row, ROUTE_ID_ALIASES)
    if supplied:
        return supplied
    return ID_SEPARATOR.join([kind.value, date, start_time, market, drop_off])


# =============================================================================
# NORMALIZER
# =============================================================================


def normalize_route(
    row: Mapping[str, Any],
    fallback_kind: RouteKind | str = RouteKind.SPFM,
    contacts: ContactLookup | None = None,
) -> Route:
    """Convert one raw row into a :class:`Route`.

    Args:
        row: Raw spreadsheet row.
        fallback_kind: Kind to use when the row carries no route type,
            usually the kind of the sheet it came from.
        contacts: Optional address book used to enrich stops.

    Returns:
        A new, fully populated :class:`Route`.

    Raises:
        InvalidInputError: *row* is not a mapping.
    """
    row = _require_mapping(row)
    kind = RouteKind.classify(resolve_field(row, KIND_ALIASES), RouteKind(fallback_kind))
    date, display_date, sort_date = _resolve_date(row)
    start_time = resolve_field(row, START_TIME_ALIASES) or ""
    market = resolve_field(row, MARKET_ALIASES) or ""
    drop_off = resolve_field(row, DROP_OFF_ALIASES) or ""

    return Route(
        id=route_id_for(row, kind, date, start_time, market, drop_off),
        kind=kind,
        date=date,
        display_date=display_date,
        sort_date=sort_date,
        start_time=start_time,
        market=market,
        drop_off=drop_off,
        workers=tuple(get_workers_from_route(row)),
        volunteers=tuple(get_volunteers_from_route(row)),
        vans=tuple(get_vans_from_route(row)),
        materials=parse_materials(row),
        stops=build_stops(row, kind, market, drop_off, contacts),
        contacts=tuple(get_route_contacts(row)),
        phones=tuple(get_route_phones(row)),
        status=resolve_field(row, STATUS_ALIASES) or "",
        notes=resolve_field(row, NOTES_ALIASES) or "",
    )
