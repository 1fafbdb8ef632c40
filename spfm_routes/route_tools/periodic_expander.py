"""Expand weekday-recurring route templates into dated routes.

The consolidated Routes sheet mixes two kinds of rows:

- **dated** rows carry a real date and describe a one-off route;
- **periodic** rows carry a weekday name ("Monday") and recur every week.

Periodic rows are turned into one route per week for a rolling window that
starts today. A dated row replaces the periodic occurrence it sits on: same
date, same kind, same market (compared case- and space-insensitively). A
dated *recovery* row with a blank market replaces every recovery occurrence
on its date, because recovery runs are planned per day rather than per
market.
"""

from __future__ import annotations

import datetime as dt
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Final, Iterable

from spfm_routes.route_tools.route_model import Route, RouteKind
from spfm_routes.route_tools.route_normalizer import (
    DATE_ALIASES,
    KIND_ALIASES,
    MARKET_ALIASES,
    ROUTE_ID_ALIASES,
    ContactLookup,
    normalize_route,
    parse_route_date,
)
from spfm_routes.utils.errors import InvalidInputError
from spfm_routes.utils.text_helpers import find_field_key, normalize_text, resolve_field

# =============================================================================
# CONFIGURATION
# =============================================================================

DEFAULT_WINDOW_WEEKS: Final[int] = 8
WEEKDAY_ALIASES: Final[list[str]] = ["Weekday", "weekday", "day", "Day", "recovery route"]

# Sunday-first numbering.
WEEKDAY_INDEX: Final[dict[str, int]] = {
    "sunday": 0,
    "monday": 1,
    "tuesday": 2,
    "wednesday": 3,
    "thursday": 4,
    "friday": 5,
    "saturday": 6,
}

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OverrideRule:
    """A dated row's claim on the periodic occurrences of its date."""

    kind: RouteKind
    market_norm: str

    @property
    def market_empty(self) -> bool:
        return not self.market_norm

    def suppresses(self, kind: RouteKind, market_norm: str) -> bool:
        if kind is not self.kind:
            return False
        if self.kind is RouteKind.RECOVERY and self.market_empty:
            return True
        return market_norm == self.market_norm


# =============================================================================
# FUNCTIONS
# =============================================================================


def market_key(value: str | None) -> str:
    """Lower-case, trim and collapse inner whitespace."""
    return " ".join((value or "").lower().split())


def weekday_index(name: str | None) -> int | None:
    """Sunday-first index of a weekday name, ``None`` if not a weekday."""
    return WEEKDAY_INDEX.get(normalize_text(name))


def window_start(today: dt.date | None = None) -> dt.date:
    """Calendar date the window starts on; a datetime is cut to its date."""
    if today is None:
        return dt.date.today()
    if isinstance(today, dt.datetime):
        return today.date()
    return today


def occurrence_dates(target_weekday: int, today: dt.date, window_weeks: int) -> list[dt.date]:
    """Next *window_weeks* dates falling on *target_weekday*, starting on/after *today*.

    When *today* is already the target weekday it is the first occurrence.
    """
    today = window_start(today)
    current = (today.weekday() + 1) % 7
    days_until = (target_weekday - current + 7) % 7
    first = today + dt.timedelta(days=days_until)
    return [first + dt.timedelta(weeks=k) for k in range(window_weeks)]


def _row_kind(row: Mapping[str, Any], fallback_kind: RouteKind) -> RouteKind:
    return RouteKind.classify(resolve_field(row, KIND_ALIASES), fallback_kind)


def partition_template_rows(
    rows: Iterable[Mapping[str, Any]],
) -> tuple[list[Mapping[str, Any]], list[Mapping[str, Any]], list[Mapping[str, Any]]]:
    """Split template rows into ``(dated, periodic, other)``.

    Raises:
        InvalidInputError: *rows* is not a list of mappings.
    """
    if not isinstance(rows, (list, tuple)):
        raise InvalidInputError(
            f"Template rows must be a list of mappings, got {type(rows).__name__}."
        )
    dated: list[Mapping[str, Any]] = []
    periodic: list[Mapping[str, Any]] = []
    other: list[Mapping[str, Any]] = []
    for index, row in enumerate(rows):
        if not isinstance(row, Mapping):
            raise InvalidInputError(
                f"Template row {index} is a {type(row).__name__}, not a mapping."
            )
        if parse_route_date(resolve_field(row, DATE_ALIASES)) is not None:
            dated.append(row)
        elif resolve_field(row, WEEKDAY_ALIASES):
            periodic.append(row)
        else:
            other.append(row)
    return dated, periodic, other


def build_override_index(
    dated_rows: Iterable[Mapping[str, Any]],
    fallback_kind: RouteKind = RouteKind.SPFM,
) -> dict[str, list[OverrideRule]]:
    """Map ISO date -> override rules from the dated rows."""
    index: dict[str, list[OverrideRule]] = {}
    for row in dated_rows:
        parsed = parse_route_date(resolve_field(row, DATE_ALIASES))
        if parsed is None:
            continue
        rule = OverrideRule(
            kind=_row_kind(row, fallback_kind),
            market_norm=market_key(resolve_field(row, MARKET_ALIASES)),
        )
        index.setdefault(parsed.isoformat(), []).append(rule)
    return index


def is_overridden(
    index: Mapping[str, list[OverrideRule]],
    iso_date: str,
    kind: RouteKind,
    market_norm: str,
) -> bool:
    return any(rule.suppresses(kind, market_norm) for rule in index.get(iso_date, ()))


def _occurrence_row(row: Mapping[str, Any], iso_date: str) -> dict[str, Any]:
    clone = dict(row)
    date_key = find_field_key(clone, DATE_ALIASES) or "date"
    clone[date_key] = iso_date
    id_key = find_field_key(clone, ROUTE_ID_ALIASES)
    if id_key is not None and str(clone[id_key]).strip():
        clone[id_key] = f"{str(clone[id_key]).strip()}|{iso_date}"
    return clone


def expand(
    template_rows: Iterable[Mapping[str, Any]],
    window_weeks: int = DEFAULT_WINDOW_WEEKS,
    *,
    today: dt.date | None = None,
    fallback_kind: RouteKind | str = RouteKind.SPFM,
    contacts: ContactLookup | None = None,
) -> list[Route]:
    """Turn template rows into dated routes for the coming *window_weeks*.

    Args:
        template_rows: Rows of the consolidated Routes sheet (or of a legacy
            per-kind sheet).
        window_weeks: Number of weekly occurrences per periodic row.
        today: Start of the window; defaults to the local date. A datetime
            counts as its calendar date.
        fallback_kind: Kind for rows without a route type.
        contacts: Optional address book for stop enrichment.

    Returns:
        Dated rows first, then periodic occurrences (row by row, each in
        date order), then rows that are neither. No global date ordering.

    Raises:
        InvalidInputError: *template_rows* is not a list of mappings.
    """
    fallback = RouteKind(fallback_kind)
    today = window_start(today)
    dated, periodic, other = partition_template_rows(template_rows)
    overrides = build_override_index(dated, fallback)

    routes = [normalize_route(row, fallback, contacts) for row in dated]

    for row in periodic:
        day_name = resolve_field(row, WEEKDAY_ALIASES)
        target = weekday_index(day_name)
        if target is None:
            logger.warning("Skipping template row with unrecognized weekday %r", day_name)
            continue
        kind = _row_kind(row, fallback)
        market_norm = market_key(resolve_field(row, MARKET_ALIASES))
        for occurrence in occurrence_dates(target, today, window_weeks):
            iso_date = occurrence.isoformat()
            if is_overridden(overrides, iso_date, kind, market_norm):
                logger.debug("%s %s occurrence replaced by a dated row", iso_date, kind.value)
                continue
            routes.append(normalize_route(_occurrence_row(row, iso_date), fallback, contacts))

    for row in other:
        logger.debug("Template row has neither a date nor a weekday: %s", dict(row))
        routes.append(normalize_route(row, fallback, contacts))

    return routes
