"""Address-book lookups keyed by location name."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Final, Iterable

from spfm_routes.route_tools.route_model import Contact
from spfm_routes.utils.errors import InvalidInputError
from spfm_routes.utils.text_helpers import cell_text, find_field_key, normalize_text, resolve_field

# =============================================================================
# CONFIGURATION
# =============================================================================

LOCATION_ALIASES: Final[list[str]] = ["Location", "location"]
ADDRESS_ALIASES: Final[list[str]] = ["Address", "address"]
CONTACT_ALIASES: Final[list[str]] = ["Contact", "contact"]
PHONE_ALIASES: Final[list[str]] = ["Phone", "phone"]
NOTES_ALIASES: Final[list[str]] = ["Notes/ Special Instructions", "Notes", "notes"]
TYPE_ALIASES: Final[list[str]] = ["Type", "type", "TYPE"]
JOB_ALIASES: Final[list[str]] = ["Job", "job", "JOB"]

MAX_NUMBERED_COLUMNS: Final[int] = 20

logger = logging.getLogger(__name__)

# =============================================================================
# FUNCTIONS
# =============================================================================


def numbered_values(row: Mapping[str, Any], prefix: str) -> list[str]:
    """Collect ``<prefix>1``, ``<prefix>2``, ... cells in column order.

    The scan stops at the first number with no such column (or at
    :data:`MAX_NUMBERED_COLUMNS`); blank cells are skipped.
    """
    values: list[str] = []
    for i in range(1, MAX_NUMBERED_COLUMNS + 1):
        key = find_field_key(row, [f"{prefix}{i}", f"{prefix.capitalize()}{i}"])
        if key is None:
            break
        text = cell_text(row[key])
        if text:
            values.append(text)
    return values


def numbered_or_single(row: Mapping[str, Any], prefix: str, single_aliases: list[str]) -> list[str]:
    """Numbered columns, else the legacy single column."""
    values = numbered_values(row, prefix)
    if not values:
        single = resolve_field(row, single_aliases)
        if single:
            values = [single]
    return values


def contact_from_row(row: Mapping[str, Any]) -> Contact | None:
    """Build a :class:`Contact` from one address-book row (``None`` without a location)."""
    location = resolve_field(row, LOCATION_ALIASES)
    if not location:
        return None
    return Contact(
        location=location,
        address=resolve_field(row, ADDRESS_ALIASES) or location,
        contacts=tuple(numbered_or_single(row, "contact", CONTACT_ALIASES)),
        phones=tuple(numbered_or_single(row, "phone", PHONE_ALIASES)),
        notes=resolve_field(row, NOTES_ALIASES) or "",
        type=resolve_field(row, TYPE_ALIASES) or "",
        job=resolve_field(row, JOB_ALIASES) or "",
    )


class ContactDirectory:
    """Read-only lookup of :class:`Contact` records by location name.

    Names are compared after :func:`normalize_text`, so ``"St. Mary's"``
    matches ``"st marys"``. The first row for a location wins.
    """

    def __init__(self, rows: Iterable[Mapping[str, Any]] = ()) -> None:
        self._by_name: dict[str, Contact] = {}
        for index, row in enumerate(rows):
            if not isinstance(row, Mapping):
                raise InvalidInputError(
                    f"Contact row {index} is a {type(row).__name__}, not a mapping."
                )
            contact = contact_from_row(row)
            if contact is None:
                continue
            self._by_name.setdefault(normalize_text(contact.location), contact)
        logger.debug("Contact directory holds %d locations", len(self._by_name))

    def __len__(self) -> int:
        return len(self._by_name)

    def lookup(self, name: str | None) -> Contact | None:
        if not name:
            return None
        return self._by_name.get(normalize_text(name))

    def all(self) -> list[Contact]:
        return sorted(self._by_name.values(), key=lambda c: normalize_text(c.location))
