"""Value types for normalized routes."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from enum import Enum


class RouteKind(str, Enum):
    """Kind of scheduled event a route describes."""

    SPFM = "spfm"
    RECOVERY = "recovery"
    SPFM_DELIVERY = "spfm-delivery"

    @classmethod
    def classify(cls, value: str | None, fallback: RouteKind) -> RouteKind:
        """Map a free-text route type to a kind.

        Contains "recovery" -> recovery, contains "delivery" ->
        spfm-delivery, any other non-empty text -> spfm. Blank or missing
        text gives *fallback*.
        """
        if not value or not value.strip():
            return fallback
        lowered = value.lower()
        if "recovery" in lowered:
            return cls.RECOVERY
        if "delivery" in lowered:
            return cls.SPFM_DELIVERY
        return cls.SPFM


@dataclass(frozen=True)
class Contact:
    """Address-book entry for a location."""

    location: str
    address: str = ""
    contacts: tuple[str, ...] = ()
    phones: tuple[str, ...] = ()
    notes: str = ""
    type: str = ""
    job: str = ""

    @property
    def contact_name(self) -> str:
        return self.contacts[0] if self.contacts else ""

    @property
    def phone(self) -> str:
        return self.phones[0] if self.phones else ""


@dataclass(frozen=True)
class Stop:
    location: str
    contact: Contact | None = None


@dataclass(frozen=True)
class Materials:
    """Checklist items grouped by where they are handled."""

    office: tuple[str, ...] = ()
    storage: tuple[str, ...] = ()
    at_market: tuple[str, ...] = ()
    back_at_office: tuple[str, ...] = ()


@dataclass(frozen=True)
class Route:
    """One scheduled pickup, market or delivery event.

    ``sort_date`` is ``None`` exactly when ``date`` could not be parsed.
    ``market`` is ``""`` when the sheet leaves it blank; no placeholder is
    ever substituted.
    """

    id: str
    kind: RouteKind
    date: str
    display_date: str
    sort_date: dt.date | None
    start_time: str = ""
    market: str = ""
    drop_off: str = ""
    workers: tuple[str, ...] = ()
    volunteers: tuple[str, ...] = ()
    vans: tuple[str, ...] = ()
    materials: Materials = field(default_factory=Materials)
    stops: tuple[Stop, ...] = ()
    contacts: tuple[str, ...] = ()
    phones: tuple[str, ...] = ()
    status: str = ""
    notes: str = ""
