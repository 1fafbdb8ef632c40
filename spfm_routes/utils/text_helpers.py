"""Text and field helpers for spreadsheet-shaped rows.

Spreadsheet rows arrive as plain ``{header: cell}`` mappings whose headers are
inconsistent about casing and spacing (``"Route Type"`` vs ``routeType`` vs
``route type``). Every field read in the route layer goes through
:func:`resolve_field`, so new header spellings are added to alias lists, not
to logic.
"""

from __future__ import annotations

import re
import unicodedata
from typing import Any, Iterable, Mapping, Sequence

import pandas as pd

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


def cell_text(value: Any) -> str:
    """Return a cell as trimmed text; ``None``/NaN become ``""``."""
    if isinstance(value, str):
        return value.strip()
    if value is None:
        return ""
    try:
        if pd.isna(value):
            return ""
    except (TypeError, ValueError):
        pass
    return str(value).strip()


def normalize_text(value: Any) -> str:
    """Fold text for loose comparisons.

    Lower-cases, strips diacritics and collapses every run of
    non-alphanumeric characters to one space.

    Args:
        value: Any cell value.

    Returns:
        The folded string (``""`` for missing values).
    """
    text = unicodedata.normalize("NFKD", cell_text(value).lower())
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    return _NON_ALNUM_RE.sub(" ", text).strip()


def normalize_key(value: Any) -> str:
    """Lower-case *value* and drop every non-alphanumeric character."""
    return _NON_ALNUM_RE.sub("", cell_text(value).lower())


def flexible_text_match(a: Any, b: Any) -> bool:
    """True when *a* and *b* are equal after :func:`normalize_text`."""
    return normalize_text(a) == normalize_text(b)


def flexible_text_includes(haystack: Any, needle: Any) -> bool:
    """True when folded *needle* occurs inside folded *haystack*."""
    return normalize_text(needle) in normalize_text(haystack)


def find_field_key(row: Mapping[str, Any], aliases: Sequence[str]) -> str | None:
    """Return the actual key in *row* that one of *aliases* refers to.

    Presence only: the cell may be blank. Exact keys are tried first, in
    alias order, then a normalized comparison against all of the row's keys.
    """
    for alias in aliases:
        if alias in row:
            return alias
    normalized = {normalize_key(key): key for key in reversed(list(row.keys()))}
    for alias in aliases:
        key = normalized.get(normalize_key(alias))
        if key is not None:
            return key
    return None


def resolve_field(row: Mapping[str, Any], aliases: Sequence[str]) -> str | None:
    """Return the first non-empty value for any of *aliases*.

    Two passes: an exact key lookup for each alias in order (fast path),
    then a normalized comparison (lower-cased, non-alphanumerics stripped)
    against every key of *row*.

    Args:
        row: A spreadsheet row.
        aliases: Candidate header names, most preferred first.

    Returns:
        The trimmed cell text, or ``None`` when no alias yields a value.
        Callers supply their own default.
    """
    for alias in aliases:
        if alias in row:
            text = cell_text(row[alias])
            if text:
                return text

    wanted = [normalize_key(alias) for alias in aliases]
    keys_by_norm: dict[str, list[str]] = {}
    for key in row.keys():
        keys_by_norm.setdefault(normalize_key(key), []).append(key)
    for norm in wanted:
        for key in keys_by_norm.get(norm, ()):
            text = cell_text(row[key])
            if text:
                return text
    return None


def split_cell(value: Any, sep: str = ",") -> list[str]:
    """Split a delimited cell into trimmed, non-blank parts."""
    return [part.strip() for part in cell_text(value).split(sep) if part.strip()]


def unique_in_order(values: Iterable[str]) -> list[str]:
    """Drop repeated values, keeping the first occurrence."""
    seen: set[str] = set()
    out: list[str] = []
    for value in values:
        if value not in seen:
            seen.add(value)
            out.append(value)
    return out
