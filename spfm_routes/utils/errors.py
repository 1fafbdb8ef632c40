"""Exceptions shared by the sheet and route layers."""

from __future__ import annotations


class InvalidInputError(ValueError):
    """A table, grid or row does not have the structure the caller expects.

    Raised only for shape violations (e.g. a table that is not a list of
    mappings). Missing or unparseable individual fields never raise.
    """
