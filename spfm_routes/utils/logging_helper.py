"""Logging setup for the route scripts.

Library modules only create ``logging.getLogger(__name__)`` loggers; the
scripts call :func:`setup_logging` once before doing any work.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Final

LOG_LEVEL_ENV: Final[str] = "SPFM_LOG_LEVEL"
LOG_FORMAT: Final[str] = "%(levelname)s: %(message)s"


def level_from_env(default: int = logging.INFO) -> int:
    """Level named by ``SPFM_LOG_LEVEL`` (``"DEBUG"``, ``"warning"``, ``"10"``).

    Unknown names fall back to *default*.
    """
    raw = os.environ.get(LOG_LEVEL_ENV, "").strip()
    if not raw:
        return default
    if raw.isdigit():
        return int(raw)
    level = logging.getLevelName(raw.upper())
    return level if isinstance(level, int) else default


def setup_logging(level: int | None = None) -> None:
    """Send log records to stdout as ``LEVEL: message``.

    Args:
        level: Logging level; when omitted, read from ``SPFM_LOG_LEVEL``
            (INFO if unset).
    """
    logging.basicConfig(
        level=level_from_env() if level is None else level,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )
