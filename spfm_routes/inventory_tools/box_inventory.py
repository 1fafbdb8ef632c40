"""Box inventory: counts read from the Status sheet, updates kept locally.

The Status sheet is a loose two-column list, e.g.::

    Item            | Count
    Large boxes     | 12
    Small boxes     | 30
    Verified on     | 3/8/2025

Local updates are stored in the :class:`LocalStore` and win over the sheet
until the sheet catches up.
"""

from __future__ import annotations

import datetime as dt
import logging
from collections.abc import Mapping
from dataclasses import asdict, dataclass
from typing import Any, Final, Iterable

from spfm_routes.sheet_tools.local_store import LocalStore
from spfm_routes.utils.text_helpers import cell_text

# =============================================================================
# CONFIGURATION
# =============================================================================

INVENTORY_META_KEY: Final[str] = "spfm_inventory"
DEFAULT_UPDATED_BY: Final[str] = "Anonymous"


@dataclass(frozen=True)
class BoxType:
    label: str
    description: str
    farmers_per_box: int


BOX_CONFIG: Final[dict[str, BoxType]] = {
    "small": BoxType(label="small", description="5/9 bushel", farmers_per_box=2),
    "large": BoxType(label="LARGE", description="1 1/9 bushel", farmers_per_box=1),
}

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BoxInventory:
    small_boxes: int = 0
    large_boxes: int = 0
    last_updated: str | None = None
    updated_by: str | None = None

    @property
    def total_boxes(self) -> int:
        return self.small_boxes + self.large_boxes

    def farmers_served(self) -> int:
        """Farmers the boxes on hand can supply, per :data:`BOX_CONFIG` ratios."""
        return (
            self.small_boxes // BOX_CONFIG["small"].farmers_per_box
            + self.large_boxes // BOX_CONFIG["large"].farmers_per_box
        )


# =============================================================================
# FUNCTIONS
# =============================================================================


def to_count(value: Any) -> int:
    """Leading integer of a cell (``"12 boxes"`` -> 12); 0 when there is none."""
    text = cell_text(value).replace(",", "")
    digits = ""
    for ch in text.lstrip("+"):
        if ch.isdigit():
            digits += ch
        else:
            break
    return int(digits) if digits else 0


def read_inventory(status_rows: Iterable[Mapping[str, Any]]) -> BoxInventory:
    """Sum Large/Small box rows of the Status sheet.

    The first column names the item and the second holds the count; a
    "Verified on" row supplies the last-updated stamp.
    """
    small = large = 0
    verified: str | None = None
    for row in status_rows:
        values = [cell_text(v) for v in row.values()]
        if len(values) < 2 or not values[0]:
            continue
        label, quantity = values[0], values[1]
        if "Large" in label:
            large += to_count(quantity)
        elif "Small" in label:
            small += to_count(quantity)
        elif "Verified on" in label:
            verified = quantity or None
    return BoxInventory(small_boxes=small, large_boxes=large, last_updated=verified)


class InventoryLedger:
    """Current box counts: sheet values overlaid with locally saved updates."""

    def __init__(self, local_store: LocalStore | None = None) -> None:
        self.local_store = local_store

    def _saved(self) -> dict[str, Any]:
        if self.local_store is None:
            return {}
        saved = self.local_store.get_meta(INVENTORY_META_KEY) or {}
        return saved if isinstance(saved, dict) else {}

    def current(self, status_rows: Iterable[Mapping[str, Any]] = ()) -> BoxInventory:
        merged = asdict(read_inventory(status_rows))
        merged.update({k: v for k, v in self._saved().items() if k in merged})
        return BoxInventory(**merged)

    def update(
        self,
        small_boxes: Any,
        large_boxes: Any,
        updated_by: str | None = None,
        now: dt.datetime | None = None,
    ) -> BoxInventory:
        """Record new counts and return them.

        Counts that are not integers are stored as 0.
        """
        inventory = BoxInventory(
            small_boxes=to_count(small_boxes),
            large_boxes=to_count(large_boxes),
            last_updated=(now or dt.datetime.now()).strftime("%Y-%m-%d %H:%M:%S"),
            updated_by=(updated_by or "").strip() or DEFAULT_UPDATED_BY,
        )
        if self.local_store is not None:
            self.local_store.set_meta(INVENTORY_META_KEY, asdict(inventory))
        logger.info(
            "Inventory updated by %s: %d small, %d large",
            inventory.updated_by,
            inventory.small_boxes,
            inventory.large_boxes,
        )
        return inventory
