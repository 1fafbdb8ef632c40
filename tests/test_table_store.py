from __future__ import annotations

import pytest

from spfm_routes.sheet_tools.table_store import RawTableStore
from spfm_routes.utils.errors import InvalidInputError


def test_unknown_table_is_empty() -> None:
    store = RawTableStore()
    assert store.get_table("SPFM") == []
    assert not store.has_data()


def test_signature_tracks_fetch_time_and_row_counts() -> None:
    store = RawTableStore()
    store.put_tables({"SPFM": [{"date": "2025-03-10"}]}, fetched_at=100.0)
    first = store.signature()

    # Same timestamp and counts, different content: same signature.
    store.put_tables({"SPFM": [{"date": "2025-03-11"}]}, fetched_at=100.0)
    assert store.signature() == first

    store.put_tables({"SPFM": [{"date": "a"}, {"date": "b"}]}, fetched_at=100.0)
    assert store.signature() != first

    second = store.signature()
    store.mark_fetched(200.0)
    assert store.signature() != second


def test_put_tables_replaces_whole_set() -> None:
    store = RawTableStore()
    store.put_tables({"SPFM": [{"a": "1"}], "Routes": [{"b": "2"}]}, fetched_at=1.0)
    store.put_tables({"SPFM": [{"a": "1"}]}, fetched_at=2.0)
    assert store.table_names() == ["SPFM"]
    assert store.get_table("Routes") == []
    assert store.last_fetch_ts == 2.0


def test_rows_are_read_only_copies() -> None:
    source_row = {"market": "Downtown"}
    store = RawTableStore()
    store.put_table("SPFM", [source_row])
    source_row["market"] = "Changed"

    stored = store.get_table("SPFM")[0]
    assert stored["market"] == "Downtown"
    with pytest.raises(TypeError):
        stored["market"] = "Eastside"


def test_snapshot_and_plain_copy() -> None:
    store = RawTableStore()
    store.put_tables({"Contacts": [{"Location": "Pantry A"}]}, fetched_at=5.0)
    signature, tables = store.snapshot()
    assert signature == store.signature()
    assert tables["Contacts"][0]["Location"] == "Pantry A"
    assert store.to_plain() == {"Contacts": [{"Location": "Pantry A"}]}


@pytest.mark.parametrize("rows", ["oops", [["a", "b"]], [{"ok": "1"}, 3]])
def test_put_table_rejects_non_row_input(rows) -> None:
    store = RawTableStore()
    with pytest.raises(InvalidInputError):
        store.put_table("SPFM", rows)
