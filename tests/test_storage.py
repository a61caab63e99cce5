"""Tests for the persistence contract, its backends and the local store."""

import asyncio
import json

import pytest

from moneytrackr.services.storage import (
    TRANSACTIONS_TABLE,
    GoogleSheetsBackend,
    InMemoryBackend,
    JsonFileLocalStore,
    MemoryLocalStore,
    apply_query,
    asc,
    desc,
    eq,
    gte,
    lt,
    neq,
    read_finance_state,
    storage_key,
    write_finance_state,
)
from moneytrackr.services.storage.google_sheets import TABLE_COLUMNS, decode_row, encode_row


run = asyncio.run


ROWS = [
    {"id": "a", "user_id": "u1", "date": "2024-01-02", "amount": 5},
    {"id": "b", "user_id": "u1", "date": "2024-01-03", "amount": 1},
    {"id": "c", "user_id": "u2", "date": "2024-01-01", "amount": 9},
    {"id": "d", "user_id": "u1", "date": "2024-01-03", "amount": 3},
]


class FakeWorksheet:
    """Worksheet double holding cells in memory."""

    def __init__(self, columns):
        self.values = [list(columns)]

    def get_all_values(self):
        return [list(r) for r in self.values]

    def append_row(self, values, value_input_option=None):
        self.values.append(list(values))

    def update(self, range_name, values, value_input_option=None):
        index = int(range_name[1:]) - 1
        self.values[index] = list(values[0])

    def delete_rows(self, index):
        del self.values[index - 1]


class FakeSheetsClient:
    def __init__(self):
        self.sheets = {}

    def get_table_sheet(self, table):
        if table not in self.sheets:
            self.sheets[table] = FakeWorksheet(TABLE_COLUMNS[table])
        return self.sheets[table]


class TestApplyQuery:
    """Tests for in-Python filtering, ordering and slicing."""

    def test_filters_are_anded(self):
        result = apply_query(ROWS, [eq("user_id", "u1"), gte("amount", 3)])
        assert [r["id"] for r in result] == ["a", "d"]

    def test_neq_and_lt(self):
        assert [r["id"] for r in apply_query(ROWS, [neq("user_id", "u1")])] == ["c"]
        assert [r["id"] for r in apply_query(ROWS, [lt("date", "2024-01-03")])] == ["a", "c"]

    def test_first_ordering_is_primary(self):
        result = apply_query(ROWS, order=[desc("date"), asc("amount")])
        assert [r["id"] for r in result] == ["b", "d", "a", "c"]

    def test_row_range_is_inclusive(self):
        result = apply_query(ROWS, order=[asc("id")], row_range=(1, 2))
        assert [r["id"] for r in result] == ["b", "c"]

    def test_missing_values_never_match_comparisons(self):
        rows = [{"id": "x"}, {"id": "y", "amount": 2}]
        assert [r["id"] for r in apply_query(rows, [gte("amount", 0)])] == ["y"]


class TestInMemoryBackend:
    """Tests for the dict-of-lists backend."""

    def test_insert_assigns_id(self):
        backend = InMemoryBackend()
        row = run(backend.insert(TRANSACTIONS_TABLE, {"amount": 1}))
        assert row["id"]
        assert backend.rows(TRANSACTIONS_TABLE) == [row]

    def test_returned_rows_are_copies(self):
        backend = InMemoryBackend()
        run(backend.insert(TRANSACTIONS_TABLE, {"id": "1", "nested": {"a": 1}}))
        [row] = run(backend.select(TRANSACTIONS_TABLE))
        row["nested"]["a"] = 99
        assert backend.rows(TRANSACTIONS_TABLE)[0]["nested"] == {"a": 1}

    def test_update_count_and_delete(self):
        backend = InMemoryBackend()
        for row in ROWS:
            run(backend.insert(TRANSACTIONS_TABLE, row))

        assert run(backend.update(TRANSACTIONS_TABLE, [eq("user_id", "u1")], {"amount": 0})) == 3
        assert run(backend.count(TRANSACTIONS_TABLE, [eq("amount", 0)])) == 3
        assert run(backend.update(TRANSACTIONS_TABLE, [eq("id", "zzz")], {"amount": 1})) == 0

        assert run(backend.delete(TRANSACTIONS_TABLE, [eq("user_id", "u2")])) == 1
        assert run(backend.count(TRANSACTIONS_TABLE)) == 3


class TestSheetsCells:
    """Tests for the worksheet cell encoding."""

    def test_values_survive_encoding(self):
        columns = ["id", "amount", "recurring", "profile", "notes"]
        row = {"id": "1", "amount": 42.5, "recurring": False, "profile": {"name": "Ana"}, "notes": None}
        cells = encode_row(columns, row)

        assert cells[4] == ""
        assert decode_row(columns, cells) == row

    def test_short_row_reads_missing_as_none(self):
        assert decode_row(["id", "amount"], ['"1"']) == {"id": "1", "amount": None}


class TestGoogleSheetsBackend:
    """Tests for the Sheets backend over an in-memory worksheet."""

    @pytest.fixture
    def sheets(self):
        client = FakeSheetsClient()
        return client, GoogleSheetsBackend(client)

    def test_insert_then_select(self, sheets):
        client, backend = sheets
        stored = run(backend.insert(TRANSACTIONS_TABLE, {"user_id": "u1", "amount": 12.5, "date": "2024-01-02"}))

        assert stored["id"]
        header, cells = client.sheets[TRANSACTIONS_TABLE].values
        assert header == TABLE_COLUMNS[TRANSACTIONS_TABLE]
        assert json.loads(cells[header.index("amount")]) == 12.5

        [row] = run(backend.select(TRANSACTIONS_TABLE, [eq("user_id", "u1")]))
        assert row["id"] == stored["id"]
        assert row["amount"] == 12.5
        assert row["notes"] is None

    def test_update_rewrites_matching_rows(self, sheets):
        _, backend = sheets
        for row in ROWS:
            run(backend.insert(TRANSACTIONS_TABLE, row))

        assert run(backend.update(TRANSACTIONS_TABLE, [eq("id", "b")], {"amount": 7})) == 1
        [row] = run(backend.select(TRANSACTIONS_TABLE, [eq("id", "b")]))
        assert row["amount"] == 7
        assert row["date"] == "2024-01-03"

    def test_delete_keeps_other_rows(self, sheets):
        _, backend = sheets
        for row in ROWS:
            run(backend.insert(TRANSACTIONS_TABLE, row))

        assert run(backend.delete(TRANSACTIONS_TABLE, [eq("user_id", "u1")])) == 3
        remaining = run(backend.select(TRANSACTIONS_TABLE))
        assert [r["id"] for r in remaining] == ["c"]
        assert run(backend.count(TRANSACTIONS_TABLE)) == 1

    def test_select_orders_and_slices(self, sheets):
        _, backend = sheets
        for row in ROWS:
            run(backend.insert(TRANSACTIONS_TABLE, row))

        page = run(backend.select(
            TRANSACTIONS_TABLE,
            [eq("user_id", "u1")],
            order=[desc("date"), desc("id")],
            row_range=(0, 1),
        ))
        assert [r["id"] for r in page] == ["d", "b"]


class TestLocalStore:
    """Tests for the key-value fallback stores."""

    def test_memory_store_returns_fresh_copies(self):
        store = MemoryLocalStore()
        store.set("k", [{"a": 1}])
        value = store.get("k")
        value.append("x")
        assert store.get("k") == [{"a": 1}]
        assert "k" in store
        assert store.get("missing", "default") == "default"

    def test_remove_and_clear(self):
        store = MemoryLocalStore()
        store.set("a", 1)
        store.set("b", 2)
        store.remove("a")
        assert store.keys() == ["b"]
        store.clear()
        assert store.keys() == []

    def test_json_file_store_persists(self, tmp_path):
        path = tmp_path / "store.json"
        store = JsonFileLocalStore(path)
        store.set("finance_goals", [{"id": "g1", "title": "Café"}])

        reopened = JsonFileLocalStore(path)
        assert reopened.get("finance_goals") == [{"id": "g1", "title": "Café"}]
        assert not (tmp_path / "store.tmp").exists()

    def test_json_file_store_tolerates_corrupt_file(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text("{not json", encoding="utf-8")
        store = JsonFileLocalStore(path)
        assert store.keys() == []
        store.set("a", 1)
        assert JsonFileLocalStore(path).get("a") == 1

    def test_storage_key_layout(self):
        assert storage_key("transactions") == "finance_transactions"
        assert storage_key("goals", "u1") == "finance_goals_u1"

    def test_finance_state_round_trip_per_user(self):
        store = MemoryLocalStore()
        write_finance_state(store, {"transactions": [{"id": "1"}], "goals": [], "settings": {}}, "u1")

        assert read_finance_state(store, "u1") == {"transactions": [{"id": "1"}], "goals": [], "settings": {}}
        assert read_finance_state(store) == {"transactions": [], "goals": [], "settings": {}}

    def test_write_finance_state_skips_absent_entities(self):
        store = MemoryLocalStore()
        store.set(storage_key("goals", "u1"), [{"id": "keep"}])
        write_finance_state(store, {"transactions": []}, "u1")
        assert store.get(storage_key("goals", "u1")) == [{"id": "keep"}]
        assert store.get(storage_key("transactions", "u1")) == []
