"""Tests for the ArangoDB-backed store, against mocked driver handles."""

from unittest.mock import MagicMock

import pytest
from arango.exceptions import ArangoError

from database.database import COLLECTIONS, EquiCareStore, _init_collections, _strip
from services.errors import StoreError


@pytest.fixture
def db() -> MagicMock:
    return MagicMock()


@pytest.fixture
def store(db) -> EquiCareStore:
    return EquiCareStore(db)


def test_strip_drops_system_attributes():
    row = {"_key": "1", "_id": "doctors/1", "_rev": "abc", "doctor_id": "d1"}

    assert _strip(row) == {"doctor_id": "d1"}


class TestSelect:

    def test_builds_filtered_sorted_query(self, store, db):
        db.aql.execute.return_value = iter([{"_key": "1", "_id": "transcripts/1", "doctor_id": "d1"}])

        rows = store.select("transcripts", filters={"doctor_id": "d1"}, order_by="date", ascending=False, limit=5)

        assert rows == [{"doctor_id": "d1"}]
        aql = db.aql.execute.call_args.args[0]
        bind_vars = db.aql.execute.call_args.kwargs["bind_vars"]
        assert "FILTER row[@f0] == @v0" in aql
        assert "SORT row[@order_by] DESC" in aql
        assert "LIMIT @limit" in aql
        assert bind_vars == {
            "@table": "transcripts",
            "f0": "doctor_id",
            "v0": "d1",
            "order_by": "date",
            "limit": 5,
        }

    def test_unfiltered_query_has_no_clauses(self, store, db):
        db.aql.execute.return_value = iter([])

        assert store.select("doctors") == []
        aql = db.aql.execute.call_args.args[0]
        assert "FILTER" not in aql
        assert "SORT" not in aql
        assert "LIMIT" not in aql

    def test_select_one_returns_none_when_empty(self, store, db):
        db.aql.execute.return_value = iter([])

        assert store.get_user("u1") is None
        assert db.aql.execute.call_args.kwargs["bind_vars"]["limit"] == 1

    def test_driver_error_becomes_store_error(self, store, db):
        db.aql.execute.side_effect = ArangoError("connection reset")

        with pytest.raises(StoreError) as excinfo:
            store.list_doctors()

        assert excinfo.value.status_code == 502
        assert excinfo.value.detail == "connection reset"


def test_upsert_binds_key_column_and_row(store, db):
    db.aql.execute.return_value = iter([{"_key": "9", "user_id": "u1", "age": 30}])

    saved = store.upsert_user({"user_id": "u1", "age": 30})

    assert saved == {"user_id": "u1", "age": 30}
    aql = db.aql.execute.call_args.args[0]
    assert aql.startswith("UPSERT { [@key_column]: @key }")
    assert db.aql.execute.call_args.kwargs["bind_vars"] == {
        "@table": "users",
        "key_column": "user_id",
        "key": "u1",
        "row": {"user_id": "u1", "age": 30},
    }


class TestInsert:

    def test_returns_new_row_without_system_attributes(self, store, db):
        db.collection.return_value.insert.return_value = {
            "_key": "42",
            "new": {"_key": "42", "_id": "transcripts/42", "_rev": "r", "transcript": "t"},
        }

        assert store.insert_transcript({"transcript": "t"}) == {"transcript": "t"}
        db.collection.assert_called_with("transcripts")
        db.collection.return_value.insert.assert_called_once_with({"transcript": "t"}, return_new=True)

    def test_driver_error_becomes_store_error(self, store, db):
        db.collection.return_value.insert.side_effect = ArangoError("unique constraint violated")

        with pytest.raises(StoreError, match="Insert into 'transcripts' failed"):
            store.insert_transcript({"transcript": "t"})


class TestTransaction:

    def test_commits_on_success(self, store, db):
        txn_db = db.begin_transaction.return_value

        with store.transaction() as txn:
            assert txn.db is txn_db

        txn_db.commit_transaction.assert_called_once_with()
        txn_db.abort_transaction.assert_not_called()
        assert db.begin_transaction.call_args.kwargs["write"] == ["users", "transcripts"]

    def test_aborts_and_reraises_when_block_fails(self, store, db):
        txn_db = db.begin_transaction.return_value

        with pytest.raises(StoreError, match="insert failed"):
            with store.transaction():
                raise StoreError("insert failed")

        txn_db.abort_transaction.assert_called_once_with()
        txn_db.commit_transaction.assert_not_called()

    def test_abort_failure_keeps_original_error(self, store, db):
        txn_db = db.begin_transaction.return_value
        txn_db.abort_transaction.side_effect = ArangoError("transaction gone")

        with pytest.raises(ValueError):
            with store.transaction():
                raise ValueError("bad row")

    def test_commit_failure_becomes_store_error(self, store, db):
        db.begin_transaction.return_value.commit_transaction.side_effect = ArangoError("write conflict")

        with pytest.raises(StoreError, match="Transaction commit failed"):
            with store.transaction():
                pass

    def test_begin_failure_becomes_store_error(self, store, db):
        db.begin_transaction.side_effect = ArangoError("server unavailable")

        with pytest.raises(StoreError, match="Could not start transaction"):
            with store.transaction():
                pytest.fail("block must not run")


def test_refresh_doctor_ratings_counts_updated_rows(store, db):
    db.aql.execute.return_value = iter([1, 1, 1])

    assert store.refresh_doctor_ratings() == 3
    aql = db.aql.execute.call_args.args[0]
    assert "COLLECT AGGREGATE" in aql
    assert db.aql.execute.call_args.kwargs["bind_vars"] == {"@doctors": "doctors", "@transcripts": "transcripts"}


def test_init_collections_creates_missing_collections_with_indexes():
    db = MagicMock()
    db.has_collection.side_effect = lambda name: name == "doctors"

    _init_collections(db)

    created = [c.args[0] for c in db.create_collection.call_args_list]
    assert created == ["users", "transcripts"]
    collection = db.create_collection.return_value
    assert collection.add_index.call_count == len(COLLECTIONS["users"]) + len(COLLECTIONS["transcripts"])
