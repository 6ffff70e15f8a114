"""
ArangoDB connection and the row-level store used by the services.

Collections: ``doctors``, ``users``, ``transcripts``. Rows are plain dicts
keyed by their own id columns (``doctor_id``, ``user_id``,
``transcript_identifier``); ArangoDB system attributes never leave this
module. Driver errors are re-raised as ``StoreError``.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from arango import ArangoClient
from arango.database import Database, StandardDatabase
from arango.exceptions import ArangoError, CollectionCreateError, DatabaseCreateError

from config.config import get_settings
from config.logging_config import get_logger
from services.errors import StoreError

logger = get_logger(__name__)

DOCTORS = "doctors"
USERS = "users"
TRANSCRIPTS = "transcripts"

COLLECTIONS: dict[str, list[dict[str, Any]]] = {
    DOCTORS: [{"type": "persistent", "fields": ["doctor_id"], "unique": True}],
    USERS: [{"type": "persistent", "fields": ["user_id"], "unique": True}],
    TRANSCRIPTS: [
        {"type": "persistent", "fields": ["doctor_id"]},
        {"type": "persistent", "fields": ["user_id"]},
    ],
}

_SYSTEM_ATTRIBUTES = ("_key", "_id", "_rev")

# Singleton client instance
_client: ArangoClient | None = None
_db: StandardDatabase | None = None
_store: "EquiCareStore | None" = None


def _strip(row: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in row.items() if k not in _SYSTEM_ATTRIBUTES}


class EquiCareStore:
    """
    Generic row access over an ArangoDB database handle.

    ``db`` may be a regular database or a stream-transaction database; the
    same methods work against both.
    """

    def __init__(self, db: Database):
        self.db = db

    # ------------------------------------------------------------------
    # Generic row API
    # ------------------------------------------------------------------

    def _execute(self, aql: str, bind_vars: dict[str, Any]) -> list[Any]:
        try:
            cursor = self.db.aql.execute(aql, bind_vars=bind_vars)
            return list(cursor)
        except ArangoError as e:
            logger.error("Store query failed", error=str(e))
            raise StoreError("Store query failed", detail=str(e)) from e

    def select(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        ascending: bool = True,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """
        Return rows of ``table`` matching every equality filter.

        Args:
            table: Collection name.
            filters: Column -> value equality filters.
            order_by: Column to sort by.
            ascending: Sort direction.
            limit: Maximum number of rows.
        """
        bind_vars: dict[str, Any] = {"@table": table}
        lines = ["FOR row IN @@table"]
        for i, (column, value) in enumerate((filters or {}).items()):
            lines.append(f"FILTER row[@f{i}] == @v{i}")
            bind_vars[f"f{i}"] = column
            bind_vars[f"v{i}"] = value
        if order_by:
            lines.append(f"SORT row[@order_by] {'ASC' if ascending else 'DESC'}")
            bind_vars["order_by"] = order_by
        if limit is not None:
            lines.append("LIMIT @limit")
            bind_vars["limit"] = limit
        lines.append("RETURN row")

        rows = self._execute("\n".join(lines), bind_vars)
        return [_strip(row) for row in rows]

    def select_one(self, table: str, column: str, value: Any) -> dict[str, Any] | None:
        rows = self.select(table, filters={column: value}, limit=1)
        return rows[0] if rows else None

    def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        try:
            result = self.db.collection(table).insert(row, return_new=True)
        except ArangoError as e:
            logger.error("Store insert failed", table=table, error=str(e))
            raise StoreError(f"Insert into '{table}' failed", detail=str(e)) from e
        logger.debug("Row inserted", table=table, key=result["_key"])
        return _strip(result["new"])

    def upsert(self, table: str, key_column: str, row: dict[str, Any]) -> dict[str, Any]:
        """
        Insert ``row`` or merge it into the row sharing ``key_column``.

        Columns absent from ``row`` are left untouched on update.
        """
        aql = (
            "UPSERT { [@key_column]: @key } "
            "INSERT @row UPDATE @row IN @@table "
            "RETURN NEW"
        )
        result = self._execute(
            aql,
            {"@table": table, "key_column": key_column, "key": row[key_column], "row": row},
        )
        return _strip(result[0])

    @contextmanager
    def transaction(self) -> Iterator["EquiCareStore"]:
        """
        Run the enclosed writes in one stream transaction.

        Commits on normal exit and aborts when the block raises.
        """
        try:
            txn_db = self.db.begin_transaction(
                read=[DOCTORS, USERS, TRANSCRIPTS],
                write=[USERS, TRANSCRIPTS],
            )
        except ArangoError as e:
            raise StoreError("Could not start transaction", detail=str(e)) from e

        try:
            yield EquiCareStore(txn_db)
        except BaseException:
            try:
                txn_db.abort_transaction()
            except ArangoError as e:
                logger.warning("Transaction abort failed", error=str(e))
            raise

        try:
            txn_db.commit_transaction()
        except ArangoError as e:
            raise StoreError("Transaction commit failed", detail=str(e)) from e

    # ------------------------------------------------------------------
    # Table helpers
    # ------------------------------------------------------------------

    def list_doctors(self) -> list[dict[str, Any]]:
        return self.select(DOCTORS, order_by="doctor_name")

    def get_doctor(self, doctor_id: str) -> dict[str, Any] | None:
        return self.select_one(DOCTORS, "doctor_id", doctor_id)

    def list_transcripts(self, doctor_id: str | None = None) -> list[dict[str, Any]]:
        filters = {"doctor_id": doctor_id} if doctor_id is not None else None
        return self.select(TRANSCRIPTS, filters=filters, order_by="date", ascending=False)

    def get_user(self, user_id: str) -> dict[str, Any] | None:
        return self.select_one(USERS, "user_id", user_id)

    def upsert_user(self, row: dict[str, Any]) -> dict[str, Any]:
        return self.upsert(USERS, "user_id", row)

    def upsert_doctor(self, row: dict[str, Any]) -> dict[str, Any]:
        return self.upsert(DOCTORS, "doctor_id", row)

    def insert_transcript(self, row: dict[str, Any]) -> dict[str, Any]:
        return self.insert(TRANSCRIPTS, row)

    def refresh_doctor_ratings(self) -> int:
        """
        Recompute ``doctors.avg_rating`` in one grouped AQL pass.

        Doctors without rated transcripts get ``null``. Returns the number
        of doctor rows written.
        """
        aql = """
        FOR doctor IN @@doctors
            LET ratings = (
                FOR t IN @@transcripts
                    FILTER t.doctor_id == doctor.doctor_id
                    FILTER IS_NUMBER(t.user_rating)
                    COLLECT AGGREGATE avg_rating = AVERAGE(t.user_rating)
                    RETURN avg_rating
            )
            UPDATE doctor WITH { avg_rating: FIRST(ratings) } IN @@doctors
            RETURN 1
        """
        result = self._execute(aql, {"@doctors": DOCTORS, "@transcripts": TRANSCRIPTS})
        return len(result)


# ============================================================================
# Connection management
# ============================================================================

def get_client() -> ArangoClient:
    """Get or create the ArangoDB client singleton."""
    global _client
    if _client is None:
        settings = get_settings()
        _client = ArangoClient(hosts=settings.arango_host)
        logger.info("ArangoDB client initialized", host=settings.arango_host)
    return _client


def get_database() -> StandardDatabase:
    """
    Get or create the database connection.

    Creates the database and its collections if they don't exist.
    """
    global _db
    if _db is None:
        settings = get_settings()
        client = get_client()

        sys_db = client.db(
            "_system",
            username=settings.arango_username,
            password=settings.arango_password,
        )

        if not sys_db.has_database(settings.arango_database):
            try:
                sys_db.create_database(settings.arango_database)
                logger.info("Created database", database=settings.arango_database)
            except DatabaseCreateError as e:
                logger.error("Failed to create database", error=str(e))
                raise

        _db = client.db(
            settings.arango_database,
            username=settings.arango_username,
            password=settings.arango_password,
        )
        logger.info("Connected to database", database=settings.arango_database)

        _init_collections(_db)

    return _db


def _init_collections(db: StandardDatabase) -> None:
    """Create the EquiCare collections and their indexes if missing."""
    for name, indexes in COLLECTIONS.items():
        if db.has_collection(name):
            continue
        try:
            collection = db.create_collection(name)
        except CollectionCreateError as e:
            logger.warning("Collection creation failed", collection=name, error=str(e))
            continue
        for index in indexes:
            collection.add_index(index)
        logger.info("Created collection", collection=name, indexes=len(indexes))


def get_store() -> EquiCareStore:
    """FastAPI dependency returning the shared store."""
    global _store
    if _store is None:
        _store = EquiCareStore(get_database())
    return _store


def close_connection() -> None:
    """Close the database connection."""
    global _client, _db, _store
    if _client is not None:
        _client.close()
        _client = None
        _db = None
        _store = None
        logger.info("Database connection closed")
