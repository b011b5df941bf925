"""Durable local storage for vault documents and activity records."""

from __future__ import annotations

import json
import sqlite3
from pathlib import Path
from typing import Any, Callable, Generic, Mapping, Sequence, TypeVar

from tenderpilot.errors import StoreIOError, StoreUnavailable
from tenderpilot.metrics.observability import get_logger
from tenderpilot.models import ActivityRecord, Category, VaultDocument

SCHEMA_VERSION = 3
MEMORY_PATH = ":memory:"

# Each entry creates one collection with its secondary index. Statements are
# idempotent so an upgrade only adds what an older database is missing.
_SCHEMA: Mapping[str, Sequence[str]] = {
    "vault": (
        """
        CREATE TABLE IF NOT EXISTS vault (
            seq INTEGER PRIMARY KEY AUTOINCREMENT,
            id TEXT NOT NULL UNIQUE,
            category TEXT NOT NULL,
            payload TEXT NOT NULL
        )
        """,
        "CREATE INDEX IF NOT EXISTS vault_category ON vault (category)",
    ),
    "activity": (
        """
        CREATE TABLE IF NOT EXISTS activity (
            seq INTEGER PRIMARY KEY AUTOINCREMENT,
            id TEXT NOT NULL UNIQUE,
            date TEXT NOT NULL,
            payload TEXT NOT NULL
        )
        """,
        "CREATE INDEX IF NOT EXISTS activity_date ON activity (date)",
    ),
}

T = TypeVar("T")


class LocalStore:
    """Single handle over the SQLite database holding both collections.

    Construct one per process and pass it to the components that need it.
    ``open`` is idempotent; every collection call fails with
    ``StoreUnavailable`` until it has been called.
    """

    _logger = get_logger("store")

    def __init__(self, path: str | Path = MEMORY_PATH, *, schema_version: int = SCHEMA_VERSION) -> None:
        self._path = str(path)
        self._schema_version = schema_version
        self._connection: sqlite3.Connection | None = None
        self.vault = VaultCollection(self)
        self.activity = ActivityCollection(self)

    @property
    def is_open(self) -> bool:
        return self._connection is not None

    def open(self) -> "LocalStore":
        if self._connection is not None:
            return self
        self._logger.info("store.open", path=self._path, schema_version=self._schema_version)
        try:
            if self._path != MEMORY_PATH:
                Path(self._path).parent.mkdir(parents=True, exist_ok=True)
            connection = sqlite3.connect(self._path, check_same_thread=False)
        except (OSError, sqlite3.Error) as exc:
            raise StoreIOError(f"Could not open local store at {self._path}: {exc}") from exc
        try:
            self._upgrade(connection)
        except sqlite3.Error as exc:
            connection.close()
            raise StoreIOError(f"Could not upgrade local store at {self._path}: {exc}") from exc
        self._connection = connection
        return self

    def close(self) -> None:
        if self._connection is None:
            return
        self._connection.close()
        self._connection = None
        self._logger.info("store.closed", path=self._path)

    def __enter__(self) -> "LocalStore":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _upgrade(self, connection: sqlite3.Connection) -> None:
        current = int(connection.execute("PRAGMA user_version").fetchone()[0])
        if current >= self._schema_version:
            return
        self._logger.info("store.upgrade", from_version=current, to_version=self._schema_version)
        with connection:
            for name, statements in _SCHEMA.items():
                for statement in statements:
                    connection.execute(statement)
                self._logger.debug("store.collection_ready", collection=name)
            # PRAGMA does not accept bound parameters
            connection.execute(f"PRAGMA user_version = {int(self._schema_version)}")

    def schema_version(self) -> int:
        return int(self._read(lambda conn: conn.execute("PRAGMA user_version").fetchone()[0]))

    def _read(self, operation: Callable[[sqlite3.Connection], T]) -> T:
        connection = self._require_connection()
        try:
            return operation(connection)
        except sqlite3.Error as exc:
            raise StoreIOError(f"Local store read failed: {exc}") from exc

    def _write(self, operation: Callable[[sqlite3.Connection], T]) -> T:
        connection = self._require_connection()
        try:
            with connection:
                return operation(connection)
        except sqlite3.Error as exc:
            raise StoreIOError(f"Local store write failed: {exc}") from exc

    def _require_connection(self) -> sqlite3.Connection:
        if self._connection is None:
            raise StoreUnavailable("Local store is not initialised.")
        return self._connection


class _Collection(Generic[T]):
    """Key-value collection stored as JSON payloads with one indexed column."""

    table: str = ""
    index_column: str = ""

    def __init__(self, store: LocalStore) -> None:
        self._store = store
        self._logger = get_logger("store")

    def put(self, record: T) -> None:
        key = self._key(record)
        payload = json.dumps(self._serialize(record))
        index_value = self._index_value(record)
        # Upsert keeps the original seq so a replaced record stays in place.
        sql = (
            f"INSERT INTO {self.table} (id, {self.index_column}, payload) VALUES (?, ?, ?) "
            f"ON CONFLICT(id) DO UPDATE SET {self.index_column} = excluded.{self.index_column}, "
            "payload = excluded.payload"
        )
        self._store._write(lambda conn: conn.execute(sql, (key, index_value, payload)))
        self._logger.info("store.put", collection=self.table, id=key)

    def get(self, record_id: str) -> T | None:
        sql = f"SELECT payload FROM {self.table} WHERE id = ?"
        row = self._store._read(lambda conn: conn.execute(sql, (record_id,)).fetchone())
        return self._deserialize(json.loads(row[0])) if row else None

    def get_all(self) -> list[T]:
        sql = f"SELECT payload FROM {self.table} ORDER BY seq ASC"
        rows = self._store._read(lambda conn: conn.execute(sql).fetchall())
        return [self._deserialize(json.loads(row[0])) for row in rows]

    def delete(self, record_id: str) -> None:
        sql = f"DELETE FROM {self.table} WHERE id = ?"
        self._store._write(lambda conn: conn.execute(sql, (record_id,)))
        self._logger.info("store.delete", collection=self.table, id=record_id)

    def clear(self) -> None:
        sql = f"DELETE FROM {self.table}"
        self._store._write(lambda conn: conn.execute(sql))
        self._logger.info("store.clear", collection=self.table)

    def count(self) -> int:
        sql = f"SELECT COUNT(*) FROM {self.table}"
        return int(self._store._read(lambda conn: conn.execute(sql).fetchone()[0]))

    def _key(self, record: T) -> str:
        raise NotImplementedError

    def _index_value(self, record: T) -> str:
        raise NotImplementedError

    def _serialize(self, record: T) -> Mapping[str, Any]:
        raise NotImplementedError

    def _deserialize(self, payload: Mapping[str, Any]) -> T:
        raise NotImplementedError


class VaultCollection(_Collection[VaultDocument]):
    """Vault documents keyed by id, indexed by category; listed in insertion order."""

    table = "vault"
    index_column = "category"

    def get_all(self, *, category: Category | None = None) -> list[VaultDocument]:
        if category is None:
            return super().get_all()
        sql = "SELECT payload FROM vault WHERE category = ? ORDER BY seq ASC"
        rows = self._store._read(lambda conn: conn.execute(sql, (category.value,)).fetchall())
        return [VaultDocument.from_dict(json.loads(row[0])) for row in rows]

    def _key(self, record: VaultDocument) -> str:
        return record.id

    def _index_value(self, record: VaultDocument) -> str:
        return record.category.value

    def _serialize(self, record: VaultDocument) -> Mapping[str, Any]:
        return record.to_dict()

    def _deserialize(self, payload: Mapping[str, Any]) -> VaultDocument:
        return VaultDocument.from_dict(payload)


class ActivityCollection(_Collection[ActivityRecord]):
    """Activity records keyed by id, indexed by date; listed most recent first."""

    table = "activity"
    index_column = "date"

    def get_all(self) -> list[ActivityRecord]:
        sql = "SELECT payload FROM activity ORDER BY seq DESC"
        rows = self._store._read(lambda conn: conn.execute(sql).fetchall())
        return [ActivityRecord.from_dict(json.loads(row[0])) for row in rows]

    def _key(self, record: ActivityRecord) -> str:
        return record.id

    def _index_value(self, record: ActivityRecord) -> str:
        return record.date

    def _serialize(self, record: ActivityRecord) -> Mapping[str, Any]:
        return record.to_dict()

    def _deserialize(self, payload: Mapping[str, Any]) -> ActivityRecord:
        return ActivityRecord.from_dict(payload)
