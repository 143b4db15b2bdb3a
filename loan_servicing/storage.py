"""
Storage Backend Module

Document-store style storage interface with in-memory (testing) and SQLite
(persistence) implementations. Records are JSON documents keyed by id; all
monetary values are stored as Decimal strings and dates as ISO strings.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any, Sequence, Union
from decimal import Decimal
from datetime import datetime, date, timezone
from enum import Enum
import copy
import sqlite3
import json
import threading
from dataclasses import dataclass, asdict
from pathlib import Path
from contextlib import contextmanager


def _json_default(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def _encode(value: Any) -> Any:
    """Recursively convert a value into JSON-compatible primitives"""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _encode(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_encode(v) for v in value]
    return value


@dataclass
class StorageRecord:
    """Base class for all stored records"""
    id: str
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-compatible dictionary for storage"""
        return _encode(asdict(self))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StorageRecord':
        """Create instance from dictionary"""
        data = dict(data)
        if 'created_at' in data and isinstance(data['created_at'], str):
            data['created_at'] = datetime.fromisoformat(data['created_at'])
        if 'updated_at' in data and isinstance(data['updated_at'], str):
            data['updated_at'] = datetime.fromisoformat(data['updated_at'])
        return cls(**data)


def matches_filters(record: Dict[str, Any], filters: Dict[str, Any]) -> bool:
    """
    Check a document against equality filters.

    A list, tuple or set filter value matches when the field is a member.
    """
    for key, expected in filters.items():
        if key not in record:
            return False
        actual = record[key]
        if isinstance(expected, (list, tuple, set, frozenset)):
            if actual not in [_encode(v) for v in expected]:
                return False
        elif actual != _encode(expected):
            return False
    return True


def sort_records(records: List[Dict[str, Any]], order_by: Optional[Sequence[str]]) -> List[Dict[str, Any]]:
    """
    Sort documents by field names; a leading "-" sorts that field descending.

    Missing values sort last in ascending order.
    """
    if not order_by:
        return records
    result = list(records)
    # Stable sorts applied from the least significant key
    for key in reversed(list(order_by)):
        descending = key.startswith("-")
        field_name = key[1:] if descending else key
        result.sort(
            key=lambda r: (r.get(field_name) is None, r.get(field_name) if r.get(field_name) is not None else 0),
            reverse=descending
        )
    return result


class StorageInterface(ABC):
    """Abstract interface for storage backends"""

    @abstractmethod
    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Insert or replace a record"""
        pass

    @abstractmethod
    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record from storage"""
        pass

    @abstractmethod
    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table"""
        pass

    @abstractmethod
    def delete(self, table: str, record_id: str) -> bool:
        """Delete a record from storage"""
        pass

    @abstractmethod
    def find(self, table: str, filters: Dict[str, Any],
             order_by: Optional[Sequence[str]] = None) -> List[Dict[str, Any]]:
        """Find records matching filters, optionally sorted"""
        pass

    @abstractmethod
    def count(self, table: str) -> int:
        """Count records in table"""
        pass

    @abstractmethod
    def clear_table(self, table: str) -> None:
        """Clear all records from a table"""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close storage connection"""
        pass

    def exists(self, table: str, record_id: str) -> bool:
        """Check if a record exists"""
        return self.load(table, record_id) is not None

    def find_one(self, table: str, filters: Dict[str, Any],
                 order_by: Optional[Sequence[str]] = None) -> Optional[Dict[str, Any]]:
        """Return the first record matching filters, or None"""
        results = self.find(table, filters, order_by)
        return results[0] if results else None

    def save_many(self, table: str, records: List[Dict[str, Any]]) -> None:
        """Insert several records; each must carry an "id" key"""
        for record in records:
            self.save(table, record["id"], record)

    def update(self, table: str, record_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Apply field changes to a record and return the updated document"""
        current = self.load(table, record_id)
        if current is None:
            return None
        current.update(_encode(changes))
        self.save(table, record_id, current)
        return current

    def delete_many(self, table: str, filters: Dict[str, Any]) -> int:
        """Delete every record matching filters, returning the count removed"""
        deleted = 0
        for record in self.find(table, filters):
            if self.delete(table, record["id"]):
                deleted += 1
        return deleted

    def begin_transaction(self) -> None:
        """Start a database transaction (default no-op)"""
        pass

    def commit(self) -> None:
        """Commit current transaction (default no-op)"""
        pass

    def rollback(self) -> None:
        """Rollback current transaction (default no-op)"""
        pass

    @contextmanager
    def atomic(self):
        """Context manager for atomic operations; nested blocks join the outer one"""
        self.begin_transaction()
        try:
            yield
        except BaseException:
            self.rollback()
            raise
        else:
            self.commit()


class InMemoryStorage(StorageInterface):
    """
    In-memory storage implementation for testing.

    Transactions snapshot the whole data set and hold the storage lock until
    they finish, so rollback restores exactly the pre-transaction state.
    """

    def __init__(self):
        self._data: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.RLock()
        self._depth = 0
        self._snapshot: Optional[Dict[str, Dict[str, Dict[str, Any]]]] = None
        self._rollback_only = False

    def _ensure_table(self, table: str) -> None:
        if table not in self._data:
            self._data[table] = {}

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        with self._lock:
            self._ensure_table(table)
            # Round-trip through JSON to copy and to match persisted types
            self._data[table][record_id] = json.loads(json.dumps(data, default=_json_default))

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            self._ensure_table(table)
            record = self._data[table].get(record_id)
            if record is not None:
                return copy.deepcopy(record)
            return None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        with self._lock:
            self._ensure_table(table)
            return [copy.deepcopy(record) for record in self._data[table].values()]

    def delete(self, table: str, record_id: str) -> bool:
        with self._lock:
            self._ensure_table(table)
            if record_id in self._data[table]:
                del self._data[table][record_id]
                return True
            return False

    def exists(self, table: str, record_id: str) -> bool:
        with self._lock:
            self._ensure_table(table)
            return record_id in self._data[table]

    def find(self, table: str, filters: Dict[str, Any],
             order_by: Optional[Sequence[str]] = None) -> List[Dict[str, Any]]:
        with self._lock:
            self._ensure_table(table)
            results = [
                copy.deepcopy(record)
                for record in self._data[table].values()
                if matches_filters(record, filters)
            ]
            return sort_records(results, order_by)

    def count(self, table: str) -> int:
        with self._lock:
            self._ensure_table(table)
            return len(self._data[table])

    def clear_table(self, table: str) -> None:
        with self._lock:
            self._data[table] = {}

    def begin_transaction(self) -> None:
        self._lock.acquire()
        if self._depth == 0:
            self._snapshot = copy.deepcopy(self._data)
            self._rollback_only = False
        self._depth += 1

    def commit(self) -> None:
        try:
            self._depth -= 1
            if self._depth == 0:
                if self._rollback_only:
                    self._data = self._snapshot
                self._snapshot = None
                self._rollback_only = False
        finally:
            self._lock.release()

    def rollback(self) -> None:
        try:
            self._depth -= 1
            if self._depth == 0:
                self._data = self._snapshot
                self._snapshot = None
                self._rollback_only = False
            else:
                self._rollback_only = True
        finally:
            self._lock.release()

    def close(self) -> None:
        """Close storage (no-op for in-memory)"""
        pass


class SQLiteStorage(StorageInterface):
    """SQLite storage implementation for persistence"""

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        # Autocommit mode; transactions are opened explicitly with BEGIN
        self._connection = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level=None)
        self._connection.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._depth = 0
        self._rollback_only = False
        self._known_tables = set()

        # Enable WAL mode for better concurrent access
        if self.db_path != ":memory:":
            with self._lock:
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")

    def _ensure_table(self, table: str) -> None:
        """Ensure table exists with proper schema"""
        if table in self._known_tables:
            return
        with self._lock:
            self._connection.execute(f"""
                CREATE TABLE IF NOT EXISTS {table} (
                    id TEXT PRIMARY KEY,
                    data TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            self._connection.execute(f"""
                CREATE INDEX IF NOT EXISTS idx_{table}_created_at
                ON {table}(created_at)
            """)
            self._known_tables.add(table)

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        with self._lock:
            self._ensure_table(table)

            now = datetime.now(timezone.utc).isoformat()
            data_json = json.dumps(data, default=_json_default)

            self._connection.execute(f"""
                INSERT OR REPLACE INTO {table} (id, data, created_at, updated_at)
                VALUES (?, ?,
                    COALESCE((SELECT created_at FROM {table} WHERE id = ?), ?),
                    ?)
            """, (record_id, data_json, record_id, now, now))

    def save_many(self, table: str, records: List[Dict[str, Any]]) -> None:
        with self._lock:
            self._ensure_table(table)
            now = datetime.now(timezone.utc).isoformat()
            self._connection.executemany(f"""
                INSERT OR REPLACE INTO {table} (id, data, created_at, updated_at)
                VALUES (?, ?, ?, ?)
            """, [
                (record["id"], json.dumps(record, default=_json_default), now, now)
                for record in records
            ])

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT data FROM {table} WHERE id = ?
            """, (record_id,))
            row = cursor.fetchone()
            if row:
                return json.loads(row['data'])
            return None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT data FROM {table} ORDER BY created_at, rowid
            """)
            return [json.loads(row['data']) for row in cursor.fetchall()]

    def delete(self, table: str, record_id: str) -> bool:
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                DELETE FROM {table} WHERE id = ?
            """, (record_id,))
            return cursor.rowcount > 0

    def exists(self, table: str, record_id: str) -> bool:
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT 1 FROM {table} WHERE id = ? LIMIT 1
            """, (record_id,))
            return cursor.fetchone() is not None

    def find(self, table: str, filters: Dict[str, Any],
             order_by: Optional[Sequence[str]] = None) -> List[Dict[str, Any]]:
        """Find records matching filters (JSON key matching in Python)"""
        with self._lock:
            results = [
                record for record in self.load_all(table)
                if matches_filters(record, filters)
            ]
            return sort_records(results, order_by)

    def count(self, table: str) -> int:
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT COUNT(*) as count FROM {table}
            """)
            return cursor.fetchone()['count']

    def clear_table(self, table: str) -> None:
        with self._lock:
            self._ensure_table(table)
            self._connection.execute(f"DELETE FROM {table}")

    def begin_transaction(self) -> None:
        self._lock.acquire()
        if self._depth == 0:
            self._connection.execute("BEGIN IMMEDIATE")
            self._rollback_only = False
        self._depth += 1

    def commit(self) -> None:
        try:
            self._depth -= 1
            if self._depth == 0:
                if self._rollback_only:
                    self._connection.execute("ROLLBACK")
                    self._known_tables.clear()
                else:
                    self._connection.execute("COMMIT")
                self._rollback_only = False
        finally:
            self._lock.release()

    def rollback(self) -> None:
        try:
            self._depth -= 1
            if self._depth == 0:
                self._connection.execute("ROLLBACK")
                self._rollback_only = False
                # Tables created inside the rolled back transaction are gone
                self._known_tables.clear()
            else:
                self._rollback_only = True
        finally:
            self._lock.release()

    def close(self) -> None:
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None


def create_storage(backend: str = "sqlite", database_path: str = "loan_servicing.db") -> StorageInterface:
    """Build a storage backend from configuration values"""
    if backend == "memory":
        return InMemoryStorage()
    if backend == "sqlite":
        return SQLiteStorage(database_path)
    raise ValueError(f"Unsupported storage backend: {backend}")
