# =============================================================================
# masjeed_core/offline/local_store.py
# Durable Local Record Store for Offline Operations
# =============================================================================
"""
LocalStore - SQLite-backed key-value record store partitioned into collections.

Features:
- Collections are created implicitly on first write
- Records are JSON documents keyed by their ``id``
- Optional per-record expiry, purged lazily on read
- Every operation is its own transaction
"""

from __future__ import annotations
import json
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Union
import logging

from masjeed_core.errors.exceptions import StorageError
from masjeed_core.offline.models import now_ms

logger = logging.getLogger(__name__)

Record = Dict[str, Any]

MEMORY_PATH = ":memory:"


class LocalStore:
    """
    Durable store for queued requests and cached snapshots.

    Records keep their insertion order inside a collection; an upsert of an
    existing id keeps the original position.
    """

    DEFAULT_DB_PATH = Path("local_data") / "masjeed-offline.db"

    SCHEMA = """
        CREATE TABLE IF NOT EXISTS records (
            seq INTEGER PRIMARY KEY AUTOINCREMENT,
            collection TEXT NOT NULL,
            id TEXT NOT NULL,
            data_json TEXT NOT NULL,
            stored_at INTEGER NOT NULL,
            expires_at INTEGER,
            UNIQUE(collection, id)
        )
    """

    def __init__(
        self,
        db_path: Optional[Union[str, Path]] = None,
        clock: Callable[[], int] = now_ms,
    ):
        """
        Args:
            db_path: SQLite file, or ":memory:" for a throwaway store
            clock: Source of "now" in epoch milliseconds
        """
        self.db_path = str(db_path) if db_path is not None else str(self.DEFAULT_DB_PATH)
        self._clock = clock
        self._connection: Optional[sqlite3.Connection] = None

    def _get_connection(self) -> sqlite3.Connection:
        if self._connection is None:
            try:
                if self.db_path != MEMORY_PATH:
                    Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(self.db_path, check_same_thread=False)
                conn.row_factory = sqlite3.Row
                conn.execute(self.SCHEMA)
                conn.commit()
            except (sqlite3.Error, OSError) as e:
                logger.error(f"Could not open local store at {self.db_path}: {e}")
                raise StorageError(f"Could not open local store: {e}") from e
            self._connection = conn
            logger.info(f"Local store opened at: {self.db_path}")
        return self._connection

    @contextmanager
    def transaction(self, collection: str, record_id: Optional[str] = None) -> Iterator[sqlite3.Connection]:
        """Run one store operation atomically, mapping SQLite failures to StorageError."""
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            logger.error(f"Store operation failed on {collection}: {e}")
            raise StorageError(str(e), collection=collection, record_id=record_id) from e

    # =========================================================================
    # RECORD OPERATIONS
    # =========================================================================

    def put(self, collection: str, record: Record, ttl_minutes: Optional[float] = None) -> None:
        """
        Insert or replace a record by its ``id``.

        Stamps ``timestamp`` with the current time. When ``ttl_minutes`` is
        given, ``expires_at`` is set from it; otherwise an ``expires_at``
        already present on the record is kept.
        """
        if "id" not in record:
            raise StorageError("Record has no id", collection=collection)

        stored_at = self._clock()
        data = dict(record)
        data["timestamp"] = stored_at
        if ttl_minutes is not None:
            data["expires_at"] = stored_at + int(ttl_minutes * 60 * 1000)
        expires_at = data.get("expires_at")
        record_id = str(data["id"])

        try:
            data_json = json.dumps(data)
        except (TypeError, ValueError) as e:
            raise StorageError(
                f"Record is not JSON serializable: {e}",
                collection=collection,
                record_id=record_id,
            ) from e

        with self.transaction(collection, record_id) as conn:
            conn.execute(
                """
                INSERT INTO records (collection, id, data_json, stored_at, expires_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(collection, id) DO UPDATE SET
                    data_json = excluded.data_json,
                    stored_at = excluded.stored_at,
                    expires_at = excluded.expires_at
                """,
                [collection, record_id, data_json, stored_at, expires_at],
            )

    def get(self, collection: str, record_id: str) -> Optional[Record]:
        """Return a record, or None if it is missing or expired (expired ones are deleted)."""
        with self.transaction(collection, record_id) as conn:
            row = conn.execute(
                "SELECT data_json, expires_at FROM records WHERE collection = ? AND id = ?",
                [collection, str(record_id)],
            ).fetchone()

        if row is None:
            return None

        if self._is_expired(row["expires_at"]):
            logger.debug(f"Purging expired record {collection}/{record_id}")
            self.delete(collection, record_id)
            return None

        return self._decode(collection, row["data_json"])

    def get_all(self, collection: str) -> List[Record]:
        """Return all non-expired records in insertion order, purging expired ones."""
        with self.transaction(collection) as conn:
            rows = conn.execute(
                "SELECT id, data_json, expires_at FROM records WHERE collection = ? ORDER BY seq ASC",
                [collection],
            ).fetchall()

        valid = []
        expired = []
        for row in rows:
            if self._is_expired(row["expires_at"]):
                expired.append(row["id"])
            else:
                valid.append(self._decode(collection, row["data_json"]))

        for record_id in expired:
            self.delete(collection, record_id)

        return valid

    def delete(self, collection: str, record_id: str) -> None:
        """Remove a record. Missing records are ignored."""
        with self.transaction(collection, record_id) as conn:
            conn.execute(
                "DELETE FROM records WHERE collection = ? AND id = ?",
                [collection, str(record_id)],
            )

    def clear(self, collection: str) -> None:
        """Remove every record in a collection."""
        with self.transaction(collection) as conn:
            conn.execute("DELETE FROM records WHERE collection = ?", [collection])
        logger.info(f"Cleared collection: {collection}")

    # =========================================================================
    # HOUSEKEEPING
    # =========================================================================

    def count(self, collection: str) -> int:
        """Number of non-expired records in a collection."""
        return len(self.get_all(collection))

    def collections(self) -> List[str]:
        """Names of collections that currently hold records."""
        with self.transaction("*") as conn:
            rows = conn.execute(
                "SELECT DISTINCT collection FROM records ORDER BY collection"
            ).fetchall()
        return [row["collection"] for row in rows]

    def close(self) -> None:
        """Close database connection."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    def _is_expired(self, expires_at: Optional[int]) -> bool:
        return expires_at is not None and self._clock() > expires_at

    @staticmethod
    def _decode(collection: str, data_json: str) -> Record:
        try:
            return json.loads(data_json)
        except json.JSONDecodeError as e:
            raise StorageError(f"Corrupt record: {e}", collection=collection) from e
