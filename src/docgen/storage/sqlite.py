"""
SQLite queue store.

Each thread gets its own connection. Claims run inside ``BEGIN IMMEDIATE``,
which takes the database write lock before the eligible rows are read, so
selecting and stamping ownership is one serialized step across every process
sharing the file.
"""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, List, Optional

from ..exceptions import QueueStoreError
from .base import SQLQueueStore

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS document_queue (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    insurance_ref TEXT NOT NULL,
    insurance_file_key INTEGER NOT NULL,
    insurance_folder_key INTEGER NOT NULL,
    insurance_file_type_code TEXT NOT NULL,
    client_id INTEGER NOT NULL,
    document_type INTEGER NOT NULL,
    generated INTEGER NOT NULL DEFAULT 0,
    attempts INTEGER NOT NULL DEFAULT 0 CHECK (attempts >= 0),
    owner_tag TEXT,
    background_job_id TEXT,
    created_at TEXT NOT NULL,
    generated_at TEXT,
    duration_ms INTEGER,
    document_code TEXT,
    output_location TEXT,
    user_name TEXT,
    server_issued TEXT,
    failure_reason TEXT,
    failed_at TEXT,
    dead_lettered_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_document_queue_claim
    ON document_queue (generated, attempts, created_at);

CREATE INDEX IF NOT EXISTS idx_document_queue_file_key
    ON document_queue (insurance_file_key, document_type);
"""


class SQLiteQueueStore(SQLQueueStore):
    """Queue store backed by a SQLite database file in WAL mode."""

    def __init__(self, db_path: str = "docgen_queue.db", busy_timeout: float = 30.0):
        """
        Initialize the SQLite queue store.

        Args:
            db_path: Path to SQLite database file
            busy_timeout: Seconds a connection waits for another writer's lock
        """
        self.db_path = str(db_path)
        self.busy_timeout = busy_timeout
        self._local = threading.local()
        self._connections: List[sqlite3.Connection] = []
        self._connections_lock = threading.Lock()

        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local connection."""
        conn = getattr(self._local, 'conn', None)
        if conn is not None:
            return conn

        try:
            # Autocommit mode; transactions are opened explicitly in _transaction
            conn = sqlite3.connect(
                self.db_path,
                timeout=self.busy_timeout,
                isolation_level=None,
                check_same_thread=False
            )
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
            conn.execute(f"PRAGMA busy_timeout={int(self.busy_timeout * 1000)}")
        except sqlite3.Error as e:
            raise QueueStoreError(f"Cannot open queue database {self.db_path}: {e}",
                                  operation="connect") from e

        self._local.conn = conn
        with self._connections_lock:
            self._connections.append(conn)

        logger.debug(f"Opened SQLite connection to {self.db_path} "
                     f"for thread {threading.current_thread().name}")
        return conn

    @contextmanager
    def _transaction(self, immediate: bool = False) -> Iterator[Any]:
        conn = self._get_connection()
        try:
            conn.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
            cursor = conn.cursor()
            try:
                yield cursor
            finally:
                cursor.close()
            conn.execute("COMMIT")
        except sqlite3.Error as e:
            self._rollback(conn)
            raise QueueStoreError(f"Queue database error: {e}") from e
        except BaseException:
            self._rollback(conn)
            raise

    @staticmethod
    def _rollback(conn: sqlite3.Connection) -> None:
        if conn.in_transaction:
            try:
                conn.execute("ROLLBACK")
            except sqlite3.Error as e:
                logger.warning(f"Rollback failed: {e}")

    def _inserted_id(self, cursor) -> int:
        return cursor.lastrowid

    def _sql(self, query: str) -> str:
        return query.replace("%s", "?")

    def _timestamp(self, value: Optional[datetime]) -> Optional[str]:
        if value is None:
            return None
        # Stored as UTC text so that ordering by the column is chronological
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.isoformat(timespec='microseconds')

    def initialize(self, force: bool = False) -> None:
        conn = self._get_connection()
        try:
            if force:
                logger.warning("Dropping existing queue tables...")
                conn.execute("DROP TABLE IF EXISTS document_queue")

            conn.executescript(SCHEMA_SQL)
        except sqlite3.Error as e:
            raise QueueStoreError(f"Failed to create queue schema: {e}",
                                  operation="initialize") from e

        logger.info(f"Initialized queue schema in {self.db_path}")

    def schema_exists(self) -> bool:
        with self._transaction() as cursor:
            cursor.execute(
                "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?",
                ("document_queue",)
            )
            return cursor.fetchone() is not None

    def close(self) -> None:
        """Close every connection opened by this store."""
        with self._connections_lock:
            connections, self._connections = self._connections, []

        for conn in connections:
            try:
                conn.close()
            except sqlite3.Error as e:
                logger.warning(f"Error closing SQLite connection: {e}")

        self._local = threading.local()
