"""
PostgreSQL queue store.

Claims lock the selected rows with ``FOR UPDATE SKIP LOCKED`` so that
concurrent workers never pick the same unowned row, and the ownership stamp
is additionally guarded by ``owner_tag IS NULL``.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

import psycopg2
from psycopg2.extras import RealDictCursor

from ..exceptions import QueueStoreError
from .base import SQLQueueStore

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS document_queue (
    id BIGSERIAL PRIMARY KEY,
    insurance_ref VARCHAR(100) NOT NULL,
    insurance_file_key INTEGER NOT NULL,
    insurance_folder_key INTEGER NOT NULL,
    insurance_file_type_code VARCHAR(20) NOT NULL,
    client_id INTEGER NOT NULL,
    document_type INTEGER NOT NULL,
    generated BOOLEAN NOT NULL DEFAULT FALSE,
    attempts INTEGER NOT NULL DEFAULT 0 CHECK (attempts >= 0),
    owner_tag VARCHAR(255),
    background_job_id VARCHAR(255),
    created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
    generated_at TIMESTAMPTZ,
    duration_ms INTEGER,
    document_code VARCHAR(100),
    output_location TEXT,
    user_name VARCHAR(255),
    server_issued VARCHAR(255),
    failure_reason TEXT,
    failed_at TIMESTAMPTZ,
    dead_lettered_at TIMESTAMPTZ
);

CREATE INDEX IF NOT EXISTS idx_document_queue_claim
    ON document_queue (created_at, id)
    WHERE generated = FALSE AND background_job_id IS NULL;

CREATE INDEX IF NOT EXISTS idx_document_queue_file_key
    ON document_queue (insurance_file_key, document_type);
"""


class PostgreSQLQueueStore(SQLQueueStore):
    """Queue store backed by a PostgreSQL table."""

    claim_lock_clause = "FOR UPDATE SKIP LOCKED"
    returning_clause = " RETURNING id"

    def __init__(self, conn_params: Dict[str, Any]):
        """
        Initialize the PostgreSQL queue store.

        Args:
            conn_params: psycopg2 connection parameters (host, port, database/dbname,
                         user, password, ...)
        """
        self.conn_params = dict(conn_params)

        # Handle dbname vs database parameter
        if 'database' in self.conn_params and 'dbname' not in self.conn_params:
            self.conn_params['dbname'] = self.conn_params.pop('database')

        self._local = threading.local()
        self._connections: List[Any] = []
        self._connections_lock = threading.Lock()

    def _get_connection(self):
        """Get thread-local connection, reconnecting if the previous one broke."""
        conn = getattr(self._local, 'conn', None)
        if conn is not None and not conn.closed:
            return conn

        try:
            conn = psycopg2.connect(cursor_factory=RealDictCursor, **self.conn_params)
            conn.autocommit = False
        except psycopg2.Error as e:
            host = self.conn_params.get('host', 'localhost')
            raise QueueStoreError(f"Cannot connect to PostgreSQL at {host}: {e}",
                                  operation="connect") from e

        self._local.conn = conn
        with self._connections_lock:
            self._connections.append(conn)
        return conn

    @contextmanager
    def _transaction(self, immediate: bool = False) -> Iterator[Any]:
        conn = self._get_connection()
        try:
            with conn.cursor() as cursor:
                yield cursor
            conn.commit()
        except psycopg2.Error as e:
            self._rollback(conn)
            raise QueueStoreError(f"Queue database error: {e}") from e
        except BaseException:
            self._rollback(conn)
            raise

    def _rollback(self, conn) -> None:
        if conn.closed:
            self._local.conn = None
            return
        try:
            conn.rollback()
        except psycopg2.Error as e:
            logger.warning(f"Rollback failed, dropping connection: {e}")
            self._local.conn = None

    def _inserted_id(self, cursor) -> int:
        return cursor.fetchone()['id']

    def initialize(self, force: bool = False) -> None:
        with self._transaction() as cursor:
            if force:
                logger.warning("Dropping existing queue tables...")
                cursor.execute("DROP TABLE IF EXISTS document_queue CASCADE")
            cursor.execute(SCHEMA_SQL)

        logger.info("Initialized queue schema in PostgreSQL")

    def schema_exists(self) -> bool:
        with self._transaction() as cursor:
            cursor.execute("""
                SELECT EXISTS (
                    SELECT FROM information_schema.tables
                    WHERE table_name = %s
                ) AS present
            """, ("document_queue",))
            row: Optional[Dict[str, Any]] = cursor.fetchone()
            return bool(row and row['present'])

    def close(self) -> None:
        with self._connections_lock:
            connections, self._connections = self._connections, []

        for conn in connections:
            try:
                conn.close()
            except psycopg2.Error as e:
                logger.warning(f"Error closing PostgreSQL connection: {e}")

        self._local = threading.local()
