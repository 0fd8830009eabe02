"""
Queue store interface and the SQL implementation shared by the backends.

Statements are written with ``%s`` placeholders; backends that use a
different paramstyle rewrite them in ``_sql``.
"""

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional

from ..queue.models import DocumentType, QueueItem

logger = logging.getLogger(__name__)

QUEUE_COLUMNS = """
    id, insurance_ref, insurance_file_key, insurance_folder_key,
    insurance_file_type_code, client_id, document_type, generated, attempts,
    owner_tag, background_job_id, created_at, generated_at, duration_ms,
    document_code, output_location, user_name, server_issued,
    failure_reason, failed_at, dead_lettered_at
"""


class QueueStore(ABC):
    """
    Durable table of document queue items.

    Every mutating operation is a single guarded statement or a single
    transaction, so concurrent workers sharing one store never observe or
    produce a half-applied transition.
    """

    @abstractmethod
    def initialize(self, force: bool = False) -> None:
        """
        Create the queue schema if it does not exist.

        Args:
            force: Drop existing queue tables first (DANGEROUS!)
        """
        pass

    @abstractmethod
    def schema_exists(self) -> bool:
        """Return True if the queue table exists."""
        pass

    @abstractmethod
    def insert_item(self, item: QueueItem) -> int:
        """Persist a new item and return its assigned id."""
        pass

    @abstractmethod
    def get_item(self, item_id: int) -> Optional[QueueItem]:
        """Return the item with the given id, or None."""
        pass

    @abstractmethod
    def claim_items(self, max_items: int, instance_id: str,
                    max_attempts: int) -> List[QueueItem]:
        """
        Atomically select eligible items and stamp unowned ones with instance_id.

        Args:
            max_items: Maximum number of items to return
            instance_id: Claiming worker instance
            max_attempts: Retry budget; items at or above it are not eligible

        Returns:
            Claimed items, oldest first
        """
        pass

    @abstractmethod
    def mark_generated(self, item_id: int, duration_ms: int, output_location: Optional[str],
                       generated_at: datetime, max_attempts: int) -> bool:
        """Record success. Returns False if the item is missing or terminal."""
        pass

    @abstractmethod
    def mark_failed(self, item_id: int, reason: str, fallback_output: Optional[str],
                    failed_at: datetime, max_attempts: int,
                    attempts: Optional[int] = None) -> Optional[QueueItem]:
        """Record a failed attempt. Returns the updated item, or None if missing or terminal."""
        pass

    @abstractmethod
    def mark_handoff(self, item_id: int, background_job_id: str,
                     document_code: Optional[str], max_attempts: int) -> bool:
        """Record an asynchronous hand-off. Returns False if missing or terminal."""
        pass

    @abstractmethod
    def mark_dead_lettered(self, item_id: int, when: datetime) -> bool:
        """Stamp an exhausted item as escalated."""
        pass

    @abstractmethod
    def has_pending(self, file_key: int, max_attempts: int) -> bool:
        pass

    @abstractmethod
    def has_generated(self, file_key: int, document_type: DocumentType) -> bool:
        pass

    @abstractmethod
    def list_exhausted(self, max_attempts: int, limit: int = 100) -> List[QueueItem]:
        pass

    @abstractmethod
    def reset_exhausted(self, item_id: int, max_attempts: int) -> bool:
        pass

    @abstractmethod
    def purge_exhausted(self, max_attempts: int, older_than: datetime) -> int:
        pass

    @abstractmethod
    def release_owner(self, instance_id: str) -> int:
        pass

    @abstractmethod
    def queue_statistics(self, max_attempts: int) -> Dict[str, int]:
        pass

    @abstractmethod
    def close(self) -> None:
        pass


class SQLQueueStore(QueueStore):
    """
    QueueStore implemented with plain SQL over a DB-API driver.

    Subclasses provide the connection handling (``_transaction``), the schema,
    and the few dialect differences exposed as class attributes and hooks.
    """

    # Appended to the eligibility SELECT inside the claim transaction.
    claim_lock_clause = ""
    # Appended to the INSERT statement.
    returning_clause = ""

    @abstractmethod
    @contextmanager
    def _transaction(self, immediate: bool = False) -> Iterator[Any]:
        """
        Run a block in one transaction and yield a cursor.

        Driver errors must be re-raised as QueueStoreError.

        Args:
            immediate: Take the write lock up front (claim transactions)
        """
        pass

    @abstractmethod
    def _inserted_id(self, cursor) -> int:
        pass

    def _sql(self, query: str) -> str:
        return query

    def _timestamp(self, value: Optional[datetime]) -> Any:
        return value

    @staticmethod
    def _rows(cursor) -> List[Dict[str, Any]]:
        return [dict(row) for row in cursor.fetchall()]

    def _fetch_item(self, cursor, item_id: int) -> Optional[QueueItem]:
        cursor.execute(self._sql(f"SELECT {QUEUE_COLUMNS} FROM document_queue WHERE id = %s"),
                       (item_id,))
        row = cursor.fetchone()
        return QueueItem.from_db_row(dict(row)) if row else None

    def insert_item(self, item: QueueItem) -> int:
        created_at = item.created_at or datetime.now(timezone.utc)

        with self._transaction() as cursor:
            cursor.execute(self._sql(f"""
                INSERT INTO document_queue (
                    insurance_ref, insurance_file_key, insurance_folder_key,
                    insurance_file_type_code, client_id, document_type,
                    generated, attempts, created_at, user_name, server_issued
                ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s){self.returning_clause}
            """), (
                item.insurance_ref,
                item.insurance_file_key,
                item.insurance_folder_key,
                item.insurance_file_type_code,
                item.client_id,
                int(item.document_type),
                False,
                0,
                self._timestamp(created_at),
                item.user,
                item.server_issued
            ))
            return self._inserted_id(cursor)

    def get_item(self, item_id: int) -> Optional[QueueItem]:
        with self._transaction() as cursor:
            return self._fetch_item(cursor, item_id)

    def claim_items(self, max_items: int, instance_id: str,
                    max_attempts: int) -> List[QueueItem]:
        claimed = []

        with self._transaction(immediate=True) as cursor:
            cursor.execute(self._sql(f"""
                SELECT {QUEUE_COLUMNS}
                FROM document_queue
                WHERE generated = %s
                  AND background_job_id IS NULL
                  AND attempts < %s
                  AND (owner_tag IS NULL OR owner_tag = %s)
                ORDER BY created_at ASC, id ASC
                LIMIT %s
                {self.claim_lock_clause}
            """), (False, max_attempts, instance_id, max_items))

            for row in self._rows(cursor):
                if row['owner_tag'] is None:
                    cursor.execute(self._sql("""
                        UPDATE document_queue
                        SET owner_tag = %s
                        WHERE id = %s AND owner_tag IS NULL
                    """), (instance_id, row['id']))

                    if cursor.rowcount != 1:
                        logger.debug(f"Item {row['id']} was claimed by another instance")
                        continue
                    row['owner_tag'] = instance_id

                claimed.append(QueueItem.from_db_row(row))

        return claimed

    def mark_generated(self, item_id: int, duration_ms: int, output_location: Optional[str],
                       generated_at: datetime, max_attempts: int) -> bool:
        with self._transaction() as cursor:
            cursor.execute(self._sql("""
                UPDATE document_queue
                SET generated = %s,
                    duration_ms = %s,
                    generated_at = %s,
                    output_location = %s,
                    attempts = attempts + 1
                WHERE id = %s AND generated = %s AND attempts < %s
            """), (True, duration_ms, self._timestamp(generated_at), output_location,
                   item_id, False, max_attempts))
            return cursor.rowcount == 1

    def mark_failed(self, item_id: int, reason: str, fallback_output: Optional[str],
                    failed_at: datetime, max_attempts: int,
                    attempts: Optional[int] = None) -> Optional[QueueItem]:
        with self._transaction(immediate=True) as cursor:
            current = self._fetch_item(cursor, item_id)
            if current is None or current.generated or current.attempts >= max_attempts:
                return None

            new_attempts = current.attempts + 1
            if attempts is not None:
                new_attempts = max(new_attempts, attempts)

            exhausted = new_attempts >= max_attempts
            failed_at = self._timestamp(failed_at)

            # Owner is kept while retries remain so the same instance picks it up again.
            # A failed background job returns the item to the claimable set.
            cursor.execute(self._sql("""
                UPDATE document_queue
                SET attempts = %s,
                    owner_tag = CASE WHEN %s THEN NULL ELSE owner_tag END,
                    background_job_id = NULL,
                    failure_reason = %s,
                    output_location = COALESCE(%s, output_location),
                    failed_at = %s,
                    dead_lettered_at = CASE WHEN %s THEN %s ELSE dead_lettered_at END
                WHERE id = %s AND generated = %s AND attempts = %s
            """), (
                new_attempts,
                exhausted,
                reason,
                fallback_output,
                failed_at,
                exhausted,
                failed_at,
                item_id,
                False,
                current.attempts
            ))

            if cursor.rowcount != 1:
                return None
            return self._fetch_item(cursor, item_id)

    def mark_handoff(self, item_id: int, background_job_id: str,
                     document_code: Optional[str], max_attempts: int) -> bool:
        with self._transaction() as cursor:
            cursor.execute(self._sql("""
                UPDATE document_queue
                SET background_job_id = %s,
                    document_code = %s
                WHERE id = %s AND generated = %s AND attempts < %s
            """), (background_job_id, document_code, item_id, False, max_attempts))
            return cursor.rowcount == 1

    def mark_dead_lettered(self, item_id: int, when: datetime) -> bool:
        with self._transaction() as cursor:
            cursor.execute(self._sql("""
                UPDATE document_queue
                SET dead_lettered_at = %s
                WHERE id = %s AND generated = %s
            """), (self._timestamp(when), item_id, False))
            return cursor.rowcount == 1

    def has_pending(self, file_key: int, max_attempts: int) -> bool:
        with self._transaction() as cursor:
            cursor.execute(self._sql("""
                SELECT 1 FROM document_queue
                WHERE insurance_file_key = %s AND generated = %s AND attempts < %s
                LIMIT 1
            """), (file_key, False, max_attempts))
            return cursor.fetchone() is not None

    def has_generated(self, file_key: int, document_type: DocumentType) -> bool:
        with self._transaction() as cursor:
            cursor.execute(self._sql("""
                SELECT 1 FROM document_queue
                WHERE insurance_file_key = %s AND document_type = %s AND generated = %s
                LIMIT 1
            """), (file_key, int(document_type), True))
            return cursor.fetchone() is not None

    def list_exhausted(self, max_attempts: int, limit: int = 100) -> List[QueueItem]:
        with self._transaction() as cursor:
            cursor.execute(self._sql(f"""
                SELECT {QUEUE_COLUMNS}
                FROM document_queue
                WHERE generated = %s AND attempts >= %s
                ORDER BY failed_at DESC, id DESC
                LIMIT %s
            """), (False, max_attempts, limit))
            return [QueueItem.from_db_row(row) for row in self._rows(cursor)]

    def reset_exhausted(self, item_id: int, max_attempts: int) -> bool:
        with self._transaction() as cursor:
            cursor.execute(self._sql("""
                UPDATE document_queue
                SET attempts = 0,
                    owner_tag = NULL,
                    background_job_id = NULL,
                    failure_reason = NULL,
                    failed_at = NULL,
                    dead_lettered_at = NULL
                WHERE id = %s AND generated = %s AND attempts >= %s
            """), (item_id, False, max_attempts))
            return cursor.rowcount == 1

    def purge_exhausted(self, max_attempts: int, older_than: datetime) -> int:
        with self._transaction() as cursor:
            cursor.execute(self._sql("""
                DELETE FROM document_queue
                WHERE generated = %s AND attempts >= %s
                  AND COALESCE(dead_lettered_at, failed_at) < %s
            """), (False, max_attempts, self._timestamp(older_than)))
            return cursor.rowcount

    def release_owner(self, instance_id: str) -> int:
        with self._transaction() as cursor:
            cursor.execute(self._sql("""
                UPDATE document_queue
                SET owner_tag = NULL
                WHERE owner_tag = %s AND generated = %s
            """), (instance_id, False))
            return cursor.rowcount

    def queue_statistics(self, max_attempts: int) -> Dict[str, int]:
        with self._transaction() as cursor:
            cursor.execute(self._sql("""
                SELECT
                    COUNT(*) AS total,
                    SUM(CASE WHEN generated = %s THEN 1 ELSE 0 END) AS generated,
                    SUM(CASE WHEN generated = %s AND attempts < %s
                             AND background_job_id IS NULL THEN 1 ELSE 0 END) AS pending,
                    SUM(CASE WHEN generated = %s AND attempts < %s
                             AND background_job_id IS NOT NULL THEN 1 ELSE 0 END) AS handed_off,
                    SUM(CASE WHEN generated = %s AND attempts >= %s THEN 1 ELSE 0 END) AS exhausted,
                    SUM(CASE WHEN generated = %s AND owner_tag IS NOT NULL THEN 1 ELSE 0 END) AS claimed
                FROM document_queue
            """), (True, False, max_attempts, False, max_attempts, False, max_attempts, False))
            row = dict(cursor.fetchone())

        return {key: int(value or 0) for key, value in row.items()}
