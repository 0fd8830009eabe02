"""
Dead letter handling for queue items that exhausted their retries.

Exhausted items are never deleted by the processing loop. They are stamped,
reported, and stay queryable until an operator retries or purges them.
"""

import logging
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List

from ..exceptions import ItemNotFoundError
from ..storage.base import QueueStore
from .models import MAX_ATTEMPTS, QueueItem

logger = logging.getLogger(__name__)

AlertHandler = Callable[[QueueItem], None]


class DeadLetterQueue:
    """Manages escalation and operator handling of exhausted queue items."""

    def __init__(self, store: QueueStore, max_attempts: int = MAX_ATTEMPTS):
        """
        Initialize dead letter queue manager.

        Args:
            store: Queue store
            max_attempts: Retry budget; items at or above it are dead letters
        """
        self.store = store
        self.max_attempts = max_attempts
        self.alert_handlers: List[AlertHandler] = []

    def add_alert_handler(self, handler: AlertHandler) -> None:
        """Register a callable invoked with every newly exhausted item."""
        self.alert_handlers.append(handler)

    def escalate(self, item: QueueItem) -> None:
        """
        Stamp an exhausted item if needed and notify the alert handlers.

        Args:
            item: The item, as persisted after its final failed attempt
        """
        if item.dead_lettered_at is None:
            self.store.mark_dead_lettered(item.id, datetime.now(timezone.utc))

        logger.error(
            f"Document {item.document_type.name} for {item.insurance_ref} "
            f"(item {item.id}, file {item.insurance_file_key}) exhausted "
            f"{item.attempts} attempts. Reason: {item.failure_reason}"
        )

        for handler in self.alert_handlers:
            try:
                handler(item)
            except Exception as e:
                logger.error(f"Dead letter alert handler {handler!r} failed for item {item.id}: {e}")

    def list_items(self, limit: int = 100) -> List[QueueItem]:
        """
        Get exhausted items, most recently failed first.

        Args:
            limit: Maximum number of items to return
        """
        items = self.store.list_exhausted(self.max_attempts, limit)
        logger.debug(f"Retrieved {len(items)} dead letter items")
        return items

    def retry(self, item_id: int) -> bool:
        """
        Return an exhausted item to the queue with a fresh retry budget.

        Args:
            item_id: Queue item id

        Returns:
            True if the item was reset, False if it is not exhausted

        Raises:
            ItemNotFoundError: If no such item exists
        """
        if self.store.reset_exhausted(item_id, self.max_attempts):
            logger.info(f"Moved dead letter item {item_id} back to the queue")
            return True

        if self.store.get_item(item_id) is None:
            raise ItemNotFoundError(item_id)

        logger.warning(f"Item {item_id} is not a dead letter item")
        return False

    def retry_all(self, limit: int = 1000) -> int:
        """Retry every exhausted item. Returns the number reset."""
        retried = 0
        for item in self.list_items(limit):
            if self.store.reset_exhausted(item.id, self.max_attempts):
                retried += 1

        logger.info(f"Moved {retried} dead letter items back to the queue")
        return retried

    def purge(self, older_than_days: int = 30) -> int:
        """
        Delete exhausted items to prevent unbounded growth.

        Args:
            older_than_days: Remove items dead-lettered before this many days ago

        Returns:
            Number of items purged
        """
        cutoff = datetime.now(timezone.utc) - timedelta(days=older_than_days)
        purged = self.store.purge_exhausted(self.max_attempts, cutoff)

        if purged:
            logger.info(f"Purged {purged} dead letter items older than {older_than_days} days")
        else:
            logger.debug(f"No dead letter items older than {older_than_days} days to purge")
        return purged

    def statistics(self, sample_size: int = 1000) -> Dict[str, Any]:
        """
        Summarize the dead letter queue.

        Args:
            sample_size: Number of most recent items used for the reason breakdown
        """
        items = self.list_items(sample_size)
        reasons = Counter(item.failure_reason or "Unknown" for item in items)
        by_type = Counter(item.document_type.name for item in items)
        failed_times = [item.failed_at for item in items if item.failed_at]

        return {
            'total_dead_letters': self.store.queue_statistics(self.max_attempts)['exhausted'],
            'failure_reasons': dict(reasons.most_common(10)),
            'document_types': dict(by_type),
            'oldest_failure': min(failed_times).isoformat() if failed_times else None,
            'newest_failure': max(failed_times).isoformat() if failed_times else None
        }
