"""
Recording of processing outcomes against queue items.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

from ..storage.base import QueueStore
from .dead_letter import DeadLetterQueue
from .models import MAX_ATTEMPTS, QueueItem

logger = logging.getLogger(__name__)


def _to_milliseconds(elapsed: Union[timedelta, float, int]) -> int:
    if isinstance(elapsed, timedelta):
        return int(elapsed.total_seconds() * 1000)
    return int(elapsed)


class ResultRecorder:
    """
    Transitions queue items to generated, failed or handed off.

    Calls against a missing or already terminal item are logged and ignored;
    they return False rather than raising.
    """

    def __init__(self, store: QueueStore, dead_letter_queue: Optional[DeadLetterQueue] = None,
                 max_attempts: int = MAX_ATTEMPTS):
        """
        Initialize result recorder.

        Args:
            store: Queue store
            dead_letter_queue: Escalation target for items that exhaust their retries
            max_attempts: Retry budget
        """
        self.store = store
        self.dead_letter_queue = dead_letter_queue
        self.max_attempts = max_attempts

    def record_success(self, item_id: int, elapsed: Union[timedelta, float, int],
                       output_location: Optional[str]) -> bool:
        """
        Mark an item as generated.

        Args:
            item_id: Queue item id
            elapsed: Processing time as a timedelta or in milliseconds
            output_location: Where the generated document was written

        Returns:
            True if the item was updated
        """
        duration_ms = _to_milliseconds(elapsed)
        updated = self.store.mark_generated(
            item_id, duration_ms, output_location,
            datetime.now(timezone.utc), self.max_attempts
        )

        if updated:
            logger.debug(f"Item {item_id} generated in {duration_ms}ms - {output_location}")
        else:
            self._log_ignored("success", item_id)
        return updated

    def record_failure(self, item_id: int, reason: str, fallback_output: Optional[str] = None,
                       attempts: Optional[int] = None) -> bool:
        """
        Record a failed attempt.

        The attempt counter is incremented, or raised to ``attempts`` when given
        (it is never lowered). The owner is kept while retries remain and
        cleared once the item is exhausted, at which point it is escalated to
        the dead letter queue.

        Args:
            item_id: Queue item id
            reason: Failure description persisted on the item
            fallback_output: Placeholder output to record, if any
            attempts: Explicit attempt count, e.g. max_attempts for a permanent failure

        Returns:
            True if the item was updated
        """
        item = self.store.mark_failed(
            item_id, reason, fallback_output,
            datetime.now(timezone.utc), self.max_attempts, attempts
        )

        if item is None:
            self._log_ignored("failure", item_id)
            return False

        logger.info(f"Item {item_id} failed attempt {item.attempts}/{self.max_attempts}: {reason}")

        if item.attempts >= self.max_attempts and self.dead_letter_queue is not None:
            self.dead_letter_queue.escalate(item)
        return True

    def record_handoff(self, item_id: int, background_job_id: Union[str, int],
                       document_code: Optional[str]) -> bool:
        """
        Record that generation continues in an external background job.

        The eventual outcome is recorded later by whoever owns that job.

        Args:
            item_id: Queue item id
            background_job_id: Correlation id of the background job
            document_code: Template code the job renders

        Returns:
            True if the item was updated
        """
        updated = self.store.mark_handoff(item_id, str(background_job_id), document_code,
                                          self.max_attempts)
        if updated:
            logger.debug(f"Item {item_id} handed off to background job {background_job_id}")
        else:
            self._log_ignored("hand-off", item_id)
        return updated

    def get_item(self, item_id: int) -> Optional[QueueItem]:
        """Return the current state of an item, or None if it does not exist."""
        return self.store.get_item(item_id)

    def _log_ignored(self, outcome: str, item_id: int) -> None:
        item = self.get_item(item_id)
        if item is None:
            logger.warning(f"Ignoring {outcome} for item {item_id}: item not found")
        else:
            state = "generated" if item.generated else "exhausted"
            logger.warning(f"Ignoring {outcome} for item {item_id}: item already {state}")
