"""
Claiming of pending queue items by a worker instance.
"""

import logging
from typing import List, Optional

from ..storage.base import QueueStore
from .models import MAX_ATTEMPTS, QueueItem

logger = logging.getLogger(__name__)


class ClaimCoordinator:
    """
    Selects batches of eligible items and pins them to one worker instance.

    An item is eligible when it is not generated, has not been handed off to a
    background job, still has attempts left, and is either unowned or already
    owned by the requesting instance. Once pinned, an item stays with its
    claimant until it succeeds or exhausts its retry budget.
    """

    def __init__(self, store: QueueStore, instance_id: str,
                 max_attempts: int = MAX_ATTEMPTS):
        """
        Initialize claim coordinator.

        Args:
            store: Queue store shared by all workers
            instance_id: Identifier of the local worker instance
            max_attempts: Retry budget
        """
        self.store = store
        self.instance_id = instance_id
        self.max_attempts = max_attempts

    def claim_batch(self, max_items: int, instance_id: Optional[str] = None) -> List[QueueItem]:
        """
        Claim up to max_items eligible items, oldest first.

        Includes items this instance already owns from an earlier partial run.
        Does not touch attempts or generated.

        Args:
            max_items: Maximum batch size
            instance_id: Claimant; defaults to this coordinator's instance

        Returns:
            The claimed batch, possibly empty

        Raises:
            ValueError: If max_items is less than 1
            QueueStoreError: If the store is unavailable
        """
        if max_items < 1:
            raise ValueError(f"max_items must be at least 1, got {max_items}")

        owner = instance_id or self.instance_id
        batch = self.store.claim_items(max_items, owner, self.max_attempts)

        if batch:
            logger.debug(f"Instance {owner} claimed {len(batch)} item(s): "
                         f"{[item.id for item in batch]}")
        return batch
