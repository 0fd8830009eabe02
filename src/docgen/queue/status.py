"""
Read-only status checks used by producers outside the queue.
"""

from typing import Union

from ..storage.base import QueueStore
from .models import MAX_ATTEMPTS, DocumentType


class StatusQuery:
    """Answers membership questions about a business file without mutating anything."""

    def __init__(self, store: QueueStore, max_attempts: int = MAX_ATTEMPTS):
        self.store = store
        self.max_attempts = max_attempts

    def has_pending_work(self, file_key: int) -> bool:
        """
        Return True if any document for the file is still waiting to be generated.

        Exhausted items do not count as pending.
        """
        return self.store.has_pending(file_key, self.max_attempts)

    def is_generated(self, file_key: int, document_type: Union[DocumentType, str, int]) -> bool:
        """Return True if a document of this type has been generated for the file."""
        return self.store.has_generated(file_key, DocumentType.parse(document_type))
