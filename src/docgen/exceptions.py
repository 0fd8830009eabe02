"""
Exception types shared across the document generation queue.
"""

from typing import Optional


class DocgenError(Exception):
    """Base class for all document generation queue errors."""
    pass


class QueueStoreError(DocgenError):
    """Raised when the backing store cannot be reached or a statement fails."""

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(message)
        self.operation = operation


class ItemNotFoundError(DocgenError):
    """Raised when an operator command names a queue item that does not exist."""

    def __init__(self, item_id: int):
        super().__init__(f"Queue item {item_id} not found")
        self.item_id = item_id


class GenerationError(DocgenError):
    """Raised by a generator for a failure that may succeed on retry."""
    pass


class PermanentGenerationError(GenerationError):
    """Raised by a generator for a failure that retrying cannot fix."""
    pass


class ConfigurationError(DocgenError):
    """Raised when configuration is invalid or incomplete."""
    pass
