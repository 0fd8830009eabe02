"""
Persistent document generation queue shared by concurrent worker instances.
"""

from .config import Config
from .queue.models import MAX_ATTEMPTS, DocumentType, EnqueueResult, QueueItem
from .queue.work_queue import DocumentQueue

__version__ = "0.1.0"

__all__ = ['Config', 'DocumentQueue', 'DocumentType', 'EnqueueResult', 'QueueItem', 'MAX_ATTEMPTS']
