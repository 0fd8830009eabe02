"""
Document generation work queue: claiming, processing, outcome recording and
dead letter handling.

Components live in their own modules, e.g. ``docgen.queue.work_queue`` for
the producer-facing DocumentQueue and ``docgen.queue.document_processor`` for
the ProcessingLoop.
"""

from .models import MAX_ATTEMPTS, GENERATION_ERROR_OUTPUT, DocumentType, QueueItem, EnqueueResult

__all__ = ['MAX_ATTEMPTS', 'GENERATION_ERROR_OUTPUT', 'DocumentType', 'QueueItem', 'EnqueueResult']
