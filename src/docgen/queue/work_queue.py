"""
Producer-facing document generation queue.
"""

import logging
import socket
from typing import Optional, Union

from ..exceptions import QueueStoreError
from ..storage.base import QueueStore
from .dead_letter import DeadLetterQueue
from .models import MAX_ATTEMPTS, DocumentType, EnqueueResult, QueueItem
from .recorder import ResultRecorder
from .status import StatusQuery

logger = logging.getLogger(__name__)


class DocumentQueue:
    """
    Entry point used by business workflows to request documents and check on them.

    Also exposes the recorder operations so a background job can report its
    outcome against the queue without building its own collaborators.
    """

    def __init__(self, store: QueueStore, instance_id: Optional[str] = None,
                 max_attempts: int = MAX_ATTEMPTS):
        """
        Initialize document queue.

        Args:
            store: Queue store
            instance_id: Identifier recorded as the issuing server (defaults to host name)
            max_attempts: Retry budget
        """
        self.store = store
        self.instance_id = instance_id or socket.gethostname()
        self.max_attempts = max_attempts
        self.dead_letter_queue = DeadLetterQueue(store, max_attempts)
        self.recorder = ResultRecorder(store, self.dead_letter_queue, max_attempts)
        self.status = StatusQuery(store, max_attempts)

    def enqueue(self, insurance_ref: str, insurance_file_key: int, insurance_folder_key: int,
                insurance_file_type_code: str, client_id: int,
                document_type: Union[DocumentType, str, int],
                submitting_user: Optional[str] = None) -> EnqueueResult:
        """
        Add a document generation request.

        Args:
            insurance_ref: Business reference, e.g. ``MOT1234567``
            insurance_file_key: Business file key
            insurance_folder_key: Business folder key
            insurance_file_type_code: File type code used for template lookup
            client_id: Client identifier
            document_type: Kind of document to generate
            submitting_user: User who requested the document

        Returns:
            EnqueueResult; ``success`` is False with ``error`` set if the
            request could not be stored
        """
        try:
            item = QueueItem(
                insurance_ref=insurance_ref,
                insurance_file_key=insurance_file_key,
                insurance_folder_key=insurance_folder_key,
                insurance_file_type_code=insurance_file_type_code,
                client_id=client_id,
                document_type=DocumentType.parse(document_type),
                user=submitting_user,
                server_issued=self.instance_id
            )
        except ValueError as e:
            logger.error(f"Rejected document request for {insurance_ref}: {str(e)}")
            return EnqueueResult(success=False, error=str(e))

        try:
            item_id = self.store.insert_item(item)
        except QueueStoreError as e:
            logger.error(f"Failed to enqueue {item.document_type.name} for {insurance_ref}: {str(e)}")
            return EnqueueResult(success=False, error=str(e))

        logger.info(f"Queued {item.document_type.name} for {insurance_ref} as item {item_id}")
        return EnqueueResult(success=True, item_id=item_id)

    def has_pending_work(self, file_key: int) -> bool:
        return self.status.has_pending_work(file_key)

    def is_generated(self, file_key: int, document_type: Union[DocumentType, str, int]) -> bool:
        return self.status.is_generated(file_key, document_type)

    def record_success(self, item_id: int, elapsed, output_location: Optional[str]) -> bool:
        return self.recorder.record_success(item_id, elapsed, output_location)

    def record_failure(self, item_id: int, reason: str, fallback_output: Optional[str] = None,
                       attempts: Optional[int] = None) -> bool:
        return self.recorder.record_failure(item_id, reason, fallback_output, attempts)

    def record_handoff(self, item_id: int, background_job_id: Union[str, int],
                       document_code: Optional[str]) -> bool:
        return self.recorder.record_handoff(item_id, background_job_id, document_code)
