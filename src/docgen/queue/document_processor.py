"""
Processing loop that drains claimed batches and records their outcomes.
"""

import logging
import threading
from datetime import timedelta
from typing import Any, Callable, Dict, Optional

from ..exceptions import PermanentGenerationError, QueueStoreError
from ..generation.base import DocumentGenerator, InsuranceReference
from .claims import ClaimCoordinator
from .models import GENERATION_ERROR_OUTPUT, DocumentType, QueueItem
from .recorder import ResultRecorder

logger = logging.getLogger(__name__)


class ProcessingLoop:
    """
    Claims batches of queue items for one worker instance and dispatches each
    item to the document generator until no eligible work remains.

    Items are processed sequentially. Cancellation is checked before every
    item; unfinished items stay claimed by this instance for a later run.
    """

    def __init__(self, claims: ClaimCoordinator, recorder: ResultRecorder,
                 generator: DocumentGenerator, batch_size: int = 5,
                 error_output: str = GENERATION_ERROR_OUTPUT):
        """
        Initialize the processing loop.

        Args:
            claims: Claim coordinator for the local instance
            recorder: Outcome recorder handed to the generator
            generator: Document generator
            batch_size: Maximum items claimed per cycle
            error_output: Placeholder output recorded when no template is available
        """
        self.claims = claims
        self.recorder = recorder
        self.generator = generator
        self.batch_size = batch_size
        self.error_output = error_output
        self.instance_id = claims.instance_id

        # One handler per document type; every type not listed renders from a template
        self._handlers: Dict[DocumentType, Callable[[QueueItem], None]] = {
            document_type: self._process_from_template for document_type in DocumentType
        }
        self._handlers[DocumentType.WORDING] = self._process_wording

    def run(self, cancel_event: Optional[threading.Event] = None) -> Dict[str, Any]:
        """
        Process claimed items until cancelled or a claim returns nothing.

        Args:
            cancel_event: Cooperative cancellation signal

        Returns:
            Processing statistics

        Raises:
            QueueStoreError: If the store fails; the current cycle is abandoned
        """
        stats = {
            "batches": 0,
            "items_processed": 0,
            "items_failed": 0,
            "cancelled": False
        }

        while True:
            batch = self.claims.claim_batch(self.batch_size)
            if not batch:
                logger.debug(f"No eligible work for instance {self.instance_id}")
                break

            stats["batches"] += 1
            for item in batch:
                if cancel_event is not None and cancel_event.is_set():
                    logger.info(f"Processing cancelled for instance {self.instance_id}; "
                                f"unfinished items stay claimed")
                    stats["cancelled"] = True
                    return stats

                if self._process_item(item):
                    stats["items_processed"] += 1
                else:
                    stats["items_failed"] += 1

        logger.info(
            f"Instance {self.instance_id} completed processing: "
            f"{stats['items_processed']} processed, {stats['items_failed']} failed"
        )
        return stats

    def _process_item(self, item: QueueItem) -> bool:
        """Dispatch one item. Returns False if a failure was recorded for it."""
        logger.debug(f"Processing item {item.id}: {item.document_type.name} for {item.insurance_ref}")

        try:
            self._handlers[item.document_type](item)
            return self._ensure_outcome(item)
        except QueueStoreError:
            raise
        except Exception as e:
            logger.error(
                f"Failed to generate {item.document_type.name} for {item.insurance_ref} "
                f"(item {item.id}): {type(e).__name__}: {str(e)}"
            )
            attempts = self.recorder.max_attempts if isinstance(e, PermanentGenerationError) else None
            self.recorder.record_failure(item.id, f"{type(e).__name__}: {str(e)}", attempts=attempts)
            return False

    def _process_wording(self, item: QueueItem) -> None:
        policy_type = InsuranceReference(item.insurance_ref).policy_type
        wording_code = self.generator.get_wording_code(item.insurance_file_key)
        output_location = self.generator.get_wording_path(wording_code, policy_type)

        self.recorder.record_success(item.id, timedelta(0), output_location)

    def _process_from_template(self, item: QueueItem) -> None:
        template_code = self.generator.get_document_template_code(
            item.insurance_ref, item.insurance_file_type_code, item.document_type
        )

        if not template_code:
            self.recorder.record_failure(
                item.id,
                f"No template code for {item.document_type.name} "
                f"(file type {item.insurance_file_type_code})",
                self.error_output
            )
            return

        if not self.generator.document_template_exists(template_code):
            self.recorder.record_failure(
                item.id, f"Template {template_code} does not exist", self.error_output
            )
            return

        self.generator.generate_document(item, template_code, self.recorder)

    def _ensure_outcome(self, item: QueueItem) -> bool:
        """Record a failure if the handler returned without changing the item."""
        current = self.recorder.get_item(item.id)
        if current is None:
            return True

        if current.generated or current.background_job_id is not None:
            return True

        if current.attempts != item.attempts:
            # A failure was recorded by the handler
            return False

        logger.error(f"Generator returned without recording an outcome for item {item.id}")
        self.recorder.record_failure(item.id, "Generator returned without recording an outcome")
        return False
