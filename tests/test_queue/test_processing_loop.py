"""
Tests for the processing loop.
"""

import threading
from unittest.mock import Mock

import pytest

from docgen.exceptions import GenerationError, PermanentGenerationError, QueueStoreError
from docgen.queue.claims import ClaimCoordinator
from docgen.queue.document_processor import ProcessingLoop
from docgen.queue.models import GENERATION_ERROR_OUTPUT, MAX_ATTEMPTS, DocumentType, QueueItem
from docgen.queue.recorder import ResultRecorder


@pytest.fixture
def loop(coordinator, recorder, generator):
    return ProcessingLoop(coordinator, recorder, generator, batch_size=3)


class TestDispatch:
    """Test the per document type code paths."""

    def test_wording_resolved_without_template(self, store, loop, generator, make_item):
        item_id = make_item(insurance_ref="mot-0042/01", document_type=DocumentType.WORDING)

        stats = loop.run()

        item = store.get_item(item_id)
        assert item.generated is True
        assert item.output_location == "Wording/MOT/PDS2024.pdf"
        assert item.duration_ms == 0
        assert item.attempts == 1
        assert generator.generated == []
        assert stats["items_processed"] == 1

    def test_template_document_generated(self, store, loop, generator, make_item):
        item_id = make_item(document_type=DocumentType.POLICY_SCHEDULE)

        loop.run()

        item = store.get_item(item_id)
        assert item.generated is True
        assert item.output_location == f"out/{item_id}-SCHED01.pdf"
        assert item.duration_ms == 1500
        assert generator.generated == [item_id]

    def test_missing_template_code_records_fallback(self, store, loop, generator, make_item):
        del generator.template_codes[DocumentType.ENDORSEMENT]
        item_id = make_item(document_type=DocumentType.ENDORSEMENT)

        stats = loop.run()

        item = store.get_item(item_id)
        assert item.generated is False
        assert item.attempts == MAX_ATTEMPTS
        assert item.output_location == GENERATION_ERROR_OUTPUT
        assert "No template code" in item.failure_reason
        assert generator.generated == []
        assert stats["items_failed"] == MAX_ATTEMPTS

    def test_absent_template_artifact_records_fallback(self, store, coordinator, recorder,
                                                       generator, make_item):
        generator.existing_templates.discard("INV01")
        item_id = make_item(document_type=DocumentType.TAX_INVOICE)
        loop = ProcessingLoop(coordinator, recorder, generator, error_output="Wording/Error.pdf")

        loop.run()

        item = store.get_item(item_id)
        assert item.output_location == "Wording/Error.pdf"
        assert item.failure_reason == "Template INV01 does not exist"
        assert item.is_exhausted

    def test_handoff_leaves_item_with_background_job(self, store, loop, generator, make_item):
        item_id = make_item()
        generator.behaviour[item_id] = "handoff"

        loop.run()

        item = store.get_item(item_id)
        assert item.background_job_id == f"job-{item_id}"
        assert item.generated is False
        assert item.attempts == 0
        assert generator.generated == [item_id]


class TestFailureHandling:
    """Test that every failure is recorded and contained."""

    def test_one_failing_item_does_not_abort_batch(self, store, loop, generator, make_item):
        failing = make_item()
        succeeding = make_item()
        generator.behaviour[failing] = GenerationError("renderer crashed")

        stats = loop.run()

        assert store.get_item(succeeding).generated is True
        failed = store.get_item(failing)
        assert failed.attempts == MAX_ATTEMPTS
        assert "renderer crashed" in failed.failure_reason
        assert stats["items_processed"] == 1
        assert stats["items_failed"] == MAX_ATTEMPTS

    def test_transient_failure_retried_in_next_batch(self, store, loop, generator, make_item):
        item_id = make_item()
        calls = []

        def flaky(item):
            calls.append(item.id)
            if len(calls) == 1:
                raise GenerationError("timeout")

        generator.on_generate = flaky

        loop.run()

        item = store.get_item(item_id)
        assert item.generated is True
        assert item.attempts == 2
        assert calls == [item_id, item_id]

    def test_unexpected_exception_is_recorded(self, store, loop, generator, make_item):
        item_id = make_item()
        generator.behaviour[item_id] = KeyError("client")

        loop.run()

        item = store.get_item(item_id)
        assert item.attempts == MAX_ATTEMPTS
        assert item.failure_reason.startswith("KeyError")

    def test_permanent_failure_exhausts_immediately(self, store, loop, generator, make_item):
        item_id = make_item()
        generator.behaviour[item_id] = PermanentGenerationError("template is corrupt")

        stats = loop.run()

        item = store.get_item(item_id)
        assert item.attempts == MAX_ATTEMPTS
        assert item.dead_lettered_at is not None
        assert stats["items_failed"] == 1

    def test_wording_lookup_failure_is_recorded(self, store, loop, generator, make_item):
        generator.wording_code = None
        item_id = make_item(document_type=DocumentType.WORDING)

        loop.run()

        item = store.get_item(item_id)
        assert item.attempts == MAX_ATTEMPTS
        assert "No wording" in item.failure_reason

    def test_invalid_reference_is_recorded(self, store, loop, make_item):
        item_id = make_item(insurance_ref="12345", document_type=DocumentType.WORDING)

        loop.run()

        assert store.get_item(item_id).is_exhausted

    def test_generator_without_outcome_counts_as_failure(self, store, loop, generator, make_item):
        item_id = make_item()
        generator.behaviour[item_id] = "silent"

        loop.run()

        item = store.get_item(item_id)
        assert item.attempts == MAX_ATTEMPTS
        assert item.failure_reason == "Generator returned without recording an outcome"
        assert generator.generated == [item_id] * MAX_ATTEMPTS

    def test_store_error_propagates(self, store, loop, generator, make_item):
        make_item()
        generator.on_generate = Mock(side_effect=QueueStoreError("connection lost"))

        with pytest.raises(QueueStoreError):
            loop.run()

    def test_claim_error_propagates(self, recorder, generator):
        claims = Mock(spec=ClaimCoordinator)
        claims.instance_id = "W1"
        claims.claim_batch.side_effect = QueueStoreError("database is locked")
        loop = ProcessingLoop(claims, recorder, generator)

        with pytest.raises(QueueStoreError):
            loop.run()

    def test_outcome_checked_through_recorder(self, generator):
        item = QueueItem(id=5, insurance_ref="HOM1", insurance_file_key=100,
                         document_type=DocumentType.WORDING)
        claims = Mock(spec=ClaimCoordinator)
        claims.instance_id = "W1"
        claims.claim_batch.side_effect = [[item], []]
        recorder = Mock(spec=ResultRecorder)
        recorder.get_item.return_value = item
        loop = ProcessingLoop(claims, recorder, generator)

        stats = loop.run()

        recorder.get_item.assert_called_once_with(5)
        recorder.record_failure.assert_called_once_with(
            5, "Generator returned without recording an outcome")
        assert stats["items_failed"] == 1


class TestLoopControl:
    """Test batching and cancellation."""

    def test_drains_all_batches(self, store, loop, make_item):
        ids = [make_item() for _ in range(7)]

        stats = loop.run()

        assert stats["batches"] == 3
        assert stats["items_processed"] == 7
        assert all(store.get_item(item_id).generated for item_id in ids)

    def test_empty_queue(self, loop):
        stats = loop.run()

        assert stats == {"batches": 0, "items_processed": 0, "items_failed": 0, "cancelled": False}

    def test_items_of_other_instances_untouched(self, store, loop, make_item):
        foreign = make_item()
        ClaimCoordinator(store, "W2").claim_batch(1)
        own = make_item()

        loop.run()

        assert store.get_item(own).generated is True
        item = store.get_item(foreign)
        assert item.generated is False
        assert item.owner_tag == "W2"

    def test_cancel_before_run(self, store, loop, generator, make_item):
        item_id = make_item()
        cancel_event = threading.Event()
        cancel_event.set()

        stats = loop.run(cancel_event)

        assert stats["cancelled"] is True
        assert generator.generated == []
        item = store.get_item(item_id)
        assert item.attempts == 0
        assert item.owner_tag == "W1"

    def test_cancel_mid_batch_leaves_rest_claimed(self, store, loop, generator, make_item):
        first = make_item()
        second = make_item()
        cancel_event = threading.Event()
        generator.on_generate = lambda item: cancel_event.set()

        stats = loop.run(cancel_event)

        assert stats["cancelled"] is True
        assert store.get_item(first).generated is True
        rest = store.get_item(second)
        assert rest.generated is False
        assert rest.attempts == 0
        assert rest.owner_tag == "W1"
