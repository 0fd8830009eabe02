"""
Tests for read-only status checks.
"""

import pytest

from docgen.queue.models import DocumentType
from docgen.queue.status import StatusQuery


@pytest.fixture
def status(store):
    return StatusQuery(store)


class TestStatusQuery:

    def test_unknown_file(self, status):
        assert status.has_pending_work(404) is False
        assert status.is_generated(404, DocumentType.WORDING) is False

    def test_new_item_is_pending(self, status, make_item):
        make_item(file_key=1)

        assert status.has_pending_work(1) is True
        assert status.has_pending_work(2) is False

    def test_generated_is_per_document_type(self, status, recorder, make_item):
        item_id = make_item(file_key=1, document_type=DocumentType.TAX_INVOICE)
        make_item(file_key=1, document_type=DocumentType.ENDORSEMENT)

        recorder.record_success(item_id, 10, "invoice.pdf")

        assert status.is_generated(1, DocumentType.TAX_INVOICE) is True
        assert status.is_generated(1, DocumentType.ENDORSEMENT) is False
        assert status.has_pending_work(1) is True

    @pytest.mark.parametrize("document_type", ["TAX_INVOICE", "tax-invoice", 3, "3"])
    def test_document_type_by_name_or_value(self, status, recorder, make_item, document_type):
        item_id = make_item(file_key=1, document_type=DocumentType.TAX_INVOICE)
        recorder.record_success(item_id, 10, "invoice.pdf")

        assert status.is_generated(1, document_type) is True

    def test_unknown_document_type(self, status):
        with pytest.raises(ValueError):
            status.is_generated(1, "brochure")

    def test_reads_do_not_mutate(self, store, status, make_item):
        item_id = make_item(file_key=1)
        before = store.get_item(item_id)

        status.has_pending_work(1)
        status.is_generated(1, DocumentType.POLICY_SCHEDULE)

        assert store.get_item(item_id) == before
