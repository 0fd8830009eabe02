"""
Shared fixtures for the document generation queue tests.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

import pytest

from docgen.exceptions import GenerationError
from docgen.generation.base import DocumentGenerator
from docgen.queue.claims import ClaimCoordinator
from docgen.queue.dead_letter import DeadLetterQueue
from docgen.queue.models import DocumentType, QueueItem
from docgen.queue.recorder import ResultRecorder
from docgen.storage.sqlite import SQLiteQueueStore


BASE_TIME = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)


class FakeGenerator(DocumentGenerator):
    """
    Generator whose behaviour is scripted per test.

    ``behaviour`` maps an item id to one of ``"success"``, ``"handoff"``,
    ``"silent"`` (returns without recording anything) or an exception
    instance to raise. Unlisted items succeed.
    """

    def __init__(self, options: Optional[Dict[str, Any]] = None):
        super().__init__(options)
        self.template_codes: Dict[DocumentType, str] = {
            DocumentType.POLICY_SCHEDULE: "SCHED01",
            DocumentType.CERTIFICATE_OF_CURRENCY: "COC01",
            DocumentType.TAX_INVOICE: "INV01",
            DocumentType.ENDORSEMENT: "END01"
        }
        self.existing_templates = set(self.template_codes.values())
        self.wording_code = "PDS2024"
        self.behaviour: Dict[int, Any] = {}
        self.generated: List[int] = []
        self.on_generate: Optional[Callable[[QueueItem], None]] = None

    def get_document_template_code(self, insurance_ref, insurance_file_type_code, document_type):
        return self.template_codes.get(document_type)

    def document_template_exists(self, template_code):
        return template_code in self.existing_templates

    def get_wording_code(self, insurance_file_key):
        if self.wording_code is None:
            raise GenerationError(f"No wording for file {insurance_file_key}")
        return self.wording_code

    def get_wording_path(self, wording_code, policy_type):
        return f"Wording/{policy_type}/{wording_code}.pdf"

    def generate_document(self, item, template_code, recorder):
        if self.on_generate is not None:
            self.on_generate(item)

        action = self.behaviour.get(item.id, "success")
        if isinstance(action, Exception):
            raise action

        self.generated.append(item.id)
        if action == "success":
            recorder.record_success(item.id, 1500, f"out/{item.id}-{template_code}.pdf")
        elif action == "handoff":
            recorder.record_handoff(item.id, f"job-{item.id}", template_code)


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "queue.db")


@pytest.fixture
def store(db_path):
    """Initialized SQLite queue store in a temporary directory."""
    queue_store = SQLiteQueueStore(db_path, busy_timeout=10.0)
    queue_store.initialize()
    yield queue_store
    queue_store.close()


@pytest.fixture
def make_item(store):
    """Insert queue items with strictly increasing creation times."""
    counter = {"n": 0}

    def _make_item(insurance_ref: str = "MOT1000001", file_key: int = 100,
                   document_type: DocumentType = DocumentType.POLICY_SCHEDULE,
                   file_type_code: str = "MOT", created_at: Optional[datetime] = None) -> int:
        counter["n"] += 1
        item = QueueItem(
            insurance_ref=insurance_ref,
            insurance_file_key=file_key,
            insurance_folder_key=file_key * 10,
            insurance_file_type_code=file_type_code,
            client_id=42,
            document_type=document_type,
            user="underwriter",
            created_at=created_at or BASE_TIME + timedelta(minutes=counter["n"])
        )
        return store.insert_item(item)

    return _make_item


@pytest.fixture
def dead_letter_queue(store):
    return DeadLetterQueue(store)


@pytest.fixture
def recorder(store, dead_letter_queue):
    return ResultRecorder(store, dead_letter_queue)


@pytest.fixture
def coordinator(store):
    return ClaimCoordinator(store, "W1")


@pytest.fixture
def generator():
    return FakeGenerator()
