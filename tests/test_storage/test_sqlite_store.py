"""
Tests for the SQLite queue store.
"""

import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from docgen.exceptions import QueueStoreError
from docgen.queue.claims import ClaimCoordinator
from docgen.queue.models import MAX_ATTEMPTS, DocumentType, QueueItem
from docgen.storage.sqlite import SQLiteQueueStore


class TestSchema:

    def test_schema_exists_after_initialize(self, db_path):
        store = SQLiteQueueStore(db_path)
        try:
            assert store.schema_exists() is False
            store.initialize()
            assert store.schema_exists() is True
        finally:
            store.close()

    def test_initialize_is_idempotent(self, store, make_item):
        item_id = make_item()

        store.initialize()

        assert store.get_item(item_id) is not None

    def test_force_initialize_drops_items(self, store, make_item):
        item_id = make_item()

        store.initialize(force=True)

        assert store.get_item(item_id) is None

    def test_wal_mode(self, store, db_path):
        store.schema_exists()

        conn = sqlite3.connect(db_path)
        try:
            mode = conn.execute("PRAGMA journal_mode").fetchone()[0]
        finally:
            conn.close()

        assert mode.lower() == "wal"

    def test_creates_parent_directory(self, tmp_path):
        store = SQLiteQueueStore(str(tmp_path / "nested" / "dir" / "queue.db"))
        try:
            store.initialize()
            assert (tmp_path / "nested" / "dir" / "queue.db").exists()
        finally:
            store.close()


class TestItems:

    def test_insert_and_get(self, store):
        created = datetime(2024, 3, 1, 12, 30, 15, 123456, tzinfo=timezone.utc)
        item_id = store.insert_item(QueueItem(
            insurance_ref="MOT7654321",
            insurance_file_key=11,
            insurance_folder_key=110,
            insurance_file_type_code="MOT",
            client_id=5,
            document_type=DocumentType.ENDORSEMENT,
            user="broker",
            server_issued="web-02",
            created_at=created
        ))

        item = store.get_item(item_id)
        assert item.id == item_id
        assert item.document_type == DocumentType.ENDORSEMENT
        assert item.created_at == created
        assert item.user == "broker"
        assert item.server_issued == "web-02"
        assert item.generated is False
        assert item.attempts == 0

    def test_insert_ignores_supplied_state(self, store):
        item_id = store.insert_item(QueueItem(
            insurance_ref="MOT1", generated=True, attempts=2, owner_tag="W9"
        ))

        item = store.get_item(item_id)
        assert item.generated is False
        assert item.attempts == 0
        assert item.owner_tag is None

    def test_timestamps_stored_in_utc(self, store, db_path):
        local = timezone(timedelta(hours=10))
        item_id = store.insert_item(QueueItem(
            insurance_ref="MOT1", created_at=datetime(2024, 1, 1, 10, 0, tzinfo=local)
        ))

        conn = sqlite3.connect(db_path)
        try:
            raw = conn.execute("SELECT created_at FROM document_queue WHERE id = ?",
                               (item_id,)).fetchone()[0]
        finally:
            conn.close()

        assert raw == "2024-01-01T00:00:00.000000+00:00"
        assert store.get_item(item_id).created_at == datetime(2024, 1, 1, tzinfo=timezone.utc)

    def test_get_missing_item(self, store):
        assert store.get_item(12345) is None

    def test_to_dict(self, store, make_item):
        item = store.get_item(make_item(document_type=DocumentType.WORDING))

        data = item.to_dict()

        assert data['document_type'] == "WORDING"
        assert data['created_at'].startswith("2024-01-01T09:01:00")
        assert data['generated_at'] is None


class TestMutations:

    def test_mark_failed_returns_updated_item(self, store, make_item):
        item_id = make_item()
        now = datetime.now(timezone.utc)

        item = store.mark_failed(item_id, "boom", "fallback.pdf", now, MAX_ATTEMPTS)

        assert item.attempts == 1
        assert item.failure_reason == "boom"
        assert item.output_location == "fallback.pdf"

    def test_mark_failed_keeps_previous_output_without_fallback(self, store, make_item):
        item_id = make_item()
        now = datetime.now(timezone.utc)
        store.mark_failed(item_id, "first", "fallback.pdf", now, MAX_ATTEMPTS)

        item = store.mark_failed(item_id, "second", None, now, MAX_ATTEMPTS)

        assert item.output_location == "fallback.pdf"
        assert item.failure_reason == "second"

    def test_mark_generated_guarded(self, store, make_item):
        item_id = make_item()
        now = datetime.now(timezone.utc)

        assert store.mark_generated(item_id, 10, "a.pdf", now, MAX_ATTEMPTS) is True
        assert store.mark_generated(item_id, 20, "b.pdf", now, MAX_ATTEMPTS) is False
        assert store.get_item(item_id).output_location == "a.pdf"

    def test_release_owner(self, store, make_item):
        ids = [make_item() for _ in range(3)]
        ClaimCoordinator(store, "dead-host").claim_batch(2)
        ClaimCoordinator(store, "live-host").claim_batch(1)

        assert store.release_owner("dead-host") == 2

        assert store.get_item(ids[0]).owner_tag is None
        assert store.get_item(ids[1]).owner_tag is None
        assert store.get_item(ids[2]).owner_tag == "live-host"

    def test_queue_statistics(self, store, make_item):
        now = datetime.now(timezone.utc)
        generated = make_item()
        handed_off = make_item()
        exhausted = make_item()
        make_item()
        store.mark_generated(generated, 10, "a.pdf", now, MAX_ATTEMPTS)
        store.mark_handoff(handed_off, "job-1", "SCHED01", MAX_ATTEMPTS)
        store.mark_failed(exhausted, "fatal", None, now, MAX_ATTEMPTS, attempts=MAX_ATTEMPTS)

        stats = store.queue_statistics(MAX_ATTEMPTS)

        assert stats == {
            'total': 4,
            'generated': 1,
            'pending': 1,
            'handed_off': 1,
            'exhausted': 1,
            'claimed': 0
        }

    def test_queue_statistics_empty(self, store):
        stats = store.queue_statistics(MAX_ATTEMPTS)

        assert stats['total'] == 0
        assert stats['pending'] == 0


class TestErrors:

    def test_sql_errors_wrapped(self, db_path):
        store = SQLiteQueueStore(db_path)
        try:
            with pytest.raises(QueueStoreError):
                store.get_item(1)
        finally:
            store.close()

    def test_transaction_rolled_back_on_error(self, store, make_item):
        item_id = make_item()

        with pytest.raises(RuntimeError):
            with store._transaction() as cursor:
                cursor.execute("UPDATE document_queue SET attempts = 2 WHERE id = ?", (item_id,))
                raise RuntimeError("abort")

        assert store.get_item(item_id).attempts == 0

    def test_store_usable_after_close(self, store, make_item):
        item_id = make_item()

        store.close()

        assert store.get_item(item_id) is not None
