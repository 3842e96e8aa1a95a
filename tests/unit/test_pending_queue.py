"""Unit tests for the durable pending operation queue."""

import logging

import pytest

from shelfsync.core.exceptions import InvalidDataError, NetworkError
from shelfsync.core.models import EntityType, MutationRecord, OperationType
from shelfsync.core.pending_queue import PendingOperationQueue


class TestAppend:
    async def test_append_assigns_increasing_sequence(self, pending_queue, make_book):
        first = await pending_queue.append(MutationRecord.for_create(make_book("B1")))
        second = await pending_queue.append(MutationRecord.for_update(make_book("B1", minutes=1)))

        assert first.sequence is not None
        assert second.sequence > first.sequence
        assert await pending_queue.count() == 2

    async def test_queue_survives_a_new_queue_instance(self, db_service, pending_queue, make_book):
        await pending_queue.append(MutationRecord.for_create(make_book()))

        reopened = PendingOperationQueue(db_service)
        records = await reopened.list_pending()

        assert [record.entity_id for record in records] == ["B1"]
        assert records[0].entity() == make_book()

    async def test_exceeding_the_bound_warns_without_evicting(self, db_service, make_book, caplog):
        queue = PendingOperationQueue(db_service, max_pending=2)

        with caplog.at_level(logging.WARNING):
            for i in range(3):
                await queue.append(MutationRecord.for_create(make_book(f"B{i}")))

        assert await queue.count() == 3
        assert "above the limit" in caplog.text

    async def test_has_pending(self, pending_queue, make_book):
        await pending_queue.append(MutationRecord.for_create(make_book("B1")))

        assert await pending_queue.has_pending(EntityType.BOOK, "B1") is True
        assert await pending_queue.has_pending(EntityType.BOOK, "B2") is False
        assert await pending_queue.has_pending(EntityType.COLLECTION, "B1") is False


class TestDrain:
    async def test_drain_preserves_order_across_interleaved_entities(self, pending_queue, make_book):
        expected = []
        for step in range(3):
            for book_id in ("B1", "B2"):
                record = await pending_queue.append(
                    MutationRecord.for_update(make_book(book_id, minutes=step, current_page=step))
                )
                expected.append((record.entity_id, record.sequence))

        applied = []

        async def apply(record):
            applied.append((record.entity_id, record.sequence))

        summary = await pending_queue.drain(apply)

        assert summary.completed
        assert applied == expected
        assert [seq for entity_id, seq in applied if entity_id == "B1"] == sorted(
            seq for entity_id, seq in expected if entity_id == "B1"
        )
        assert await pending_queue.count() == 0

    async def test_drain_stops_at_first_failure(self, pending_queue, make_book):
        for i in range(5):
            await pending_queue.append(MutationRecord.for_create(make_book(f"B{i}")))

        calls = []

        async def apply(record):
            calls.append(record.entity_id)
            if record.entity_id == "B2":
                raise NetworkError("remote rejected B2", status_code=500)

        summary = await pending_queue.drain(apply)

        assert not summary.completed
        assert calls == ["B0", "B1", "B2"]
        assert [record.entity_id for record in summary.applied] == ["B0", "B1"]
        assert summary.failed_record.entity_id == "B2"
        assert isinstance(summary.error, NetworkError)
        assert summary.remaining == 3

        remaining = await pending_queue.list_pending()
        assert [record.entity_id for record in remaining] == ["B2", "B3", "B4"]

    async def test_confirmed_records_are_not_resubmitted(self, pending_queue, make_book):
        for i in range(3):
            await pending_queue.append(MutationRecord.for_create(make_book(f"B{i}")))

        async def fail_last(record):
            if record.entity_id == "B2":
                raise NetworkError("offline")

        await pending_queue.drain(fail_last)

        replayed = []

        async def apply(record):
            replayed.append(record.entity_id)

        summary = await pending_queue.drain(apply)

        assert summary.completed
        assert replayed == ["B2"]

    async def test_invalid_payload_stays_queued(self, pending_queue):
        broken = await pending_queue.append(MutationRecord(
            operation_type=OperationType.UPDATE,
            entity_type=EntityType.BOOK,
            entity_id="B1",
            owner_id="reader-1",
            payload='{"id": "B1"}',
        ))

        async def apply(record):
            record.entity()

        summary = await pending_queue.drain(apply)

        assert isinstance(summary.error, InvalidDataError)
        assert summary.error.record_sequence == broken.sequence
        assert await pending_queue.count() == 1

    async def test_records_appended_during_drain_wait_for_next_drain(self, pending_queue, make_book):
        await pending_queue.append(MutationRecord.for_create(make_book("B1")))
        seen = []

        async def apply(record):
            seen.append(record.entity_id)
            if record.entity_id == "B1":
                await pending_queue.append(MutationRecord.for_create(make_book("B2")))

        await pending_queue.drain(apply)

        assert seen == ["B1"]
        assert [record.entity_id for record in await pending_queue.list_pending()] == ["B2"]


class TestConfirmationBookkeeping:
    async def test_confirmed_delete_leaves_tombstone(self, pending_queue):
        await pending_queue.append(MutationRecord.for_delete(EntityType.BOOK, "B1", "reader-1"))

        async def apply(record):
            pass

        await pending_queue.drain(apply)

        assert await pending_queue.confirmed_deletions(EntityType.BOOK) == {"B1"}
        assert await pending_queue.confirmed_deletions(EntityType.COLLECTION) == set()

    async def test_unconfirmed_delete_leaves_no_tombstone(self, pending_queue):
        await pending_queue.append(MutationRecord.for_delete(EntityType.BOOK, "B1", "reader-1"))

        async def apply(record):
            raise NetworkError("offline")

        await pending_queue.drain(apply)

        assert await pending_queue.confirmed_deletions(EntityType.BOOK) == set()

    async def test_confirmed_create_lifts_tombstone(self, pending_queue, make_book):
        async def apply(record):
            pass

        await pending_queue.append(MutationRecord.for_delete(EntityType.BOOK, "B1", "reader-1"))
        await pending_queue.drain(apply)
        await pending_queue.append(MutationRecord.for_create(make_book("B1")))
        await pending_queue.drain(apply)

        assert await pending_queue.confirmed_deletions(EntityType.BOOK) == set()

    async def test_clear_only_removes_confirmed_records(self, pending_queue, make_book):
        for i in range(3):
            await pending_queue.append(MutationRecord.for_create(make_book(f"B{i}")))

        async def apply(record):
            if record.entity_id == "B1":
                raise NetworkError("offline")

        await pending_queue.drain(apply)
        removed = await pending_queue.clear()

        assert removed == 1
        assert [record.entity_id for record in await pending_queue.list_pending()] == ["B1", "B2"]


@pytest.mark.parametrize("operation", [OperationType.CREATE, OperationType.UPDATE])
async def test_pending_entity_ids(pending_queue, make_book, operation):
    book = make_book("B7")
    record = MutationRecord.for_create(book) if operation is OperationType.CREATE else MutationRecord.for_update(book)
    await pending_queue.append(record)

    assert await pending_queue.pending_entity_ids(EntityType.BOOK) == {"B7"}
