"""Unit tests for entity models and queued mutation records."""

import json
from datetime import datetime, timezone

import pytest

from shelfsync.core.exceptions import InvalidDataError
from shelfsync.core.models import (
    Book, BookCollection, EntityType, MutationRecord, OperationType, ReadingActivity,
    ReadingStatus, SyncErrorRecord, SyncState, entity_from_dict, parse_datetime
)


class TestDatetimeHelpers:
    def test_parse_datetime_accepts_zulu_suffix(self):
        parsed = parse_datetime("2024-03-01T12:00:00Z")
        assert parsed == datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

    def test_naive_values_are_treated_as_utc(self):
        parsed = parse_datetime(datetime(2024, 3, 1, 12, 0))
        assert parsed.tzinfo is not None
        assert parsed.utcoffset().total_seconds() == 0

    def test_empty_values_parse_to_none(self):
        assert parse_datetime(None) is None
        assert parse_datetime("") is None


class TestBook:
    def test_reading_progress_percentage(self, make_book):
        book = make_book(page_count=200, current_page=50)
        assert book.reading_progress_percentage == 25.0

        book.current_page = 500
        assert book.reading_progress_percentage == 100.0

    def test_progress_without_page_count_is_zero(self, make_book):
        assert make_book(page_count=None, current_page=10).reading_progress_percentage == 0.0

    def test_from_dict_restores_enums_and_timestamps(self, make_book):
        book = make_book(reading_status=ReadingStatus.IN_PROGRESS, shared_with_partner=True)
        restored = Book.from_dict(json.loads(book.to_json()))

        assert restored == book
        assert restored.reading_status is ReadingStatus.IN_PROGRESS

    def test_missing_title_is_invalid(self):
        with pytest.raises(InvalidDataError):
            entity_from_dict(EntityType.BOOK, {'id': 'B1', 'owner_id': 'reader-1'})

    def test_unknown_reading_status_is_invalid(self):
        with pytest.raises(InvalidDataError):
            entity_from_dict(EntityType.BOOK, {
                'id': 'B1', 'owner_id': 'reader-1', 'title': 'Dune', 'reading_status': 'skimming'
            })


class TestOtherEntities:
    def test_collection_book_count(self):
        collection = BookCollection(id="C1", owner_id="reader-1", name="Favorites", book_ids=["B1", "B2"])
        assert collection.book_count == 2

    def test_activity_requires_type(self):
        with pytest.raises(InvalidDataError):
            entity_from_dict(EntityType.ACTIVITY, {'id': 'A1', 'owner_id': 'reader-1', 'book_id': 'B1'})

    def test_activity_from_dict(self):
        activity = entity_from_dict(EntityType.ACTIVITY, {
            'id': 'A1', 'owner_id': 'reader-1', 'book_id': 'B1',
            'activity_type': 'finished_reading', 'occurred_at': '2024-03-01T12:00:00+00:00'
        })
        assert isinstance(activity, ReadingActivity)
        assert activity.book_title == ""

    def test_payload_must_be_an_object(self):
        with pytest.raises(InvalidDataError):
            entity_from_dict(EntityType.PARTNERSHIP, ["not", "a", "dict"])

    @pytest.mark.parametrize("entity_type, field_name", [
        (EntityType.BOOK, 'shared_with_partner'),
        (EntityType.BOOK, 'is_favorite'),
        (EntityType.COLLECTION, 'shared_with_partner'),
        (EntityType.PARTNERSHIP, 'shared'),
    ])
    def test_string_flags_are_invalid(self, entity_type, field_name):
        data = {
            'id': 'X1', 'owner_id': 'reader-1', 'title': 'Dune', 'name': 'Shelf',
            'partner_id': 'reader-2', field_name: "false"
        }

        with pytest.raises(InvalidDataError):
            entity_from_dict(entity_type, data)

    def test_missing_or_null_flags_default_to_false(self):
        partnership = entity_from_dict(EntityType.PARTNERSHIP, {
            'id': 'P1', 'owner_id': 'reader-1', 'partner_id': 'reader-2', 'shared': None
        })
        assert partnership.shared is False


class TestMutationRecord:
    def test_create_record_carries_snapshot(self, make_book):
        book = make_book()
        record = MutationRecord.for_create(book)

        assert record.operation_type is OperationType.CREATE
        assert record.entity_type is EntityType.BOOK
        assert record.entity() == book

    def test_delete_record_has_no_payload(self):
        record = MutationRecord.for_delete(EntityType.BOOK, "B1", "reader-1")
        assert record.payload is None
        with pytest.raises(InvalidDataError):
            record.entity()

    def test_records_are_immutable(self, make_book):
        record = MutationRecord.for_update(make_book())
        with pytest.raises(AttributeError):
            record.entity_id = "other"

    def test_undecodable_payload_reports_sequence(self):
        record = MutationRecord(
            operation_type=OperationType.UPDATE,
            entity_type=EntityType.BOOK,
            entity_id="B1",
            owner_id="reader-1",
            payload="{not json",
            sequence=7,
        )
        with pytest.raises(InvalidDataError) as exc_info:
            record.entity()
        assert exc_info.value.record_sequence == 7

    def test_payload_id_must_match_record(self, make_book):
        record = MutationRecord(
            operation_type=OperationType.UPDATE,
            entity_type=EntityType.BOOK,
            entity_id="B9",
            owner_id="reader-1",
            payload=make_book("B1").to_json(),
        )
        with pytest.raises(InvalidDataError):
            record.entity()


class TestSyncState:
    def test_recent_errors_are_bounded(self):
        state = SyncState()
        for i in range(25):
            state.record_error(SyncErrorRecord(code="NETWORK_ERROR", message=f"failure {i}"), limit=20)

        assert len(state.recent_errors) == 20
        assert state.recent_errors[0].message == "failure 5"
        assert state.recent_errors[-1].message == "failure 24"
