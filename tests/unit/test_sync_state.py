"""Unit tests for persisted sync state."""

from datetime import datetime, timezone

from shelfsync.core.models import SyncErrorRecord, SyncState
from shelfsync.core.sync_state import SyncStateStore


class TestSyncStateStore:
    async def test_load_without_saved_state(self, state_store):
        state = await state_store.load()

        assert state.last_sync_at is None
        assert state.is_syncing is False
        assert state.recent_errors == []

    async def test_round_trip_keeps_errors_and_last_sync(self, db_service, state_store):
        synced_at = datetime(2024, 3, 1, 12, 30, tzinfo=timezone.utc)
        state = SyncState(last_sync_at=synced_at)
        state.record_error(SyncErrorRecord(code="NETWORK_ERROR", message="offline", record_sequence=4))
        await state_store.save(state)

        loaded = await SyncStateStore(db_service).load()

        assert loaded.last_sync_at == synced_at
        assert [error.code for error in loaded.recent_errors] == ["NETWORK_ERROR"]
        assert loaded.recent_errors[0].record_sequence == 4

    async def test_in_flight_flag_is_reset_on_load(self, state_store):
        await state_store.save(SyncState(is_syncing=True))

        loaded = await state_store.load()

        assert loaded.is_syncing is False

