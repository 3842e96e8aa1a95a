"""
Persisted sync state: last successful sync, in-flight flag and recent errors
"""

import json
import logging

from sqlalchemy.exc import SQLAlchemyError

from shelfsync.core.database import DatabaseService
from shelfsync.core.exceptions import ServiceUnavailableError
from shelfsync.core.models import SyncErrorRecord, SyncState, utc_now
from shelfsync.database.models import SyncStateDB, from_db_time, to_db_time

STATE_ROW_ID = 1


class SyncStateStore:
    """Reads and writes the single sync_state row"""

    def __init__(self, db_service: DatabaseService):
        self.db_service = db_service
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    async def load(self) -> SyncState:
        """
        Load the persisted state.

        is_syncing always comes back False: a flag left set by a crashed
        process must not block future cycles.
        """
        try:
            async with self.db_service.get_session() as session:
                row = await session.get(SyncStateDB, STATE_ROW_ID)
                if row is None:
                    return SyncState()

                if row.is_syncing:
                    self.logger.warning("Sync flag was left set by a previous process; resetting")

                try:
                    errors = [SyncErrorRecord.from_dict(item) for item in json.loads(row.recent_errors or '[]')]
                except (TypeError, ValueError) as e:
                    self.logger.warning(f"Discarding unreadable recent_errors: {e}")
                    errors = []

                return SyncState(
                    last_sync_at=from_db_time(row.last_sync_at),
                    is_syncing=False,
                    recent_errors=errors,
                )
        except SQLAlchemyError as e:
            raise ServiceUnavailableError(f"Failed to load sync state: {e}") from e

    async def save(self, state: SyncState):
        try:
            async with self.db_service.get_session() as session:
                row = await session.get(SyncStateDB, STATE_ROW_ID)
                if row is None:
                    row = SyncStateDB(id=STATE_ROW_ID)
                    session.add(row)

                row.last_sync_at = to_db_time(state.last_sync_at)
                row.is_syncing = state.is_syncing
                row.recent_errors = json.dumps([error.to_dict() for error in state.recent_errors])
                row.updated_at = to_db_time(utc_now())
        except SQLAlchemyError as e:
            raise ServiceUnavailableError(f"Failed to save sync state: {e}") from e
