"""
Durable pending operation queue
Ordered log of offline mutations waiting to be replayed against the remote store
"""

import logging
from enum import Enum
from typing import Awaitable, Callable, List, Set

from sqlalchemy import delete as sql_delete, func, select
from sqlalchemy.exc import SQLAlchemyError

from shelfsync.core.database import DatabaseService
from shelfsync.core.exceptions import InvalidDataError, ServiceUnavailableError
from shelfsync.core.models import (
    DrainSummary, EntityType, MutationRecord, OperationType, utc_now
)
from shelfsync.database.models import (
    DeletionTombstoneDB, PendingOperationDB, from_db_time, to_db_time
)

ApplyCallable = Callable[[MutationRecord], Awaitable[None]]


class PendingStatus(Enum):
    """Pending operation status"""
    PENDING = "pending"
    APPLIED = "applied"


class PendingOperationQueue:
    """
    FIFO queue of MutationRecords persisted in SQLite.

    Records are replayed strictly in sequence order. A record is confirmed
    (marked applied) as soon as the remote store accepts it, so it is never
    submitted twice; confirmed records are only removed by clear().
    """

    def __init__(self, db_service: DatabaseService, max_pending: int = 10000):
        self.db_service = db_service
        self.max_pending = max_pending
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @staticmethod
    def _to_db(record: MutationRecord) -> PendingOperationDB:
        return PendingOperationDB(
            operation_type=record.operation_type.value,
            entity_type=record.entity_type.value,
            entity_id=record.entity_id,
            owner_id=record.owner_id,
            payload=record.payload,
            status=PendingStatus.PENDING.value,
            created_at=to_db_time(record.created_at),
        )

    @staticmethod
    def _db_to_domain(row: PendingOperationDB) -> MutationRecord:
        return MutationRecord(
            operation_type=OperationType(row.operation_type),
            entity_type=EntityType(row.entity_type),
            entity_id=row.entity_id,
            owner_id=row.owner_id,
            payload=row.payload,
            created_at=from_db_time(row.created_at),
            sequence=row.sequence,
        )

    async def append(self, record: MutationRecord) -> MutationRecord:
        """Persist a record and return it with its assigned sequence"""
        try:
            async with self.db_service.get_session() as session:
                pending = await session.scalar(
                    select(func.count(PendingOperationDB.sequence)).where(
                        PendingOperationDB.status == PendingStatus.PENDING.value
                    )
                )
                row = self._to_db(record)
                session.add(row)
                await session.flush()
                stored = self._db_to_domain(row)
        except SQLAlchemyError as e:
            raise ServiceUnavailableError(f"Failed to append {record.operation_type.value} "
                                          f"of {record.entity_type.value} {record.entity_id}: {e}") from e

        if self.max_pending and pending + 1 > self.max_pending:
            self.logger.warning(
                f"Pending queue holds {pending + 1} records, above the limit of {self.max_pending}; "
                f"nothing is evicted"
            )

        self.logger.debug(f"Queued {stored.describe()}")
        return stored

    async def list_pending(self) -> List[MutationRecord]:
        """Unconfirmed records in replay order"""
        try:
            async with self.db_service.get_session() as session:
                result = await session.execute(
                    select(PendingOperationDB)
                    .where(PendingOperationDB.status == PendingStatus.PENDING.value)
                    .order_by(PendingOperationDB.sequence)
                )
                return [self._db_to_domain(row) for row in result.scalars().all()]
        except SQLAlchemyError as e:
            raise ServiceUnavailableError(f"Failed to read pending queue: {e}") from e

    async def count(self) -> int:
        try:
            async with self.db_service.get_session() as session:
                value = await session.scalar(
                    select(func.count(PendingOperationDB.sequence)).where(
                        PendingOperationDB.status == PendingStatus.PENDING.value
                    )
                )
                return int(value or 0)
        except SQLAlchemyError as e:
            raise ServiceUnavailableError(f"Failed to count pending queue: {e}") from e

    async def has_pending(self, entity_type: EntityType, entity_id: str) -> bool:
        try:
            async with self.db_service.get_session() as session:
                value = await session.scalar(
                    select(func.count(PendingOperationDB.sequence)).where(
                        (PendingOperationDB.entity_type == entity_type.value) &
                        (PendingOperationDB.entity_id == entity_id) &
                        (PendingOperationDB.status == PendingStatus.PENDING.value)
                    )
                )
                return bool(value)
        except SQLAlchemyError as e:
            raise ServiceUnavailableError(f"Failed to query pending queue: {e}") from e

    async def pending_entity_ids(self, entity_type: EntityType) -> Set[str]:
        """Ids of entities of one type with unconfirmed records"""
        try:
            async with self.db_service.get_session() as session:
                result = await session.execute(
                    select(PendingOperationDB.entity_id).where(
                        (PendingOperationDB.entity_type == entity_type.value) &
                        (PendingOperationDB.status == PendingStatus.PENDING.value)
                    ).distinct()
                )
                return set(result.scalars().all())
        except SQLAlchemyError as e:
            raise ServiceUnavailableError(f"Failed to query pending queue: {e}") from e

    async def confirmed_deletions(self, entity_type: EntityType) -> Set[str]:
        """Ids whose delete has been confirmed by the remote store"""
        try:
            async with self.db_service.get_session() as session:
                result = await session.execute(
                    select(DeletionTombstoneDB.entity_id).where(
                        DeletionTombstoneDB.entity_type == entity_type.value
                    )
                )
                return set(result.scalars().all())
        except SQLAlchemyError as e:
            raise ServiceUnavailableError(f"Failed to read deletion tombstones: {e}") from e

    async def _confirm(self, record: MutationRecord):
        """Mark a record applied; deletes leave a tombstone, writes lift one"""
        async with self.db_service.get_session() as session:
            row = await session.get(PendingOperationDB, record.sequence)
            if row is None:
                raise ServiceUnavailableError(f"Queued record {record.describe()} disappeared during drain")

            now = to_db_time(utc_now())
            row.status = PendingStatus.APPLIED.value
            row.applied_at = now

            tombstone = await session.get(DeletionTombstoneDB, (record.entity_type.value, record.entity_id))
            if record.operation_type == OperationType.DELETE:
                if tombstone is None:
                    session.add(DeletionTombstoneDB(
                        entity_type=record.entity_type.value,
                        entity_id=record.entity_id,
                        owner_id=record.owner_id,
                        deleted_at=now,
                    ))
                else:
                    tombstone.deleted_at = now
            elif tombstone is not None:
                await session.delete(tombstone)

    async def drain(self, apply: ApplyCallable) -> DrainSummary:
        """
        Replay pending records through `apply`, one at a time, in sequence order.

        Works over a snapshot of the records pending when the drain starts;
        records appended meanwhile wait for the next drain. Stops at the
        first failure and reports it in the returned summary. Cancellation
        propagates to the caller and leaves the current record pending.
        """
        summary = DrainSummary()
        snapshot = await self.list_pending()

        for index, record in enumerate(snapshot):
            try:
                await apply(record)
                await self._confirm(record)
            except SQLAlchemyError as e:
                summary.failed_record = record
                summary.error = ServiceUnavailableError(f"Failed to confirm {record.describe()}: {e}")
            except InvalidDataError as e:
                if e.record_sequence is None:
                    e.record_sequence = record.sequence
                summary.failed_record = record
                summary.error = e
            except Exception as e:
                summary.failed_record = record
                summary.error = e

            if summary.error is not None:
                summary.remaining = len(snapshot) - index
                self.logger.warning(f"Drain stopped at {record.describe()}: {summary.error}")
                return summary

            summary.applied.append(record)
            self.logger.debug(f"Applied {record.describe()}")

        self.logger.info(f"Drained {summary.applied_count} pending operations")
        return summary

    async def clear(self) -> int:
        """Remove confirmed records. Unconfirmed records are never removed."""
        try:
            async with self.db_service.get_session() as session:
                result = await session.execute(
                    sql_delete(PendingOperationDB).where(
                        PendingOperationDB.status == PendingStatus.APPLIED.value
                    )
                )
                removed = result.rowcount or 0
        except SQLAlchemyError as e:
            raise ServiceUnavailableError(f"Failed to clear confirmed operations: {e}") from e

        if removed:
            self.logger.debug(f"Cleared {removed} confirmed operations")
        return removed
