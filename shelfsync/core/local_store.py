"""
LocalStore capability and its SQLite implementation.

The engine only performs whole-entity upserts and deletes against the local
replica, never partial field updates.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import delete as sql_delete, select
from sqlalchemy.exc import SQLAlchemyError

from shelfsync.core.database import DatabaseService
from shelfsync.core.exceptions import InvalidDataError, ServiceUnavailableError
from shelfsync.core.models import EntityType, SyncEntity, entity_from_dict, utc_now
from shelfsync.database.models import EntityRecordDB, from_db_time, to_db_time

EntityKey = Tuple[EntityType, str]


class LocalStore(ABC):
    """Durable local CRUD for synchronized entities"""

    @abstractmethod
    async def upsert(self, entity: SyncEntity) -> None:
        pass

    @abstractmethod
    async def get(self, entity_type: EntityType, entity_id: str) -> Optional[SyncEntity]:
        pass

    @abstractmethod
    async def fetch_all(self, entity_type: EntityType, owner_id: str) -> List[SyncEntity]:
        pass

    @abstractmethod
    async def delete(self, entity_type: EntityType, entity_id: str) -> None:
        """Delete an entity; deleting an absent entity is a no-op"""
        pass

    async def apply_batch(self, upserts: Iterable[SyncEntity], deletes: Iterable[EntityKey]) -> None:
        """
        Apply a set of reconciled writes.

        Implementations backed by a transactional store should override this
        to make the batch atomic.
        """
        for entity in upserts:
            await self.upsert(entity)
        for entity_type, entity_id in deletes:
            await self.delete(entity_type, entity_id)


class SqlLocalStore(LocalStore):
    """LocalStore persisting entity snapshots as JSON rows in SQLite"""

    def __init__(self, db_service: DatabaseService):
        self.db_service = db_service
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @staticmethod
    def _apply_upsert(existing: Optional[EntityRecordDB], entity: SyncEntity) -> EntityRecordDB:
        row = existing or EntityRecordDB(entity_type=entity.entity_type.value, id=entity.id)
        row.owner_id = entity.owner_id
        row.payload = entity.to_json()
        row.last_modified_at = to_db_time(entity.last_modified_at)
        row.updated_at = to_db_time(utc_now())
        return row

    @staticmethod
    def _to_domain(row: EntityRecordDB) -> SyncEntity:
        try:
            data = json.loads(row.payload)
        except ValueError as e:
            raise InvalidDataError(f"Stored {row.entity_type} {row.id} is not valid JSON: {e}") from e
        entity = entity_from_dict(EntityType(row.entity_type), data)
        if entity.last_modified_at is None and row.last_modified_at is not None:
            entity.last_modified_at = from_db_time(row.last_modified_at)
        return entity

    async def upsert(self, entity: SyncEntity) -> None:
        try:
            async with self.db_service.get_session() as session:
                existing = await session.get(EntityRecordDB, (entity.entity_type.value, entity.id))
                session.add(self._apply_upsert(existing, entity))
        except SQLAlchemyError as e:
            raise ServiceUnavailableError(f"Local upsert of {entity.entity_type.value} {entity.id} failed: {e}") from e

    async def get(self, entity_type: EntityType, entity_id: str) -> Optional[SyncEntity]:
        try:
            async with self.db_service.get_session() as session:
                row = await session.get(EntityRecordDB, (entity_type.value, entity_id))
                return self._to_domain(row) if row else None
        except SQLAlchemyError as e:
            raise ServiceUnavailableError(f"Local read of {entity_type.value} {entity_id} failed: {e}") from e

    async def fetch_all(self, entity_type: EntityType, owner_id: str) -> List[SyncEntity]:
        try:
            async with self.db_service.get_session() as session:
                result = await session.execute(
                    select(EntityRecordDB).where(
                        (EntityRecordDB.entity_type == entity_type.value) &
                        (EntityRecordDB.owner_id == owner_id)
                    ).order_by(EntityRecordDB.id)
                )
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            raise ServiceUnavailableError(f"Local fetch of {entity_type.value} entities failed: {e}") from e

        return [self._to_domain(row) for row in rows]

    async def delete(self, entity_type: EntityType, entity_id: str) -> None:
        try:
            async with self.db_service.get_session() as session:
                await session.execute(
                    sql_delete(EntityRecordDB).where(
                        (EntityRecordDB.entity_type == entity_type.value) &
                        (EntityRecordDB.id == entity_id)
                    )
                )
        except SQLAlchemyError as e:
            raise ServiceUnavailableError(f"Local delete of {entity_type.value} {entity_id} failed: {e}") from e

    async def apply_batch(self, upserts: Iterable[SyncEntity], deletes: Iterable[EntityKey]) -> None:
        """Apply all writes in a single transaction"""
        upserts = list(upserts)
        deletes = list(deletes)
        try:
            async with self.db_service.get_session() as session:
                for entity in upserts:
                    existing = await session.get(EntityRecordDB, (entity.entity_type.value, entity.id))
                    session.add(self._apply_upsert(existing, entity))

                for entity_type, entity_id in deletes:
                    await session.execute(
                        sql_delete(EntityRecordDB).where(
                            (EntityRecordDB.entity_type == entity_type.value) &
                            (EntityRecordDB.id == entity_id)
                        )
                    )
        except SQLAlchemyError as e:
            raise ServiceUnavailableError(f"Local batch write failed: {e}") from e

        self.logger.debug(f"Applied local batch: {len(upserts)} upserts, {len(deletes)} deletes")
