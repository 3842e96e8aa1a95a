"""
SQLAlchemy tables backing the local replica, the pending operation queue
and the persisted sync state.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def to_db_time(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite stores naive datetimes; keep everything as naive UTC."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.replace(tzinfo=None)


def from_db_time(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc)


class EntityRecordDB(Base):
    """Whole-entity snapshot in the local replica"""
    __tablename__ = 'entities'

    entity_type = Column(String(20), primary_key=True)
    id = Column(String(64), primary_key=True)
    owner_id = Column(String(64), nullable=False, index=True)
    payload = Column(Text, nullable=False)  # JSON
    last_modified_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, nullable=False)

    __table_args__ = (
        Index('idx_entities_owner', 'entity_type', 'owner_id'),
    )

    def __repr__(self):
        return f"<EntityRecordDB({self.entity_type}:{self.id})>"


class PendingOperationDB(Base):
    """
    Durable log of queued mutations.
    `sequence` is the replay order and is never reused.
    """
    __tablename__ = 'pending_operations'

    sequence = Column(Integer, primary_key=True, autoincrement=True)
    operation_type = Column(String(20), nullable=False)  # create, update, delete
    entity_type = Column(String(20), nullable=False)
    entity_id = Column(String(64), nullable=False, index=True)
    owner_id = Column(String(64), nullable=False)
    payload = Column(Text, nullable=True)  # JSON snapshot, empty for deletes

    status = Column(String(20), nullable=False, default='pending', index=True)  # pending, applied
    created_at = Column(DateTime, nullable=False)
    applied_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index('idx_pending_operations_entity', 'entity_type', 'entity_id', 'status'),
        {'sqlite_autoincrement': True},
    )

    def __repr__(self):
        return f"<PendingOperationDB(sequence={self.sequence}, status={self.status})>"


class DeletionTombstoneDB(Base):
    """Deletes confirmed by the remote store"""
    __tablename__ = 'deletion_tombstones'

    entity_type = Column(String(20), primary_key=True)
    entity_id = Column(String(64), primary_key=True)
    owner_id = Column(String(64), nullable=False)
    deleted_at = Column(DateTime, nullable=False)


class SyncStateDB(Base):
    """Single-row table holding the persisted sync state"""
    __tablename__ = 'sync_state'

    id = Column(Integer, primary_key=True)
    last_sync_at = Column(DateTime, nullable=True)
    is_syncing = Column(Boolean, nullable=False, default=False)
    recent_errors = Column(Text, nullable=False, default='[]')  # JSON
    updated_at = Column(DateTime, nullable=True)
