"""
Pydantic schemas for API request/response models
"""

from datetime import datetime
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field
from enum import Enum

from shelfsync.core.models import MutationRecord, SyncErrorRecord, SyncResult


class EntityTypeEnum(str, Enum):
    BOOK = "book"
    COLLECTION = "collection"
    ACTIVITY = "activity"
    PARTNERSHIP = "partnership"


class OperationTypeEnum(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class SyncErrorSchema(BaseModel):
    code: str
    message: str
    occurred_at: datetime
    record_sequence: Optional[int] = None

    @classmethod
    def from_record(cls, record: SyncErrorRecord) -> 'SyncErrorSchema':
        return cls(
            code=record.code,
            message=record.message,
            occurred_at=record.occurred_at,
            record_sequence=record.record_sequence
        )


class SyncResultResponse(BaseModel):
    success: bool
    last_sync_at: Optional[datetime] = None
    synced_count: int = 0
    reconciled_count: int = 0
    pending_count: int = 0
    errors: List[SyncErrorSchema] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: SyncResult) -> 'SyncResultResponse':
        return cls(
            success=result.success,
            last_sync_at=result.last_sync_at,
            synced_count=result.synced_count,
            reconciled_count=result.reconciled_count,
            pending_count=result.pending_count,
            errors=[SyncErrorSchema.from_record(error) for error in result.errors]
        )


class SyncStatusResponse(BaseModel):
    owner_id: str
    last_sync_at: Optional[datetime] = None
    is_syncing: bool
    pending_count: int
    recent_errors: List[SyncErrorSchema] = Field(default_factory=list)


class PendingOperationSchema(BaseModel):
    sequence: int
    operation_type: OperationTypeEnum
    entity_type: EntityTypeEnum
    entity_id: str
    owner_id: str
    created_at: datetime

    @classmethod
    def from_record(cls, record: MutationRecord) -> 'PendingOperationSchema':
        return cls(
            sequence=record.sequence,
            operation_type=record.operation_type.value,
            entity_type=record.entity_type.value,
            entity_id=record.entity_id,
            owner_id=record.owner_id,
            created_at=record.created_at
        )


class PendingListResponse(BaseModel):
    count: int
    operations: List[PendingOperationSchema]


class MutationResponse(BaseModel):
    """Returned after a local write has been queued for push"""
    operation: PendingOperationSchema
    entity: Optional[Dict[str, Any]] = None


class EntityListResponse(BaseModel):
    entity_type: EntityTypeEnum
    count: int
    items: List[Dict[str, Any]]
