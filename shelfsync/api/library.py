"""
Library API Router
Local reads and offline writes; every write is queued for the next sync
"""

import logging
import uuid
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, status

from shelfsync.api.dependencies import verify_api_key, get_orchestrator
from shelfsync.api.error_handling import NotFoundAPIError
from shelfsync.api.schemas import (
    EntityListResponse, EntityTypeEnum, MutationResponse, PendingOperationSchema
)
from shelfsync.core.models import EntityType, entity_from_dict, format_datetime, utc_now

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/{entity_type}", response_model=EntityListResponse)
async def list_entities(
    entity_type: EntityTypeEnum,
    owner_id: Optional[str] = None,
    authenticated: bool = Depends(verify_api_key),
    orchestrator = Depends(get_orchestrator)
):
    """List entities of one type from the local replica"""
    entities = await orchestrator.local_store.fetch_all(
        EntityType(entity_type.value), owner_id or orchestrator.owner_id
    )
    return EntityListResponse(
        entity_type=entity_type,
        count=len(entities),
        items=[entity.to_dict() for entity in entities]
    )


@router.get("/{entity_type}/{entity_id}")
async def get_entity(
    entity_type: EntityTypeEnum,
    entity_id: str,
    authenticated: bool = Depends(verify_api_key),
    orchestrator = Depends(get_orchestrator)
) -> Dict[str, Any]:
    entity = await orchestrator.local_store.get(EntityType(entity_type.value), entity_id)
    if entity is None:
        raise NotFoundAPIError(entity_type.value, entity_id)
    return entity.to_dict()


@router.post("/{entity_type}", response_model=MutationResponse, status_code=status.HTTP_201_CREATED)
async def create_entity(
    entity_type: EntityTypeEnum,
    payload: Dict[str, Any] = Body(...),
    authenticated: bool = Depends(verify_api_key),
    orchestrator = Depends(get_orchestrator)
):
    """Create an entity locally and queue it for push"""
    data = dict(payload)
    data.setdefault('id', str(uuid.uuid4()))
    data.setdefault('owner_id', orchestrator.owner_id)
    data['last_modified_at'] = format_datetime(utc_now())

    entity = entity_from_dict(EntityType(entity_type.value), data)
    record = await orchestrator.enqueue_offline_create(entity)

    logger.info(f"Queued create of {entity_type.value} {entity.id}")
    return MutationResponse(
        operation=PendingOperationSchema.from_record(record),
        entity=entity.to_dict()
    )


@router.put("/{entity_type}/{entity_id}", response_model=MutationResponse)
async def update_entity(
    entity_type: EntityTypeEnum,
    entity_id: str,
    payload: Dict[str, Any] = Body(...),
    authenticated: bool = Depends(verify_api_key),
    orchestrator = Depends(get_orchestrator)
):
    """Apply changed fields to the local copy and queue the whole entity for push"""
    kind = EntityType(entity_type.value)
    existing = await orchestrator.local_store.get(kind, entity_id)
    if existing is None:
        raise NotFoundAPIError(entity_type.value, entity_id)

    data = existing.to_dict()
    data.update(payload)
    data['id'] = entity_id

    entity = entity_from_dict(kind, data)
    record = await orchestrator.enqueue_offline_update(entity)

    logger.info(f"Queued update of {entity_type.value} {entity_id}")
    return MutationResponse(
        operation=PendingOperationSchema.from_record(record),
        entity=entity.to_dict()
    )


@router.delete("/{entity_type}/{entity_id}", response_model=MutationResponse)
async def delete_entity(
    entity_type: EntityTypeEnum,
    entity_id: str,
    authenticated: bool = Depends(verify_api_key),
    orchestrator = Depends(get_orchestrator)
):
    kind = EntityType(entity_type.value)
    existing = await orchestrator.local_store.get(kind, entity_id)
    if existing is None:
        raise NotFoundAPIError(entity_type.value, entity_id)

    record = await orchestrator.enqueue_offline_delete(kind, entity_id, existing.owner_id)

    logger.info(f"Queued delete of {entity_type.value} {entity_id}")
    return MutationResponse(operation=PendingOperationSchema.from_record(record))
