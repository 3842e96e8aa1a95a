"""
In-memory RemoteStore for development/testing
Keeps entities per owner and supports simple fault injection
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set, Tuple

from shelfsync.core.exceptions import NetworkError, NotConnectedError
from shelfsync.core.models import EntityType, SyncEntity, entity_from_dict
from shelfsync.core.remote_store import RemoteStore


@dataclass
class RemoteCall:
    """One call received by the in-memory store"""
    operation: str
    entity_type: EntityType
    entity_id: Optional[str] = None


class MemoryRemoteStore(RemoteStore):
    """RemoteStore backed by dictionaries"""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config or {})
        memory_config = self.config.get('remote', {}).get('memory', {})

        self.entities: Dict[Tuple[EntityType, str], Dict[str, Any]] = {}
        self.calls: List[RemoteCall] = []
        self.connected = True
        self.latency = float(memory_config.get('latency_seconds', 0))

        # Fault injection: (operation, entity_id or None) -> error
        self._failures: Dict[Tuple[str, Optional[str]], Exception] = {}
        # Written but not yet returned by fetch_all
        self._hidden: Set[Tuple[EntityType, str]] = set()
        # Listed by fetch_all in place of the stored version
        self._stale: Dict[Tuple[EntityType, str], Dict[str, Any]] = {}

    # Fault injection helpers

    def fail_on(self, operation: str, entity_id: Optional[str] = None, error: Optional[Exception] = None):
        """Make `operation` fail, for one entity id or for every call"""
        self._failures[(operation, entity_id)] = error or NetworkError(f"Injected {operation} failure")

    def clear_failures(self):
        self._failures.clear()

    def hide(self, entity_type: EntityType, entity_id: str):
        """Keep an entity out of fetch_all results (eventual visibility)"""
        self._hidden.add((entity_type, entity_id))

    def serve_stale(self, entity: SyncEntity):
        """Keep listing an outdated version of an entity until reveal_all()"""
        self._stale[(entity.entity_type, entity.id)] = entity.to_dict()

    def reveal_all(self):
        self._hidden.clear()
        self._stale.clear()

    def seed(self, entity: SyncEntity):
        """Store an entity without recording a call"""
        self.entities[(entity.entity_type, entity.id)] = entity.to_dict()

    def get(self, entity_type: EntityType, entity_id: str) -> Optional[SyncEntity]:
        data = self.entities.get((entity_type, entity_id))
        return entity_from_dict(entity_type, data) if data else None

    def calls_for(self, operation: str) -> List[RemoteCall]:
        return [call for call in self.calls if call.operation == operation]

    async def _enter(self, operation: str, entity_type: EntityType, entity_id: Optional[str] = None):
        if self.latency:
            await asyncio.sleep(self.latency)

        if not self.connected:
            raise NotConnectedError()

        error = self._failures.get((operation, entity_id)) or self._failures.get((operation, None))
        if error is not None:
            raise error

        self.calls.append(RemoteCall(operation, entity_type, entity_id))

    # RemoteStore interface

    async def create(self, entity: SyncEntity) -> None:
        await self._enter('create', entity.entity_type, entity.id)
        self.entities[(entity.entity_type, entity.id)] = entity.to_dict()

    async def update(self, entity: SyncEntity) -> None:
        await self._enter('update', entity.entity_type, entity.id)
        self.entities[(entity.entity_type, entity.id)] = entity.to_dict()

    async def delete(self, entity_type: EntityType, entity_id: str, owner_id: str) -> None:
        await self._enter('delete', entity_type, entity_id)
        self.entities.pop((entity_type, entity_id), None)

    async def fetch_all(self, entity_type: EntityType, owner_id: str) -> List[SyncEntity]:
        await self._enter('fetch_all', entity_type)
        return [
            entity_from_dict(kind, self._stale.get((kind, entity_id), data))
            for (kind, entity_id), data in sorted(self.entities.items(), key=lambda item: item[0][1])
            if kind == entity_type
            and data.get('owner_id') == owner_id
            and (kind, entity_id) not in self._hidden
        ]

    async def validate_connection(self) -> bool:
        return self.connected
