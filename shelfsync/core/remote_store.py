"""
RemoteStore interface for the canonical library service
Unified interface for the HTTP backend and the in-memory development backend
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List

from shelfsync.core.models import EntityType, SyncEntity

# Remote collection name per entity type
COLLECTION_NAMES: Dict[EntityType, str] = {
    EntityType.BOOK: "books",
    EntityType.COLLECTION: "collections",
    EntityType.ACTIVITY: "activities",
    EntityType.PARTNERSHIP: "partnerships",
}


class RemoteStore(ABC):
    """
    Abstract base class for remote store backends

    Every write is idempotent: create and update are upserts keyed by id and
    deleting an absent entity succeeds. Implementations raise
    NotConnectedError when the service cannot be reached and NetworkError
    when it rejects a call.
    """

    def __init__(self, config: Dict[str, Any]):
        self.config = config
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @abstractmethod
    async def create(self, entity: SyncEntity) -> None:
        """Create an entity (upsert)"""
        pass

    @abstractmethod
    async def update(self, entity: SyncEntity) -> None:
        """Replace an entity wholesale (upsert)"""
        pass

    @abstractmethod
    async def delete(self, entity_type: EntityType, entity_id: str, owner_id: str) -> None:
        """Delete an entity; deleting an absent entity is a no-op"""
        pass

    @abstractmethod
    async def fetch_all(self, entity_type: EntityType, owner_id: str) -> List[SyncEntity]:
        """
        Fetch every entity of one type owned by `owner_id`

        Raises:
            NotConnectedError: if the service is unreachable
            NetworkError: if the service rejects the call
            InvalidDataError: if the service returns undecodable entities
        """
        pass

    @abstractmethod
    async def validate_connection(self) -> bool:
        """Return True when the service is reachable"""
        pass

    async def close(self):
        """Release held connections"""
        pass


def create_remote_store(config: Dict[str, Any]) -> RemoteStore:
    """Create the remote store selected by the `remote.type` setting"""
    remote_type = config.get('remote', {}).get('type', 'memory')

    if remote_type == 'http':
        from shelfsync.core.http_remote_store import HttpRemoteStore
        logging.getLogger(__name__).info("Initializing HTTP remote store")
        return HttpRemoteStore(config)
    elif remote_type == 'memory':
        from shelfsync.core.memory_remote_store import MemoryRemoteStore
        logging.getLogger(__name__).info("Initializing in-memory remote store")
        return MemoryRemoteStore(config)
    else:
        raise ValueError(f"Unknown remote store type: {remote_type}")
