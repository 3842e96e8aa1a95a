"""
HTTP RemoteStore
JSON over REST against the canonical library service
"""

import asyncio
import os
from typing import Any, Dict, List, Optional

import aiohttp

from shelfsync.core.exceptions import InvalidDataError, NetworkError, NotConnectedError
from shelfsync.core.models import EntityType, SyncEntity, entity_from_dict
from shelfsync.core.remote_store import COLLECTION_NAMES, RemoteStore


class HttpRemoteStore(RemoteStore):
    """
    RemoteStore speaking to `{base_url}/users/{owner}/{collection}[/{id}]`

    PUT is an upsert, so create and update share one request shape.
    DELETE treats 404 as success.
    """

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)

        self.remote_config = config.get('remote', {})
        self.base_url = self.remote_config.get('base_url', 'http://localhost:8090/api').rstrip('/')
        self.connect_timeout = self.remote_config.get('connect_timeout_s', 5)
        self.read_timeout = self.remote_config.get('read_timeout_s', 15)
        self.verify_tls = self.remote_config.get('verify_tls', True)

        # HTTP session will be created on first use
        self._session: Optional[aiohttp.ClientSession] = None

    def _resolve_token(self) -> Optional[str]:
        """Resolve bearer token from config (supports env: prefix)"""
        token_ref = self.remote_config.get('token') or ''
        if token_ref.startswith('env:'):
            return os.getenv(token_ref[4:])
        return token_ref or None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session with auth header and timeouts"""
        if self._session is None or self._session.closed:
            headers = {
                'User-Agent': 'ShelfSync/1.0',
                'Accept': 'application/json',
            }
            token = self._resolve_token()
            if token:
                headers['Authorization'] = f"Bearer {token}"

            timeout = aiohttp.ClientTimeout(
                connect=self.connect_timeout,
                total=self.read_timeout
            )
            connector = aiohttp.TCPConnector(ssl=None if self.verify_tls else False)

            self._session = aiohttp.ClientSession(
                timeout=timeout,
                connector=connector,
                headers=headers
            )

        return self._session

    def _collection_url(self, entity_type: EntityType, owner_id: str) -> str:
        return f"{self.base_url}/users/{owner_id}/{COLLECTION_NAMES[entity_type]}"

    def _entity_url(self, entity_type: EntityType, entity_id: str, owner_id: str) -> str:
        return f"{self._collection_url(entity_type, owner_id)}/{entity_id}"

    async def _request(self, method: str, url: str, payload: Optional[Dict[str, Any]] = None,
                       allow_not_found: bool = False) -> Any:
        """Send one request and return the decoded JSON body, if any"""
        session = await self._get_session()

        try:
            async with session.request(method, url, json=payload) as response:
                if response.status == 404 and allow_not_found:
                    return None

                if response.status >= 400:
                    detail = await response.text()
                    raise NetworkError(
                        f"{method} {url} failed with HTTP {response.status}: {detail[:200]}",
                        status_code=response.status
                    )

                if method == 'GET':
                    return await response.json(content_type=None)
                return None

        except aiohttp.ClientConnectionError as e:
            self.logger.warning(f"Remote service unreachable ({method} {url}): {e}")
            raise NotConnectedError(f"Remote service is not reachable: {e}") from e
        except aiohttp.ClientError as e:
            raise NetworkError(f"{method} {url} failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise NetworkError(f"{method} {url} timed out") from e

    async def create(self, entity: SyncEntity) -> None:
        url = self._entity_url(entity.entity_type, entity.id, entity.owner_id)
        await self._request('PUT', url, entity.to_dict())
        self.logger.debug(f"Created remote {entity.entity_type.value} {entity.id}")

    async def update(self, entity: SyncEntity) -> None:
        url = self._entity_url(entity.entity_type, entity.id, entity.owner_id)
        await self._request('PUT', url, entity.to_dict())
        self.logger.debug(f"Updated remote {entity.entity_type.value} {entity.id}")

    async def delete(self, entity_type: EntityType, entity_id: str, owner_id: str) -> None:
        url = self._entity_url(entity_type, entity_id, owner_id)
        await self._request('DELETE', url, allow_not_found=True)
        self.logger.debug(f"Deleted remote {entity_type.value} {entity_id}")

    async def fetch_all(self, entity_type: EntityType, owner_id: str) -> List[SyncEntity]:
        body = await self._request('GET', self._collection_url(entity_type, owner_id))

        if isinstance(body, dict):
            body = body.get('items', [])
        if not isinstance(body, list):
            raise InvalidDataError(f"Remote {entity_type.value} listing is not a list")

        return [entity_from_dict(entity_type, item) for item in body]

    async def validate_connection(self) -> bool:
        """Test connection to the remote service"""
        try:
            session = await self._get_session()
            async with session.get(f"{self.base_url}/health") as response:
                return response.status < 400
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.logger.error(f"Connection validation failed: {e}")
            return False

    async def close(self):
        """Close HTTP session"""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None
