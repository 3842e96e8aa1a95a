"""
Synchronization orchestrator for ShelfSync
Drains the pending queue, pulls the remote snapshot and reconciles it with the local replica
"""

import asyncio
import dataclasses
import logging
from datetime import datetime
from typing import Any, Awaitable, Dict, List, Optional, Set, Tuple

from shelfsync.core.exceptions import (
    AlreadySyncingError, NetworkError, ServiceUnavailableError, SyncError
)
from shelfsync.core.database import DatabaseService
from shelfsync.core.local_store import LocalStore, SqlLocalStore
from shelfsync.core.models import (
    EntityType, MutationRecord, OperationType, SyncEntity, SyncErrorRecord,
    SyncResult, SyncState, utc_now
)
from shelfsync.core.pending_queue import PendingOperationQueue
from shelfsync.core.reconciler import reconcile
from shelfsync.core.remote_store import RemoteStore, create_remote_store
from shelfsync.core.sync_state import SyncStateStore

# Collections reference books, activities reference books and partnerships
# reference shared books, so books are pulled first
PULL_ORDER = (
    EntityType.BOOK,
    EntityType.COLLECTION,
    EntityType.ACTIVITY,
    EntityType.PARTNERSHIP,
)


class SyncOrchestrator:
    """
    Single-flight sync coordinator

    One instance is built at process start and handed to whatever triggers
    sync (API, CLI, periodic loop). Only AlreadySyncingError escapes
    sync_all(); every other failure is reported through the returned
    SyncResult and the persisted recent_errors.
    """

    def __init__(self, config: Dict[str, Any], local_store: LocalStore, remote_store: RemoteStore,
                 queue: PendingOperationQueue, state_store: SyncStateStore):
        self.config = config
        self.logger = logging.getLogger(__name__)

        sync_config = config.get('sync', {})
        self.owner_id = sync_config.get('owner_id', 'local-user')
        self.remote_timeout = float(sync_config.get('remote_timeout_seconds', 30))
        self.max_recent_errors = int(sync_config.get('max_recent_errors', 20))
        self.interval_seconds = int(sync_config.get('interval_seconds', 300))

        self.local_store = local_store
        self.remote_store = remote_store
        self.queue = queue
        self.state_store = state_store

        self.db_service: DatabaseService = queue.db_service

        self.state = SyncState()
        self.is_running = False
        self._sync_task: Optional[asyncio.Task] = None
        self._pushed: Set[Tuple[EntityType, str]] = set()
        # Held by offline writes and by the merge-and-commit step of a cycle
        self._local_write_lock = asyncio.Lock()

    @classmethod
    def from_config(cls, config: Dict[str, Any], db_service: DatabaseService,
                    remote_store: Optional[RemoteStore] = None) -> 'SyncOrchestrator':
        """Wire the SQLite-backed collaborators around one database service"""
        return cls(
            config,
            local_store=SqlLocalStore(db_service),
            remote_store=remote_store or create_remote_store(config),
            queue=PendingOperationQueue(db_service, config.get('queue', {}).get('max_pending', 10000)),
            state_store=SyncStateStore(db_service),
        )

    @property
    def is_syncing(self) -> bool:
        return self.state.is_syncing

    async def initialize(self):
        """Load persisted state; a stale in-flight flag is reset"""
        self.state = await self.state_store.load()
        await self.state_store.save(self.state)
        self.logger.info(f"Sync orchestrator initialized for owner {self.owner_id}")

    # Sync cycle

    async def sync_all(self) -> SyncResult:
        """
        Run one sync cycle.

        Raises:
            AlreadySyncingError: if a cycle is already in flight
        """
        # Check and set before the first await
        if self.state.is_syncing:
            raise AlreadySyncingError()
        self.state.is_syncing = True
        self._pushed = set()

        self.logger.info("Starting sync cycle")
        synced_count = 0

        try:
            await self.state_store.save(self.state)

            summary = await self.queue.drain(self._apply_record)
            synced_count = summary.applied_count
            if not summary.completed:
                raise summary.error

            remote_snapshot = await self._pull_remote()

            synced_at = utc_now()
            reconciled_count = await self._reconcile_and_commit(remote_snapshot, synced_at)
            # Only advanced once the commit has gone through
            self.state.last_sync_at = synced_at

        except asyncio.CancelledError:
            self.logger.warning("Sync cycle cancelled")
            await self._record_failure(SyncErrorRecord(code="CANCELLED", message="Sync cycle was cancelled"))
            raise
        except Exception as e:
            error = e if isinstance(e, SyncError) else ServiceUnavailableError(f"Unexpected sync failure: {e}")
            self.logger.error(f"Sync cycle failed: {error}")
            record = SyncErrorRecord.from_exception(error)
            await self._record_failure(record)
            return SyncResult(
                success=False,
                last_sync_at=self.state.last_sync_at,
                synced_count=synced_count,
                pending_count=await self._safe_pending_count(),
                errors=[record],
            )
        finally:
            self.state.is_syncing = False
            self._pushed = set()

        pending_count = await self._safe_pending_count()
        self.logger.info(f"Sync cycle completed: {synced_count} pushed, {reconciled_count} reconciled, "
                         f"{pending_count} pending")
        return SyncResult(
            success=True,
            last_sync_at=self.state.last_sync_at,
            synced_count=synced_count,
            reconciled_count=reconciled_count,
            pending_count=pending_count,
        )

    async def trigger_sync(self) -> SyncResult:
        """Caller-facing entry point; same as sync_all()"""
        return await self.sync_all()

    async def _record_failure(self, record: SyncErrorRecord):
        self.state.record_error(record, self.max_recent_errors)
        self.state.is_syncing = False
        try:
            await self.state_store.save(self.state)
        except ServiceUnavailableError as e:
            self.logger.error(f"Could not persist sync failure: {e}")

    async def _safe_pending_count(self) -> int:
        try:
            return await self.queue.count()
        except ServiceUnavailableError as e:
            self.logger.warning(f"Could not count pending operations: {e}")
            return 0

    async def _remote_call(self, call: Awaitable[Any], description: str) -> Any:
        """Await a remote store call bounded by the configured timeout"""
        try:
            return await asyncio.wait_for(call, timeout=self.remote_timeout)
        except asyncio.TimeoutError as e:
            raise NetworkError(f"{description} timed out after {self.remote_timeout}s") from e

    async def _apply_record(self, record: MutationRecord):
        """Push one queued mutation to the remote store"""
        if record.operation_type == OperationType.DELETE:
            await self._remote_call(
                self.remote_store.delete(record.entity_type, record.entity_id, record.owner_id),
                f"Remote delete of {record.entity_type.value} {record.entity_id}"
            )
        else:
            entity = record.entity()
            if record.operation_type == OperationType.CREATE:
                await self._remote_call(self.remote_store.create(entity),
                                        f"Remote create of {record.entity_type.value} {record.entity_id}")
            else:
                await self._remote_call(self.remote_store.update(entity),
                                        f"Remote update of {record.entity_type.value} {record.entity_id}")

        self._pushed.add((record.entity_type, record.entity_id))

    async def _pull_remote(self) -> Dict[EntityType, List[SyncEntity]]:
        """Fetch the remote snapshot of every entity type in dependency order"""
        snapshot: Dict[EntityType, List[SyncEntity]] = {}
        for entity_type in PULL_ORDER:
            snapshot[entity_type] = await self._remote_call(
                self.remote_store.fetch_all(entity_type, self.owner_id),
                f"Remote fetch of {entity_type.value} entities"
            )
        return snapshot

    async def _reconcile_and_commit(self, remote_snapshot: Dict[EntityType, List[SyncEntity]],
                                    synced_at: datetime) -> int:
        """
        Merge the remote snapshot into the local replica and close the cycle.

        Reading the local copies, writing the merge, queueing follow-up
        pushes, clearing confirmed records and saving the new sync state
        share one transaction; offline writes wait until it commits.
        Entities with pending records are left as they are; the next cycle
        pushes those records first.
        """
        upserts: List[SyncEntity] = []
        deletes: List[Tuple[EntityType, str]] = []
        follow_ups: List[MutationRecord] = []

        async with self._local_write_lock:
            async with self.db_service.transaction():
                for entity_type in PULL_ORDER:
                    remote_by_id = {entity.id: entity for entity in remote_snapshot[entity_type]}
                    local_by_id = {
                        entity.id: entity
                        for entity in await self.local_store.fetch_all(entity_type, self.owner_id)
                    }
                    tombstones = await self.queue.confirmed_deletions(entity_type)
                    pending_ids = await self.queue.pending_entity_ids(entity_type)

                    for entity_id in sorted(set(remote_by_id) | set(local_by_id)):
                        if entity_id in pending_ids:
                            # Changed locally after the drain started
                            continue

                        local = local_by_id.get(entity_id)
                        remote = remote_by_id.get(entity_id)
                        merged = reconcile(local, remote, deleted_remotely=entity_id in tombstones)

                        if merged is None:
                            if local is not None:
                                deletes.append((entity_type, entity_id))
                            continue

                        if merged != local:
                            upserts.append(merged)

                        # The remote listing may not reflect this cycle's pushes yet
                        if (entity_type, entity_id) in self._pushed:
                            continue
                        if remote is None:
                            follow_ups.append(MutationRecord.for_create(merged))
                        elif merged != remote:
                            follow_ups.append(MutationRecord.for_update(merged))

                await self.local_store.apply_batch(upserts, deletes)

                for record in follow_ups:
                    await self.queue.append(record)

                await self.queue.clear()
                await self.state_store.save(dataclasses.replace(
                    self.state,
                    last_sync_at=synced_at,
                    is_syncing=False,
                    recent_errors=list(self.state.recent_errors),
                ))

        if follow_ups:
            self.logger.info(f"Queued {len(follow_ups)} follow-up pushes after reconciliation")

        return len(upserts) + len(deletes)

    # Offline mutations

    async def enqueue_offline_create(self, entity: SyncEntity) -> MutationRecord:
        """Write a new entity locally, then queue its remote create"""
        if entity.last_modified_at is None:
            entity.last_modified_at = utc_now()
        async with self._local_write_lock:
            await self.local_store.upsert(entity)
            return await self.queue.append(MutationRecord.for_create(entity))

    async def enqueue_offline_update(self, entity: SyncEntity, touch: bool = True) -> MutationRecord:
        """Write a changed entity locally, then queue its remote update"""
        if touch or entity.last_modified_at is None:
            entity.last_modified_at = utc_now()
        async with self._local_write_lock:
            await self.local_store.upsert(entity)
            return await self.queue.append(MutationRecord.for_update(entity))

    async def enqueue_offline_delete(self, entity_type: EntityType, entity_id: str,
                                     owner_id: str) -> MutationRecord:
        """Remove an entity locally, then queue its remote delete"""
        async with self._local_write_lock:
            await self.local_store.delete(entity_type, entity_id)
            return await self.queue.append(MutationRecord.for_delete(entity_type, entity_id, owner_id))

    # Status and periodic sync

    async def get_status(self) -> Dict[str, Any]:
        return {
            'owner_id': self.owner_id,
            'last_sync_at': self.state.last_sync_at,
            'is_syncing': self.state.is_syncing,
            'pending_count': await self.queue.count(),
            'recent_errors': list(self.state.recent_errors),
        }

    async def start(self, interval: Optional[int] = None):
        """Start the periodic sync loop"""
        if self.is_running:
            return

        interval = interval or self.interval_seconds
        self.is_running = True
        self._sync_task = asyncio.create_task(self._periodic_sync(interval))
        self.logger.info(f"Periodic sync started (interval: {interval}s)")

    async def stop(self):
        """Stop the periodic sync loop"""
        self.is_running = False

        if self._sync_task is not None:
            self._sync_task.cancel()
            try:
                await self._sync_task
            except asyncio.CancelledError:
                pass
            self._sync_task = None

        self.logger.info("Periodic sync stopped")

    async def _periodic_sync(self, interval: int):
        while self.is_running:
            try:
                result = await self.sync_all()
                if not result.success:
                    self.logger.warning(f"Periodic sync failed: {result.errors[0].message}")
            except AlreadySyncingError:
                self.logger.debug("Periodic sync skipped; a cycle is already running")
            except SyncError as e:
                self.logger.error(f"Error in periodic sync: {e}")
            await asyncio.sleep(interval)
