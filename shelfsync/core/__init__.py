"""
ShelfSync Core Module
Exports the sync engine components for easy imports
"""

from .exceptions import (
    SyncError,
    AlreadySyncingError,
    ServiceUnavailableError,
    InvalidDataError,
    NetworkError,
    NotConnectedError,
    ConflictError
)
from .models import (
    EntityType,
    OperationType,
    Book,
    BookCollection,
    ReadingActivity,
    Partnership,
    MutationRecord,
    SyncState,
    SyncResult
)
from .local_store import LocalStore, SqlLocalStore
from .remote_store import RemoteStore, create_remote_store
from .pending_queue import PendingOperationQueue
from .reconciler import reconcile
from .sync_state import SyncStateStore
from .sync_orchestrator import SyncOrchestrator
