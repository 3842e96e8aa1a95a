"""
Exception hierarchy for the ShelfSync engine.
Every error raised by the queue, the orchestrator or a store capability is a SyncError.
"""

from typing import Optional


class SyncError(Exception):
    """Base exception for all sync-engine errors."""

    error_code = "SYNC_ERROR"

    def __init__(self, message: str = "", error_code: Optional[str] = None):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        if error_code:
            self.error_code = error_code


class AlreadySyncingError(SyncError):
    """Raised when a sync cycle is triggered while another one is in flight."""

    error_code = "ALREADY_SYNCING"

    def __init__(self, message: str = "A synchronization cycle is already in progress"):
        super().__init__(message)


class ServiceUnavailableError(SyncError):
    """Raised when the local store or an engine-internal component fails."""

    error_code = "SERVICE_UNAVAILABLE"


class InvalidDataError(SyncError):
    """Raised when a queued payload cannot be decoded into its entity type."""

    error_code = "INVALID_DATA"

    def __init__(self, message: str, record_sequence: Optional[int] = None):
        super().__init__(message)
        self.record_sequence = record_sequence


class NetworkError(SyncError):
    """Raised when the remote store is unreachable or rejects a call."""

    error_code = "NETWORK_ERROR"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class NotConnectedError(NetworkError):
    """Raised when the remote store cannot be reached at all."""

    error_code = "NOT_CONNECTED"

    def __init__(self, message: str = "Remote service is not reachable"):
        super().__init__(message)


class ConflictError(SyncError):
    """Reserved for field-level merge failures"""

    error_code = "CONFLICT"
