"""
Pytest configuration and fixtures for ShelfSync tests
"""

import pytest
from datetime import datetime, timedelta, timezone

from shelfsync.core.database import DatabaseService
from shelfsync.core.local_store import SqlLocalStore
from shelfsync.core.memory_remote_store import MemoryRemoteStore
from shelfsync.core.models import Book, Partnership, PartnershipStatus
from shelfsync.core.pending_queue import PendingOperationQueue
from shelfsync.core.sync_orchestrator import SyncOrchestrator
from shelfsync.core.sync_state import SyncStateStore

OWNER_ID = "reader-1"
BASE_TIME = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def at(minutes: int) -> datetime:
    """Fixed timestamp `minutes` after BASE_TIME"""
    return BASE_TIME + timedelta(minutes=minutes)


@pytest.fixture
def test_config():
    """Test configuration"""
    return {
        'database': {
            'url': 'sqlite+aiosqlite:///:memory:',
            'echo': False
        },
        'remote': {
            'type': 'memory'
        },
        'sync': {
            'owner_id': OWNER_ID,
            'interval_seconds': 3600,
            'remote_timeout_seconds': 5,
            'max_recent_errors': 20
        },
        'queue': {
            'max_pending': 100
        },
        'api': {
            'api_key': 'test-api-key',
            'host': '127.0.0.1',
            'port': 8080,
            'cors_origins': ["*"]
        }
    }


@pytest.fixture
async def db_service():
    """In-memory database with all tables"""
    service = DatabaseService('sqlite+aiosqlite:///:memory:')
    await service.create_tables()
    yield service
    await service.close()


@pytest.fixture
def local_store(db_service):
    return SqlLocalStore(db_service)


@pytest.fixture
def pending_queue(db_service):
    return PendingOperationQueue(db_service, max_pending=100)


@pytest.fixture
def state_store(db_service):
    return SyncStateStore(db_service)


@pytest.fixture
def remote_store():
    return MemoryRemoteStore()


@pytest.fixture
async def orchestrator(test_config, local_store, remote_store, pending_queue, state_store):
    """Initialized orchestrator over in-memory stores"""
    instance = SyncOrchestrator(test_config, local_store, remote_store, pending_queue, state_store)
    await instance.initialize()
    yield instance
    await instance.stop()


@pytest.fixture
def make_book():
    """Factory for Book instances owned by the test user"""
    def _make_book(book_id: str = "B1", title: str = "1984", minutes: int = 0, **kwargs) -> Book:
        kwargs.setdefault('owner_id', OWNER_ID)
        kwargs.setdefault('authors', ["George Orwell"])
        return Book(id=book_id, title=title, last_modified_at=at(minutes), **kwargs)
    return _make_book


@pytest.fixture
def make_partnership():
    def _make_partnership(partnership_id: str = "P1", minutes: int = 0, **kwargs) -> Partnership:
        kwargs.setdefault('owner_id', OWNER_ID)
        kwargs.setdefault('partner_id', "reader-2")
        kwargs.setdefault('status', PartnershipStatus.ACTIVE)
        return Partnership(id=partnership_id, last_modified_at=at(minutes), **kwargs)
    return _make_partnership


# Test configuration
def pytest_configure(config):
    """Configure pytest"""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test"
    )
    config.addinivalue_line(
        "markers", "api: mark test as API endpoint test"
    )
