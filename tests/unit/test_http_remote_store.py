"""Unit tests for the HTTP remote store with a stubbed aiohttp session."""

import asyncio

import aiohttp
import pytest

from shelfsync.core.exceptions import InvalidDataError, NetworkError, NotConnectedError
from shelfsync.core.http_remote_store import HttpRemoteStore
from shelfsync.core.models import Book, EntityType
from shelfsync.core.remote_store import create_remote_store
from shelfsync.core.memory_remote_store import MemoryRemoteStore


class FakeResponse:
    def __init__(self, status=200, body=None, text=""):
        self.status = status
        self._body = body
        self._text = text

    async def json(self, content_type=None):
        return self._body

    async def text(self):
        return self._text


class FakeRequestContext:
    def __init__(self, outcome):
        self.outcome = outcome

    async def __aenter__(self):
        if isinstance(self.outcome, BaseException):
            raise self.outcome
        return self.outcome

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """Records requests and replays canned responses in order"""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.requests = []
        self.closed = False

    def request(self, method, url, json=None):
        self.requests.append((method, url, json))
        return FakeRequestContext(self.outcomes.pop(0))

    def get(self, url):
        return self.request('GET', url)

    async def close(self):
        self.closed = True


@pytest.fixture
def http_config():
    return {
        'remote': {
            'type': 'http',
            'base_url': 'https://library.example.com/api/',
            'token': 'env:TEST_LIBRARY_TOKEN'
        }
    }


@pytest.fixture
def http_store(http_config):
    return HttpRemoteStore(http_config)


class TestRequests:
    async def test_create_puts_entity_at_its_url(self, http_store, make_book):
        session = FakeSession(FakeResponse(status=201))
        http_store._session = session
        book = make_book()

        await http_store.create(book)

        method, url, payload = session.requests[0]
        assert method == 'PUT'
        assert url == 'https://library.example.com/api/users/reader-1/books/B1'
        assert payload == book.to_dict()

    async def test_update_uses_same_upsert_request(self, http_store, make_book):
        session = FakeSession(FakeResponse(status=200))
        http_store._session = session

        await http_store.update(make_book(minutes=3))

        assert session.requests[0][0] == 'PUT'

    async def test_delete_of_missing_entity_succeeds(self, http_store):
        session = FakeSession(FakeResponse(status=404))
        http_store._session = session

        await http_store.delete(EntityType.PARTNERSHIP, "P1", "reader-1")

        assert session.requests[0][:2] == ('DELETE', 'https://library.example.com/api/users/reader-1/partnerships/P1')

    async def test_fetch_all_decodes_entities(self, http_store, make_book):
        session = FakeSession(FakeResponse(body=[make_book("B1").to_dict(), make_book("B2").to_dict()]))
        http_store._session = session

        books = await http_store.fetch_all(EntityType.BOOK, "reader-1")

        assert [book.id for book in books] == ["B1", "B2"]
        assert all(isinstance(book, Book) for book in books)

    async def test_fetch_all_accepts_wrapped_listing(self, http_store, make_book):
        http_store._session = FakeSession(FakeResponse(body={'items': [make_book().to_dict()]}))

        books = await http_store.fetch_all(EntityType.BOOK, "reader-1")

        assert len(books) == 1


class TestErrors:
    async def test_rejected_call_is_network_error(self, http_store, make_book):
        http_store._session = FakeSession(FakeResponse(status=500, text="boom"))

        with pytest.raises(NetworkError) as exc_info:
            await http_store.update(make_book())

        assert exc_info.value.status_code == 500
        assert not isinstance(exc_info.value, NotConnectedError)

    async def test_unreachable_service_is_not_connected(self, http_store, make_book):
        http_store._session = FakeSession(aiohttp.ClientConnectionError("connection refused"))

        with pytest.raises(NotConnectedError):
            await http_store.create(make_book())

    async def test_timeout_is_network_error(self, http_store):
        http_store._session = FakeSession(asyncio.TimeoutError())

        with pytest.raises(NetworkError):
            await http_store.fetch_all(EntityType.BOOK, "reader-1")

    async def test_malformed_listing_is_invalid_data(self, http_store):
        http_store._session = FakeSession(FakeResponse(body=[{'id': 'B1'}]))

        with pytest.raises(InvalidDataError):
            await http_store.fetch_all(EntityType.BOOK, "reader-1")


class TestConfiguration:
    def test_token_is_resolved_from_environment(self, http_store, monkeypatch):
        monkeypatch.setenv('TEST_LIBRARY_TOKEN', 'secret-token')
        assert http_store._resolve_token() == 'secret-token'

    def test_missing_token_means_no_auth(self):
        store = HttpRemoteStore({'remote': {'base_url': 'http://localhost'}})
        assert store._resolve_token() is None

    async def test_validate_connection(self, http_store):
        http_store._session = FakeSession(FakeResponse(status=200))
        assert await http_store.validate_connection() is True

        http_store._session = FakeSession(aiohttp.ClientConnectionError("down"))
        assert await http_store.validate_connection() is False

    async def test_close_releases_session(self, http_store):
        session = FakeSession()
        http_store._session = session

        await http_store.close()

        assert session.closed is True
        assert http_store._session is None

    def test_factory_selects_backend(self, http_config):
        assert isinstance(create_remote_store(http_config), HttpRemoteStore)
        assert isinstance(create_remote_store({'remote': {'type': 'memory'}}), MemoryRemoteStore)

        with pytest.raises(ValueError):
            create_remote_store({'remote': {'type': 'ftp'}})
