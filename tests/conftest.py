"""Shared fixtures: a fake photo backend and clients wired to it in memory.

Async scenarios are driven with ``asyncio.run`` inside plain test functions.
"""

import httpx
import pytest

from api.client import PhotoApiClient
from session import SyncSession
from sync.cache import QueryCache
from tests.fake_backend import BASE_URL, TOKEN, FakeBackend


class FakeClock:
    """Manually advanced monotonic clock for freshness tests."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def api_client(backend):
    """Authenticated client talking to the fake backend through ASGI."""
    return PhotoApiClient(BASE_URL, TOKEN, transport=httpx.ASGITransport(app=backend.app))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return QueryCache(clock=clock)


@pytest.fixture
def session(backend, cache):
    """Signed-in session over the fake backend."""
    sync_session = SyncSession(
        BASE_URL, transport=httpx.ASGITransport(app=backend.app), cache=cache
    )
    sync_session.start(TOKEN)
    return sync_session
