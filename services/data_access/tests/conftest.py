"""Test fixtures for the data-access client."""

import time
from typing import Any, Callable
from unittest.mock import AsyncMock

import httpx
import pytest
import pytest_asyncio
from jose import jwt

from services.data_access.app.auth.session import SessionManager
from services.data_access.app.auth.store import MemorySessionStore
from services.data_access.app.config import Settings
from services.data_access.app.http.client import ApiClient
from services.data_access.app.http.retry import RetryExecutor, RetryPolicy


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def settings() -> Settings:
    """Settings pointing at a fake upstream."""
    return Settings(
        base_url="http://api.test",
        auto_refresh_tokens=False,
        log_json=False,
    )


@pytest.fixture
def clock() -> FakeClock:
    """Controllable clock."""
    return FakeClock()


@pytest.fixture
def make_token() -> Callable[..., str]:
    """Factory for signed JWTs expiring relative to now."""

    def _make(expires_in: float | None = 3600, now: float | None = None, **claims: Any) -> str:
        now = time.time() if now is None else now
        payload: dict[str, Any] = {"sub": "user-1", **claims}
        if expires_in is not None:
            payload["exp"] = int(now + expires_in)
        return jwt.encode(payload, "test-secret", algorithm="HS256")

    return _make


@pytest.fixture
def session() -> SessionManager:
    """Session manager with an in-memory store."""
    return SessionManager(store=MemorySessionStore())


@pytest.fixture
def retry_sleep() -> AsyncMock:
    """Sleep replacement recording backoff delays."""
    return AsyncMock()


@pytest.fixture
def fast_retry(retry_sleep: AsyncMock) -> RetryExecutor:
    """Retry executor that does not actually wait."""
    return RetryExecutor(RetryPolicy(), sleep=retry_sleep)


@pytest_asyncio.fixture
async def make_client(settings, session, fast_retry):
    """Factory for API clients backed by a mock transport."""
    clients: list[ApiClient] = []

    def _make(handler: Callable[[httpx.Request], httpx.Response], **kwargs: Any) -> ApiClient:
        kwargs.setdefault("settings", settings)
        kwargs.setdefault("session", session)
        kwargs.setdefault("retry", fast_retry)
        client = ApiClient(transport=httpx.MockTransport(handler), **kwargs)
        clients.append(client)
        return client

    yield _make

    for client in clients:
        await client.close()
