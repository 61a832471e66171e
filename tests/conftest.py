from __future__ import annotations

from collections.abc import AsyncIterator, Callable

import pytest
from httpx import ASGITransport, AsyncClient
from starlette.requests import Request

from function_toolkit.config import PLATFORM_ENV_VARS, get_settings
from function_toolkit.observability.logging import reset_logging
from function_toolkit.response import BufferedResponseWriter


class FailingResponseWriter(BufferedResponseWriter):
    """Sink whose body writes always fail, like a client that hung up."""

    def __init__(self, error: Exception | None = None) -> None:
        super().__init__()
        self.error = error or OSError("test Error")

    def write(self, data: bytes) -> int:
        raise self.error


def build_request(
    method: str = "GET",
    path: str = "/",
    *,
    query: bytes = b"",
    headers: dict[str, str] | None = None,
    chunks: list[bytes] | None = None,
    disconnect: bool = False,
) -> Request:
    pending = list(chunks or [b""])
    sent_all = False

    async def receive() -> dict:
        nonlocal sent_all
        if disconnect or sent_all:
            return {"type": "http.disconnect"}
        body = pending.pop(0)
        sent_all = not pending
        return {"type": "http.request", "body": body, "more_body": not sent_all}

    scope = {
        "type": "http",
        "method": method,
        "path": path,
        "query_string": query,
        "headers": [(k.lower().encode("latin-1"), v.encode("latin-1")) for k, v in (headers or {}).items()],
    }
    return Request(scope, receive)


@pytest.fixture(autouse=True)
def test_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in PLATFORM_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    for name in ("LOG_LEVEL", "LOG_FORMAT", "CORRELATION_ID_HEADER", "CORRELATION_ID_LENGTH"):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    reset_logging()

    yield

    reset_logging()
    get_settings.cache_clear()


@pytest.fixture
def make_request() -> Callable[..., Request]:
    return build_request


@pytest.fixture
def writer() -> BufferedResponseWriter:
    return BufferedResponseWriter()


@pytest.fixture
def failing_writer() -> FailingResponseWriter:
    return FailingResponseWriter()


@pytest.fixture
async def api_client_factory() -> AsyncIterator[Callable[..., AsyncClient]]:
    clients: list[AsyncClient] = []

    def _factory(app) -> AsyncClient:
        client = AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
        clients.append(client)
        return client

    yield _factory

    for client in clients:
        await client.aclose()
