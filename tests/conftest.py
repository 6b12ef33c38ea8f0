"""
Test configuration and fixtures for the Site Inspector API.

The database URL is pointed at a throwaway SQLite file before the application
is imported. Remote sites are simulated with httpx.MockTransport. The timeout
tests talk to a deliberately slow server on 127.0.0.1 instead, because
MockTransport never times out.
"""

import asyncio
import os
import tempfile
import time
from contextlib import asynccontextmanager
from typing import AsyncContextManager, AsyncIterator, Callable, Dict, Generator, Optional, Tuple, Union

import httpx
import pytest
from dotenv import load_dotenv
from fastapi.testclient import TestClient

load_dotenv()

test_db_url = os.getenv("TEST_DATABASE_URL")
if test_db_url:
    if "postgresql://" in test_db_url and "asyncpg" not in test_db_url:
        test_db_url = test_db_url.replace("postgresql://", "postgresql+asyncpg://")
    os.environ["DATABASE_URL"] = test_db_url
else:
    test_db_path = os.path.join(tempfile.mkdtemp(), "site_inspector_test.db")
    os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{test_db_path}"


# url -> (status, html) or an exception to raise for that url
Route = Union[Tuple[int, str], Exception]


class FakeWeb:
    """
    A tiny in-process web. Unknown URLs answer 404.
    Every request is recorded as (method, url).
    """

    def __init__(self, routes: Optional[Dict[str, Route]] = None):
        self.routes: Dict[str, Route] = dict(routes or {})
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append((request.method, url))
        route = self.routes.get(url, self.routes.get(url.rstrip("/")))
        if route is None:
            return httpx.Response(404, text="not found")
        if isinstance(route, Exception):
            raise route
        status_code, body = route
        return httpx.Response(status_code, text=body, headers={"content-type": "text/html; charset=utf-8"})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


EXAMPLE_PAGE = """<!DOCTYPE html>
<html>
  <head><title>  Example Domain  </title></head>
  <body>
    <h1>Example</h1>
    <a href="/about">About</a>
    <a href="https://dead.example/x">Gone</a>
    <a href="javascript:void(0)">Script</a>
  </body>
</html>
"""


@pytest.fixture
def fake_web() -> FakeWeb:
    return FakeWeb({
        "http://example.com": (200, EXAMPLE_PAGE),
        "http://example.com/about": (200, "<html><title>About</title></html>"),
        "https://dead.example/x": (404, "gone"),
    })


@pytest.fixture
def test_app(fake_web):
    """FastAPI application wired to an in-memory store and the fake web."""
    from site_inspector.features.analysis.services.analysis.page_analyzer import PageAnalyzer
    from site_inspector.features.analysis.services.store import InMemoryResultStore
    from site_inspector.main import create_app

    return create_app(
        store=InMemoryResultStore(),
        analyzer=PageAnalyzer(transport=fake_web.transport()),
    )


@pytest.fixture(scope="function")
def client(test_app) -> Generator[TestClient, None, None]:
    """
    Test client with the application lifespan running, so background
    analyses keep going between requests.
    """
    with TestClient(test_app) as test_client:
        yield test_client


def wait_for_terminal(client: TestClient, job_id: str, timeout: float = 5.0) -> dict:
    """Poll the job until it is done or failed and return its record."""
    deadline = time.monotonic() + timeout
    while True:
        job = client.get(f"/api/v1/urls/{job_id}").json()["data"]
        if job["status"] in ("done", "error"):
            return job
        if time.monotonic() > deadline:
            raise AssertionError(f"job {job_id} still {job['status']} after {timeout}s")
        time.sleep(0.02)


@pytest.fixture
def wait_for_job() -> Callable[[TestClient, str], dict]:
    return wait_for_terminal


@pytest.fixture
def make_fake_web() -> Callable[..., FakeWeb]:
    return FakeWeb


@asynccontextmanager
async def serve_slowly(body: str = "<title>slow</title>", interval: float = 0.05) -> AsyncIterator[str]:
    """
    Serve every request on 127.0.0.1 by writing the response one byte per
    `interval` seconds. No single read waits long, but the whole response
    takes far longer than any timeout used in the tests. Yields the base URL.
    """
    payload = (
        "HTTP/1.1 200 OK\r\n"
        "Content-Type: text/html\r\n"
        f"Content-Length: {len(body)}\r\n"
        "Connection: close\r\n"
        "\r\n"
        f"{body}"
    ).encode()
    writers = set()

    async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        writers.add(writer)
        try:
            await reader.readuntil(b"\r\n\r\n")
            for i in range(len(payload)):
                if writer.is_closing():
                    break
                writer.write(payload[i:i + 1])
                await writer.drain()
                await asyncio.sleep(interval)
        except (ConnectionError, asyncio.IncompleteReadError):
            pass
        finally:
            writers.discard(writer)
            writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    try:
        yield f"http://127.0.0.1:{port}"
    finally:
        for writer in list(writers):
            writer.close()
        server.close()
        await server.wait_closed()


@pytest.fixture
def slow_server() -> Callable[..., AsyncContextManager[str]]:
    return serve_slowly


@pytest.fixture
def no_proxy(monkeypatch) -> None:
    """Keep httpx from routing 127.0.0.1 through a proxy from the environment."""
    for name in ("HTTP_PROXY", "HTTPS_PROXY", "ALL_PROXY", "http_proxy", "https_proxy", "all_proxy"):
        monkeypatch.delenv(name, raising=False)
