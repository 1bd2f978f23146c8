"""
Middleware Stack - Test Configuration (conftest.py)
====================================================

What:  Shared pytest fixtures for the entire test suite.
How:   pytest auto-discovers conftest.py and makes fixtures available to all tests.

Fixture Hierarchy:
    Function-scoped (created fresh for each test):
    ├── events: Fresh EventBus
    ├── dev_environment / prod_environment: EnvironmentContext per mode
    ├── public_dir: Temporary static root with a couple of files
    ├── config: StackConfig pointing at public_dir
    ├── exchange: Factory for (request, response) pairs over a fake ASGI channel
    └── client_for: Builds an HTTPX AsyncClient around create_app()
"""

import asyncio
import os
from typing import Dict, List, Optional
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient
from starlette.datastructures import Headers
from starlette.requests import Request

# Override process settings BEFORE any app imports
os.environ.pop("PYTHON_ENV", None)
os.environ["LOG_LEVEL"] = "WARNING"

from middleware_stack.config import ProcessSettings, StackConfig  # noqa: E402
from middleware_stack.environment import EnvironmentContext  # noqa: E402
from middleware_stack.events import EventBus  # noqa: E402
from middleware_stack.http import HttpResponse  # noqa: E402


# ══════════════════════════════════════════════════════════════════════════
# Fake ASGI Exchange
# ══════════════════════════════════════════════════════════════════════════

class Exchange:
    """
    A request/response pair wired to an in-memory ASGI channel.

    Usage:
        ex = exchange("POST", "/items", headers={"content-type": "application/json"},
                      body=b'{"a": 1}')
        await stage(ex.request, ex.response, ex.proceed)
        assert ex.status == 400
    """

    def __init__(
        self,
        method: str = "GET",
        path: str = "/",
        headers: Optional[Dict[str, str]] = None,
        body: bytes = b"",
        query_string: bytes = b"",
    ):
        raw_headers = [
            (name.lower().encode("latin-1"), value.encode("latin-1"))
            for name, value in (headers or {}).items()
        ]
        if body and "content-length" not in (headers or {}):
            raw_headers.append((b"content-length", str(len(body)).encode("latin-1")))

        self.scope = {
            "type": "http",
            "asgi": {"version": "3.0"},
            "http_version": "1.1",
            "method": method,
            "scheme": "http",
            "path": path,
            "raw_path": path.encode("latin-1"),
            "root_path": "",
            "query_string": query_string,
            "headers": raw_headers,
            "client": ("127.0.0.1", 50000),
            "server": ("testserver", 80),
        }
        self._body = body
        self._body_sent = False
        self._disconnected = asyncio.Event()
        self.messages: List[dict] = []
        self.request = Request(self.scope, self.receive)
        self.response = HttpResponse(self.scope, self.receive, self.send)
        self.proceed = AsyncMock()

    async def receive(self):
        if not self._body_sent:
            self._body_sent = True
            return {"type": "http.request", "body": self._body, "more_body": False}
        # Like a live client: nothing more arrives until it hangs up
        await self._disconnected.wait()
        return {"type": "http.disconnect"}

    async def send(self, message):
        self.messages.append(message)

    @property
    def starts(self) -> List[dict]:
        return [m for m in self.messages if m["type"] == "http.response.start"]

    @property
    def status(self) -> Optional[int]:
        return self.starts[0]["status"] if self.starts else None

    @property
    def headers(self) -> Headers:
        return Headers(raw=self.starts[0]["headers"]) if self.starts else Headers()

    @property
    def body(self) -> bytes:
        return b"".join(
            m.get("body", b"") for m in self.messages if m["type"] == "http.response.body"
        )


# ══════════════════════════════════════════════════════════════════════════
# Function-Scoped Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def exchange():
    """Factory for ``Exchange`` objects."""
    return Exchange


@pytest.fixture
def events():
    return EventBus()


@pytest.fixture
def dev_environment(events):
    return EnvironmentContext(production=False, events=events)


@pytest.fixture
def prod_environment(events):
    return EnvironmentContext(production=True, events=events)


@pytest.fixture
def public_dir(tmp_path):
    """Static root with an HTML page and a larger text file."""
    root = tmp_path / "public"
    root.mkdir()
    (root / "index.html").write_text("<h1>hello</h1>")
    (root / "big.txt").write_text("lorem ipsum " * 500)
    return root


@pytest.fixture
def config(public_dir):
    return StackConfig(paths={"public": str(public_dir)}, http={"cache": 60})


@pytest.fixture
def client_for():
    """
    Builds HTTPX clients around ``create_app``.

    Usage:
        async with client_for(config, production=True) as client:
            response = await client.get("/health")
    """
    from middleware_stack.main import create_app

    def build(config: StackConfig, production: bool = False, **kwargs) -> AsyncClient:
        settings = ProcessSettings(
            python_env="production" if production else "development",
            log_level="WARNING",
        )
        app = create_app(config=config, settings=settings, **kwargs)
        return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")

    return build
