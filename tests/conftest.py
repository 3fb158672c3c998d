"""Pytest configuration for test suite.

Ensures the project root is on ``sys.path`` so imports like
``import wems_datasource`` resolve correctly regardless of the working
directory pytest chooses, and provides an in-process stand-in for the WEMS
API built on ``httpx.MockTransport``.
"""

from __future__ import annotations

import inspect
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Tuple, Union

import httpx
import pytest


def _ensure_project_root_on_syspath() -> None:
    project_root = Path(__file__).resolve().parents[1]
    project_root_str = str(project_root)
    if project_root_str not in sys.path:
        # Prepend to prefer local sources over site-packages
        sys.path.insert(0, project_root_str)


_ensure_project_root_on_syspath()

BASE_URL = "https://wems.test/wems"
TOKEN = "tok-1"

Handler = Union[httpx.Response, Callable[[httpx.Request], Any]]


class FakeWems:
    """Routes requests by ``(method, path)`` and records every call.

    Paths are given relative to the ``/wems`` base path, e.g. ``/v1/token``.
    A handler is either a fixed ``httpx.Response`` or a (sync or async)
    callable taking the request. Unrouted requests answer 404.
    """

    prefix = "/wems"

    def __init__(self) -> None:
        self.routes: Dict[Tuple[str, str], Handler] = {}
        self.calls: List[httpx.Request] = []
        self.route("POST", "/v1/token", httpx.Response(200, text=TOKEN))

    def route(self, method: str, path: str, handler: Handler) -> None:
        self.routes[(method, path)] = handler

    def calls_to(self, path: str) -> List[httpx.Request]:
        return [c for c in self.calls if c.url.path == self.prefix + path]

    def data_calls(self) -> List[httpx.Request]:
        """Every call except token requests."""
        return [c for c in self.calls if c.url.path != self.prefix + "/v1/token"]

    async def _handle(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        path = request.url.path
        if path.startswith(self.prefix):
            path = path[len(self.prefix) :]
        handler = self.routes.get((request.method, path))
        if handler is None:
            return httpx.Response(404, text="no route")
        if isinstance(handler, httpx.Response):
            return httpx.Response(
                handler.status_code, headers=handler.headers, content=handler.content
            )
        result = handler(request)
        if inspect.isawaitable(result):
            result = await result
        return result

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self._handle))


@pytest.fixture
def fake_wems() -> FakeWems:
    """Fresh fake WEMS API with a working token endpoint."""
    return FakeWems()


@pytest.fixture
def make_datasource(fake_wems):
    """Factory for datasources wired to ``fake_wems``."""
    from wems_datasource.adapters.wems import WemsDatasource
    from wems_datasource.config.models import Credentials

    def _make(**kwargs: Any) -> WemsDatasource:
        datasource = WemsDatasource(
            Credentials(client_id="cid", client_secret="secret", base_url=BASE_URL),
            **kwargs,
        )
        datasource.http.inject_http_client_for_testing(fake_wems.client())
        return datasource

    return _make


@pytest.fixture(autouse=True)
def reset_datasource_registry():
    """Reset datasource registry before each test to avoid cross-test contamination."""
    from wems_datasource.adapters import reset_datasources

    reset_datasources()
    yield
    reset_datasources()
