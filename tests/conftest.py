"""Root conftest — shared fixtures for all tests."""
from __future__ import annotations

import asyncio
import os
from typing import Any, Callable

import httpx
import pytest

# Keep the suite independent of a developer's .env / shell
os.environ.setdefault("LEVER_API_KEY", "test-api-key")
os.environ.setdefault("FETCH_PLAN_PATH", "does/not/exist.yaml")

from lever_export.fetchers.executor import RequestExecutor  # noqa: E402
from lever_export.fetchers.rate_gate import RateGate  # noqa: E402

BASE_URL = "https://api.lever.test/v1"
API_KEY = "test-api-key"


class FakeLeverApi:
    """
    In-memory Lever API for httpx.MockTransport.

    Routes are keyed by path (without the /v1 prefix). Paginated routes
    answer by the ``offset`` cursor; scripted routes return their responses
    in order and repeat the last one. Unknown paths answer an empty page.
    """

    def __init__(self) -> None:
        self._pages: dict[str, list[list[dict[str, Any]]]] = {}
        self._records: dict[str, dict[str, Any]] = {}
        self._scripts: dict[str, list[httpx.Response]] = {}
        self.delays: dict[str, float] = {}
        self.calls: list[httpx.Request] = []

    def add_pages(self, path: str, pages: list[list[dict[str, Any]]]) -> None:
        self._pages[path] = pages

    def add_record(self, path: str, record: dict[str, Any]) -> None:
        self._records[path] = record

    def add_responses(self, path: str, responses: list[httpx.Response]) -> None:
        self._scripts[path] = list(responses)

    def add_status(self, path: str, status_code: int, body: Any = None) -> None:
        self._scripts[path] = [
            httpx.Response(status_code, json=body if body is not None else {"code": status_code}),
        ]

    def calls_to(self, path: str) -> list[httpx.Request]:
        return [c for c in self.calls if self._path(c) == path]

    @staticmethod
    def _path(request: httpx.Request) -> str:
        path = request.url.path
        return path[len("/v1"):] if path.startswith("/v1") else path

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        path = self._path(request)

        delay = self.delays.get(path)
        if delay:
            await asyncio.sleep(delay)

        script = self._scripts.get(path)
        if script:
            return script.pop(0) if len(script) > 1 else script[0]

        if path in self._records:
            return httpx.Response(200, json={"data": self._records[path]})

        pages = self._pages.get(path, [[]])
        offset = request.url.params.get("offset")
        index = int(offset[1:]) if offset else 0
        has_next = index < len(pages) - 1
        body: dict[str, Any] = {"data": pages[index], "hasNext": has_next}
        if has_next:
            body["next"] = f"c{index + 1}"
        return httpx.Response(200, json=body)


@pytest.fixture
def fake_api() -> FakeLeverApi:
    return FakeLeverApi()


@pytest.fixture
def make_executor(fake_api: FakeLeverApi) -> Callable[..., RequestExecutor]:
    """Factory for executors wired to fake_api with fast retry settings."""

    def _make(gate: RateGate | None = None, **kwargs: Any) -> RequestExecutor:
        kwargs.setdefault("retry_count", 3)
        kwargs.setdefault("backoff_base", 0.0)
        kwargs.setdefault("cooldown", 0.0)
        http = httpx.AsyncClient(transport=httpx.MockTransport(fake_api.handler))
        return RequestExecutor(
            gate or RateGate(requests_per_second=1000),
            base_url=BASE_URL,
            api_key=API_KEY,
            http=http,
            **kwargs,
        )

    return _make


@pytest.fixture
def sleep_recorder() -> Callable[..., Any]:
    """An awaitable sleep replacement that records requested delays."""

    delays: list[float] = []

    async def _sleep(seconds: float) -> None:
        delays.append(seconds)

    _sleep.delays = delays  # type: ignore[attr-defined]
    return _sleep
