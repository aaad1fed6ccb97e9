"""Shared test fixtures for the gateway.

Provides:
- UpstreamStub: scripted httpx.MockTransport handler that records requests
- RecordingSleep: zero-delay sleep that records requested backoff delays
- executor / dispatcher wired to the stub (no real network, no real waiting)
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

import httpx
import pytest
import pytest_asyncio

from src.gateway.crm.dispatcher import OperationDispatcher
from src.gateway.crm.executor import RequestExecutor, RetryPolicy

BASE_URL = "https://api.test/v1"


class UpstreamStub:
    """Scripted upstream CRM.

    Responses (or exceptions) are served in order; the last one repeats once
    the script runs out, so a single 503 means "always 503".
    """

    def __init__(self, *responses: httpx.Response | Exception) -> None:
        self.requests: list[httpx.Request] = []
        self._script: list[httpx.Response | Exception] = list(responses)

    def script(self, *responses: httpx.Response | Exception) -> None:
        self._script = list(responses)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self._script.pop(0) if len(self._script) > 1 else self._script[0]
        if isinstance(item, Exception):
            raise item
        return item

    @property
    def calls(self) -> int:
        return len(self.requests)


class RecordingSleep:
    """Drop-in for asyncio.sleep that returns immediately."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(float(delay))


@pytest.fixture
def upstream() -> UpstreamStub:
    return UpstreamStub(httpx.Response(200, json={"data": []}))


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def policy() -> RetryPolicy:
    return RetryPolicy(max_attempts=3, initial_delay=1.0)


@pytest_asyncio.fixture
async def executor(upstream, sleep) -> AsyncGenerator[RequestExecutor, None]:
    client = httpx.AsyncClient(transport=httpx.MockTransport(upstream), base_url=BASE_URL)
    executor = RequestExecutor(client, sleep=sleep)
    yield executor
    await executor.aclose()


@pytest.fixture
def dispatcher(executor, policy) -> OperationDispatcher:
    return OperationDispatcher(executor, policy)
