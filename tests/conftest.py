"""Pytest configuration and fixtures shared across all test modules.

Environment defaults are set before anything imports the settings module,
so tests never pick up a developer's .env file or a real upstream.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"

os.environ.setdefault("PROXY_UPSTREAM_ORIGIN", "https://upstream.test")
os.environ.setdefault("PROXY_CLIENT_IP_HEADER", "CF-Connecting-IP")
os.environ.setdefault("RATE_LIMIT_LIMIT", "2")
os.environ.setdefault("RATE_LIMIT_WINDOW_SECONDS", "120")
os.environ.setdefault("RATE_LIMIT_EXEMPT_PATHS", "/v1/models")
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from typing import Callable
from unittest.mock import Mock

import httpx
import pytest
from fastapi.testclient import TestClient

from quota_proxy.adapters.quota_store.in_memory import InMemoryQuotaStore
from quota_proxy.adapters.rate_limit.sliding_window import SlidingWindowLogRateLimiter
from quota_proxy.core.app_factory import create_app
from quota_proxy.core.dependencies import get_request_handler
from quota_proxy.services.proxy_forwarder import ProxyForwarder
from quota_proxy.services.request_handler import RequestHandler
from quota_proxy.services.usage_stats import UsageStatsService

UPSTREAM_ORIGIN = "https://upstream.test"
CLIENT_IP = "203.0.113.7"
T0 = 1_700_000_000


@pytest.fixture
def clock() -> Mock:
    """Controllable UNIX clock shared by the limiter and the stores."""
    return Mock(return_value=float(T0))


@pytest.fixture
def rate_store(clock: Mock) -> InMemoryQuotaStore:
    return InMemoryQuotaStore(namespace="rate_limits", clock=clock)


@pytest.fixture
def stats_store(clock: Mock) -> InMemoryQuotaStore:
    return InMemoryQuotaStore(namespace="ip_stats", clock=clock)


@pytest.fixture
def limiter(rate_store: InMemoryQuotaStore, clock: Mock) -> SlidingWindowLogRateLimiter:
    return SlidingWindowLogRateLimiter(
        rate_store,
        limit=2,
        window_seconds=120,
        exempt_paths={"/v1/models"},
        clock=clock,
    )


@pytest.fixture
def usage_stats(stats_store: InMemoryQuotaStore) -> UsageStatsService:
    return UsageStatsService(stats_store, exempt_paths={"/v1/models"})


class UpstreamStub:
    """Programmable upstream served through httpx.MockTransport.

    Records every request it receives; ``respond`` decides the answer.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.bodies: list[bytes] = []
        self.respond: Callable[[httpx.Request], httpx.Response] = lambda request: httpx.Response(
            200, text="upstream ok"
        )

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.bodies.append(await request.aread())
        self.requests.append(request)
        return self.respond(request)


@pytest.fixture
def upstream() -> UpstreamStub:
    return UpstreamStub()


@pytest.fixture
def forwarder(upstream: UpstreamStub) -> ProxyForwarder:
    client = httpx.AsyncClient(transport=httpx.MockTransport(upstream))
    return ProxyForwarder(UPSTREAM_ORIGIN, client=client)


@pytest.fixture
def request_handler(
    limiter: SlidingWindowLogRateLimiter,
    usage_stats: UsageStatsService,
    forwarder: ProxyForwarder,
) -> RequestHandler:
    return RequestHandler(limiter, usage_stats, forwarder, client_ip_header="CF-Connecting-IP")


@pytest.fixture
def client(request_handler: RequestHandler) -> TestClient:
    """Test client for an app whose handler uses in-memory stores and the stub upstream."""
    app = create_app()
    app.dependency_overrides[get_request_handler] = lambda: request_handler
    return TestClient(app)
