"""Tests for global exception handlers.

Validates that all exception types are handled consistently with
proper HTTP status codes, error format, CORS header and no information leakage.
"""

import asyncio
import json
from unittest.mock import AsyncMock, Mock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from quota_proxy.core.errors import (
    AppError,
    StoreUnavailableError,
    UpstreamAppError,
    ValidationAppError,
)
from quota_proxy.core.dependencies import get_request_handler
from quota_proxy.core.app_factory import create_app
from quota_proxy.core.exception_handlers import general_exception_handler, setup_exception_handlers
from quota_proxy.services.request_handler import RequestHandler


@pytest.fixture
def app_with_handlers() -> FastAPI:
    """Create FastAPI app with exception handlers registered."""
    app = FastAPI()
    setup_exception_handlers(app)
    return app


@pytest.fixture
def client(app_with_handlers: FastAPI) -> TestClient:
    """Create test client with handlers enabled."""
    return TestClient(app_with_handlers, raise_server_exceptions=False)


class TestAppErrorHandler:
    """Test handler for AppError and subclasses."""

    def test_validation_error_returns_400(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-validation")
        async def test_endpoint():
            raise ValidationAppError(code="test_validation", message="Test validation error")

        response = client.get("/test-validation")

        assert response.status_code == 400
        data = response.json()
        assert data["error"]["code"] == "test_validation"
        assert data["error"]["message"] == "Test validation error"
        assert "request_id" in data["error"]

    def test_store_unavailable_returns_500_with_cors(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-store")
        async def test_endpoint():
            raise StoreUnavailableError(
                code="store_unavailable",
                message="Quota store get failed",
                details={"backend": "redis", "operation": "get"},
            )

        response = client.get("/test-store")

        assert response.status_code == 500
        assert response.headers["access-control-allow-origin"] == "*"
        data = response.json()
        assert data["error"]["code"] == "store_unavailable"
        assert data["error"]["details"]["operation"] == "get"

    def test_upstream_error_returns_500(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-upstream")
        async def test_endpoint():
            raise UpstreamAppError(code="upstream_transport_error", message="Upstream request failed")

        response = client.get("/test-upstream")

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "upstream_transport_error"


class TestGeneralExceptionHandler:
    """Test fallback handler for unexpected exceptions."""

    def test_unexpected_exception_returns_generic_500(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-crash")
        async def test_endpoint():
            raise RuntimeError("database connection failed")

        response = client.get("/test-crash")

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "internal_server_error"
        assert "database connection" not in response.text

    def test_general_exception_handler_never_leaks_stack_trace(self):
        request = AsyncMock()
        request.url.path = "/test"
        request.method = "GET"

        response = asyncio.run(general_exception_handler(request, ValueError("Test error with details")))

        response_text = bytes(response.body).decode()
        assert "Traceback" not in response_text
        assert "ValueError" not in response_text
        assert json.loads(response_text)["error"]["code"] == "internal_server_error"
        assert response.headers["access-control-allow-origin"] == "*"


def test_store_failure_during_check_surfaces_as_500():
    """With store_failure_mode=error the limiter's StoreUnavailableError reaches the handler."""
    limiter = Mock()
    limiter.check = AsyncMock(
        side_effect=StoreUnavailableError(code="store_unavailable", message="Quota store get failed")
    )
    handler = RequestHandler(limiter, Mock(), Mock(), client_ip_header="CF-Connecting-IP")
    app = create_app()
    app.dependency_overrides[get_request_handler] = lambda: handler

    response = TestClient(app).get("/v1/chat", headers={"CF-Connecting-IP": "203.0.113.7"})

    assert response.status_code == 500
    assert response.headers["access-control-allow-origin"] == "*"
    assert response.json()["error"]["code"] == "store_unavailable"


def test_setup_exception_handlers_registers_handlers(app_with_handlers: FastAPI):
    assert AppError in app_with_handlers.exception_handlers
    assert Exception in app_with_handlers.exception_handlers
