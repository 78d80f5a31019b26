"""Application factory for the FastAPI app.

Centralizes app construction (middleware, handlers, routers, lifespan) so
tests can build isolated instances.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from quota_proxy import __version__
from quota_proxy.api.routes import health_router, proxy_router
from quota_proxy.core import dependencies
from quota_proxy.core.config import settings
from quota_proxy.core.exception_handlers import setup_exception_handlers
from quota_proxy.core.logging import configure_logging
from quota_proxy.core.middleware import request_id_middleware


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    await dependencies.shutdown()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance.

    Generated docs routes are disabled: every path other than the health
    check belongs to the upstream.

    Returns:
        Configured FastAPI app with middleware, handlers and routers.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="Quota Proxy",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )

    # Middleware
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers (health first: the proxy route matches every path)
    app.include_router(health_router)
    app.include_router(proxy_router)

    return app
