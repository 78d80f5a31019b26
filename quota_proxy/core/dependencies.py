"""Process-wide wiring of the proxy's collaborators.

Builds the quota stores, rate limiter, usage statistics, upstream forwarder
and request handler from settings, and caches them in-module so state and
connection pools survive across requests. Route handlers depend on
``get_request_handler`` only; tests override that dependency with a handler
built around fakes.
"""

from __future__ import annotations

import logging

from quota_proxy.adapters.quota_store.factory import QuotaStores, create_quota_stores
from quota_proxy.adapters.rate_limit.sliding_window import SlidingWindowLogRateLimiter
from quota_proxy.core.config import Settings, settings
from quota_proxy.services.proxy_forwarder import ProxyForwarder
from quota_proxy.services.request_handler import RequestHandler
from quota_proxy.services.usage_stats import UsageStatsService

logger = logging.getLogger(__name__)


_stores: QuotaStores | None = None
_handler: RequestHandler | None = None


def build_request_handler(cfg: Settings, stores: QuotaStores) -> RequestHandler:
    """Assemble a RequestHandler from explicit configuration and stores."""
    exempt_paths = cfg.rate_limit.exempt_path_set

    limiter = SlidingWindowLogRateLimiter(
        stores.rate_limits,
        limit=cfg.rate_limit.limit,
        window_seconds=cfg.rate_limit.window_seconds,
        exempt_paths=exempt_paths,
        store_failure_mode=cfg.rate_limit.store_failure_mode,
    )
    usage_stats = UsageStatsService(stores.stats, exempt_paths=exempt_paths)
    forwarder = ProxyForwarder(
        cfg.proxy.upstream_origin,
        timeout_seconds=cfg.proxy.timeout_seconds,
        follow_redirects=cfg.proxy.follow_redirects,
    )
    return RequestHandler(
        limiter,
        usage_stats,
        forwarder,
        client_ip_header=cfg.proxy.client_ip_header,
    )


def get_request_handler() -> RequestHandler:
    """Return the process-wide request handler, building it on first use."""

    global _stores, _handler

    if _handler is None:
        _stores = create_quota_stores(settings.store)
        _handler = build_request_handler(settings, _stores)
        logger.info(
            "proxy.configured",
            extra={
                "upstream_origin": settings.proxy.upstream_origin,
                "store_backend": settings.store.backend,
                "limit": settings.rate_limit.limit,
                "window_s": settings.rate_limit.window_seconds,
                "exempt_paths": sorted(settings.rate_limit.exempt_path_set),
            },
        )

    return _handler


async def shutdown() -> None:
    """Close the upstream client and store connections, dropping the cache."""

    global _stores, _handler

    if _handler is not None:
        await _handler.forwarder.aclose()
    if _stores is not None:
        await _stores.close()
    _handler = None
    _stores = None
