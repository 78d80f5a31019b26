"""Per-request orchestration of admission, forwarding and compensation.

Flow for one inbound request:

1. Extract the client identity (trusted IP header) and the path.
2. Ask the rate limiter. A rejection is answered with 429 and leaves no
   trace in the usage counters.
3. Forward once to the upstream; there is no retry.
4. Classify the outcome. Only an upstream status of exactly 500 or a
   transport error is a failure; every other status (404, 502, 503, ...)
   counts as success and is passed through.
5. On failure, refund the consumed slot, record the failure and answer 500.
   On success, record it and stream the upstream response back.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator

import httpx
from fastapi import Request, Response
from fastapi.responses import StreamingResponse

from quota_proxy.adapters.rate_limit.base import AbstractRateLimiter, RateLimitDecision
from quota_proxy.core.errors import StoreUnavailableError, UpstreamAppError
from quota_proxy.core.logging import hash_identity
from quota_proxy.core.responses import (
    CORS_ALLOW_ORIGIN_HEADER,
    CORS_ALLOW_ORIGIN_VALUE,
    failure_response,
    throttled_response,
)
from quota_proxy.services.proxy_forwarder import ProxyForwarder, filter_headers
from quota_proxy.services.usage_stats import Outcome, UsageStatsService

logger = logging.getLogger(__name__)

FAILURE_STATUS = 500


def classify_status(status_code: int) -> Outcome:
    """Map an upstream status code to an accounting outcome."""
    return Outcome.FAILURE if status_code == FAILURE_STATUS else Outcome.SUCCESS


async def _stream_and_close(upstream: httpx.Response) -> AsyncIterator[bytes]:
    try:
        async for chunk in upstream.aiter_raw():
            yield chunk
    finally:
        await upstream.aclose()


def build_passthrough_response(upstream: httpx.Response) -> StreamingResponse:
    """Relay status, headers and the unbuffered body of an upstream response.

    Header bytes are copied as received; the CORS origin header replaces any
    value the upstream sent.
    """
    headers = filter_headers(upstream.headers.raw, drop=(CORS_ALLOW_ORIGIN_HEADER,))
    headers.append(
        (CORS_ALLOW_ORIGIN_HEADER.lower().encode("ascii"), CORS_ALLOW_ORIGIN_VALUE.encode("ascii"))
    )

    response = StreamingResponse(
        _stream_and_close(upstream),
        status_code=upstream.status_code,
    )
    response.raw_headers = [(name.lower(), value) for name, value in headers]
    return response


class RequestHandler:
    """Orchestrates RateLimiter, ProxyForwarder and UsageStats for one request.

    Attributes:
        limiter: Admission decisions and slot refunds.
        usage_stats: Outcome counters.
        forwarder: Upstream client.
        client_ip_header: Header whose value is the client identity.
    """

    def __init__(
        self,
        limiter: AbstractRateLimiter,
        usage_stats: UsageStatsService,
        forwarder: ProxyForwarder,
        *,
        client_ip_header: str = "CF-Connecting-IP",
    ) -> None:
        self.limiter = limiter
        self.usage_stats = usage_stats
        self.forwarder = forwarder
        self.client_ip_header = client_ip_header

    def extract_identity(self, request: Request) -> str:
        """Return the trusted client IP header verbatim ("" when absent).

        Callers without the header all share the empty identity.
        """
        return request.headers.get(self.client_ip_header, "")

    def _request_body(self, request: Request) -> AsyncIterator[bytes] | None:
        if "content-length" in request.headers or "transfer-encoding" in request.headers:
            return request.stream()
        return None

    async def handle(self, request: Request) -> Response:
        """Run the admission/forward/compensate cycle for one inbound request."""
        identity = self.extract_identity(request)
        path = request.url.path
        # Forward the undecoded path so percent-escapes reach the upstream verbatim
        raw_path = request.scope.get("raw_path", b"").decode("latin-1").split("?", 1)[0] or path

        decision = await self.limiter.check(identity, path)
        if not decision.allowed:
            return throttled_response(decision.retry_after_seconds or 0)

        try:
            upstream = await self.forwarder.forward(
                request.method,
                raw_path,
                request.url.query,
                request.headers.raw,
                self._request_body(request),
            )
        except UpstreamAppError:
            await self._compensate(identity, path, decision)
            return failure_response()

        try:
            return await self._settle(request, identity, path, decision, upstream)
        except BaseException:
            # The body stream never started, so nothing else will release the connection
            await upstream.aclose()
            raise

    async def _settle(
        self,
        request: Request,
        identity: str,
        path: str,
        decision: RateLimitDecision,
        upstream: httpx.Response,
    ) -> Response:
        outcome = classify_status(upstream.status_code)
        if outcome is Outcome.FAILURE:
            logger.warning(
                "proxy.upstream_error_status",
                extra={
                    "identity_hash": hash_identity(identity),
                    "status_code": upstream.status_code,
                    "method": request.method,
                    "path": path,
                },
            )
            await self._compensate(identity, path, decision)
        else:
            await self._record(identity, path, Outcome.SUCCESS)

        return build_passthrough_response(upstream)

    async def _compensate(self, identity: str, path: str, decision: RateLimitDecision) -> None:
        """Refund the slot this request consumed, then record the failure.

        Runs at most once per admitted request. Exempt requests consumed no
        slot, so only their failure is recorded.
        """
        if decision.consumed_slot:
            try:
                await self.limiter.rollback(identity)
            except StoreUnavailableError:
                logger.exception(
                    "rate_limit.rollback_failed",
                    extra={"identity_hash": hash_identity(identity)},
                )
        await self._record(identity, path, Outcome.FAILURE)

    async def _record(self, identity: str, path: str, outcome: Outcome) -> None:
        try:
            await self.usage_stats.record(identity, path, outcome)
        except StoreUnavailableError:
            logger.exception(
                "usage_stats.record_failed",
                extra={"identity_hash": hash_identity(identity), "outcome": outcome.value},
            )
