"""Response envelopes emitted by the proxy itself.

Every response leaving the proxy carries a permissive CORS origin header,
including the ones it generates without contacting the upstream.
"""

from __future__ import annotations

from fastapi import Response, status

CORS_ALLOW_ORIGIN_HEADER = "Access-Control-Allow-Origin"
CORS_ALLOW_ORIGIN_VALUE = "*"


def throttled_response(retry_after_seconds: int) -> Response:
    """429 answer for a request rejected by the rate limiter."""
    return Response(
        content="Too Many Requests",
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        media_type="text/plain",
        headers={
            "Retry-After": str(int(retry_after_seconds)),
            CORS_ALLOW_ORIGIN_HEADER: CORS_ALLOW_ORIGIN_VALUE,
        },
    )


def failure_response() -> Response:
    """500 answer for a forward that failed in transport or an internal error."""
    return Response(
        content="Internal Server Error",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        media_type="text/plain",
        headers={CORS_ALLOW_ORIGIN_HEADER: CORS_ALLOW_ORIGIN_VALUE},
    )
