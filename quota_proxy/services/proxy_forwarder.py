"""Upstream forwarding over httpx.

Builds the outbound request from the inbound one (same method, headers and
streamed body, Host rewritten to the upstream authority) and returns the
upstream response unread so its body can be streamed back to the caller.

Headers travel as raw ``(name, value)`` byte pairs in both directions, so
values outside ASCII (obs-text, UTF-8 filenames) are relayed byte for byte.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator, Iterable

import httpx

from quota_proxy.core.errors import UpstreamAppError

logger = logging.getLogger(__name__)

RawHeaders = Iterable[tuple[bytes, bytes]]

# Connection-scoped headers that must not be relayed by a proxy (RFC 9110 7.6.1)
HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailer",
        "transfer-encoding",
        "upgrade",
    }
)


def _header_name(name: bytes) -> str:
    return name.decode("latin-1").lower()


def connection_tokens(headers: RawHeaders) -> set[str]:
    """Header names a sender listed in its Connection header(s)."""
    tokens: set[str] = set()
    for name, value in headers:
        if _header_name(name) == "connection":
            tokens.update(
                token.strip().lower()
                for token in value.decode("latin-1").split(",")
                if token.strip()
            )
    return tokens


def filter_headers(
    headers: RawHeaders,
    *,
    drop: Iterable[str] = (),
) -> list[tuple[bytes, bytes]]:
    """Return raw headers without hop-by-hop entries and the extra names in drop.

    Hop-by-hop covers the fixed RFC list plus every name the Connection header
    nominates. Repeated headers (e.g. several Set-Cookie lines) are kept as
    separate items, in order, with their bytes untouched.
    """
    headers = list(headers)
    excluded = (
        HOP_BY_HOP_HEADERS
        | connection_tokens(headers)
        | {name.lower() for name in drop}
    )
    return [(name, value) for name, value in headers if _header_name(name) not in excluded]


class ProxyForwarder:
    """Sends requests to a fixed upstream origin.

    Attributes:
        upstream_origin: Scheme and authority every request is sent to.
    """

    def __init__(
        self,
        upstream_origin: str,
        *,
        timeout_seconds: float = 60.0,
        follow_redirects: bool = True,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the forwarder.

        Args:
            upstream_origin: Upstream origin, e.g. "https://api.example.com".
            timeout_seconds: Timeout applied to connect, read and write.
            follow_redirects: Whether the upstream request follows redirects.
            client: Pre-built client (tests inject one with a MockTransport).

        Raises:
            ValueError: If upstream_origin is not an absolute http(s) URL.
        """
        origin = httpx.URL(upstream_origin)
        if origin.scheme not in ("http", "https") or not origin.host:
            raise ValueError("upstream_origin must be an absolute http(s) URL")

        self.upstream_origin = str(upstream_origin).rstrip("/")
        self._authority = origin.netloc.decode("ascii")
        self._follow_redirects = follow_redirects
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    @property
    def upstream_authority(self) -> str:
        return self._authority

    def build_target_url(self, path: str, query: str = "") -> str:
        """Prefix the inbound path and query with the upstream origin verbatim."""
        url = self.upstream_origin + path
        if query:
            url = f"{url}?{query}"
        return url

    def build_request(
        self,
        method: str,
        path: str,
        query: str,
        headers: RawHeaders,
        body: AsyncIterator[bytes] | bytes | None = None,
    ) -> httpx.Request:
        """Build the outbound request descriptor from raw inbound headers.

        An inbound Content-Length is kept so a streamed body is relayed with the
        same framing; without one httpx sends it chunked.
        """
        outbound = filter_headers(headers, drop=("host",))
        outbound.append((b"host", self._authority.encode("ascii")))
        return self._client.build_request(
            method,
            self.build_target_url(path, query),
            headers=outbound,
            content=body,
        )

    async def forward(
        self,
        method: str,
        path: str,
        query: str,
        headers: RawHeaders,
        body: AsyncIterator[bytes] | bytes | None = None,
    ) -> httpx.Response:
        """Build and send one request; any failure surfaces as UpstreamAppError.

        Raises:
            UpstreamAppError: If the request cannot be built (e.g. an unusable
                URL) or fails in transport.
        """
        try:
            request = self.build_request(method, path, query, headers, body)
        except (httpx.InvalidURL, ValueError) as exc:
            raise self._upstream_error(
                exc,
                code="upstream_request_invalid",
                method=method,
                upstream_url=self.build_target_url(path, query),
            ) from exc
        return await self.send(request)

    async def send(self, request: httpx.Request) -> httpx.Response:
        """Issue the request, returning the response with its body unread.

        The caller owns the response and must close it (``aclose``) once the
        body has been streamed.

        Raises:
            UpstreamAppError: On any transport failure (DNS, connect, timeout,
                protocol error, too many redirects).
        """
        logger.debug(
            "proxy.forward",
            extra={"method": request.method, "upstream_url": str(request.url)},
        )
        try:
            return await self._client.send(
                request,
                stream=True,
                follow_redirects=self._follow_redirects,
            )
        except httpx.HTTPError as exc:
            raise self._upstream_error(
                exc,
                code="upstream_transport_error",
                method=request.method,
                upstream_url=str(request.url),
            ) from exc

    def _upstream_error(
        self, exc: Exception, *, code: str, method: str, upstream_url: str
    ) -> UpstreamAppError:
        logger.warning(
            "proxy.transport_error",
            extra={
                "method": method,
                "upstream_url": upstream_url,
                "error_type": type(exc).__name__,
                "error": str(exc),
            },
        )
        return UpstreamAppError(
            code=code,
            message="Upstream request failed",
            details={"error_type": type(exc).__name__, "upstream_url": upstream_url},
        )

    async def aclose(self) -> None:
        await self._client.aclose()
