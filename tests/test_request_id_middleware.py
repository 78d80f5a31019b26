from __future__ import annotations

import httpx
from fastapi.testclient import TestClient

from conftest import CLIENT_IP

IDENTITY = {"CF-Connecting-IP": CLIENT_IP}


def test_incoming_request_id_is_echoed_on_forwarded_response(client: TestClient, upstream):
    resp = client.get("/v1/chat", headers={**IDENTITY, "X-Request-ID": "fwd-123"})

    assert resp.status_code == 200
    assert resp.headers.get("X-Request-ID") == "fwd-123"
    # The caller's id also travels upstream with the other request headers
    assert upstream.requests[0].headers["x-request-id"] == "fwd-123"


def test_upstream_request_id_does_not_replace_the_callers(client: TestClient, upstream):
    upstream.respond = lambda request: httpx.Response(
        200, headers={"x-request-id": "upstream-own-id"}, text="ok"
    )

    resp = client.get("/v1/chat", headers={**IDENTITY, "X-Request-ID": "caller-id"})

    assert resp.headers.get_list("X-Request-ID") == ["caller-id"]


def test_throttled_response_carries_request_id_and_duration(client: TestClient, upstream):
    client.get("/v1/chat", headers=IDENTITY)
    client.get("/v1/chat", headers=IDENTITY)

    resp = client.get("/v1/chat", headers={**IDENTITY, "X-Request-ID": "over-limit-1"})

    assert resp.status_code == 429
    assert resp.headers.get("X-Request-ID") == "over-limit-1"
    assert resp.headers.get("X-Request-Duration-ms") is not None
    assert len(upstream.requests) == 2


def test_generates_request_id_for_transport_failure(client: TestClient, upstream):
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    upstream.respond = refuse

    resp = client.get("/v1/chat", headers=IDENTITY)

    assert resp.status_code == 500
    generated = resp.headers.get("X-Request-ID")
    assert generated
    assert isinstance(generated, str)
