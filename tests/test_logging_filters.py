"""Tests for sensitive data filtering in logs."""

from __future__ import annotations

import json
import logging
from io import StringIO

from quota_proxy.core.logging import (
    JsonFormatter,
    RequestIdFilter,
    SensitiveDataFilter,
    clear_request_id,
    hash_identity,
    set_request_id,
)


def _capture(name: str) -> tuple[logging.Logger, StringIO]:
    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)
    logger.handlers.clear()
    logger.propagate = False

    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.addFilter(RequestIdFilter())
    handler.addFilter(SensitiveDataFilter())
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    return logger, stream


def test_sensitive_filter_redacts_forwarded_credentials():
    """Ensure credential headers relayed by the proxy never reach logs."""

    logger, stream = _capture("test_redaction")

    logger.info(
        "proxy.forward",
        extra={
            "authorization": "Bearer sk-secret-123",
            "cookie": "session=abc",
            "safe_field": "visible",
        },
    )

    output = stream.getvalue()

    assert "sk-secret-123" not in output
    assert "session=abc" not in output
    assert "[REDACTED]" in output
    assert "visible" in output


def test_sensitive_filter_redacts_nested_headers():
    """Ensure nested sensitive fields are redacted."""

    logger, stream = _capture("test_nested")

    logger.info(
        "nested_event",
        extra={
            "headers": {
                "Authorization": "Bearer nested-secret",
                "user-agent": "pytest",
            },
        },
    )

    output = stream.getvalue()

    assert "nested-secret" not in output
    assert "[REDACTED]" in output
    assert "pytest" in output


def test_sensitive_filter_allows_safe_fields():
    """Verify rate limit events pass through unmodified."""

    logger, stream = _capture("test_safe_fields")

    logger.info(
        "rate_limit.exceeded",
        extra={
            "identity_hash": "0123456789abcdef",
            "limit": 2,
            "retry_after_s": 120,
        },
    )

    record = json.loads(stream.getvalue())

    assert record["message"] == "rate_limit.exceeded"
    assert record["identity_hash"] == "0123456789abcdef"
    assert record["retry_after_s"] == 120
    assert "[REDACTED]" not in stream.getvalue()


def test_request_id_from_context_is_attached():
    logger, stream = _capture("test_request_id")

    set_request_id("req-abc")
    try:
        logger.info("event")
    finally:
        clear_request_id()

    assert json.loads(stream.getvalue())["request_id"] == "req-abc"


def test_hash_identity_does_not_expose_ip():
    hashed = hash_identity("203.0.113.7")

    assert len(hashed) == 16
    assert "203.0.113.7" not in hashed
    assert hashed == hash_identity("203.0.113.7")
    assert hash_identity(None) == hash_identity("")
