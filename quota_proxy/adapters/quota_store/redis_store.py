"""Redis-backed quota store.

Shares quota state between every proxy instance pointed at the same Redis.
Uses plain GET and SET with EX, so it offers the same best-effort semantics
as the in-memory store: no transaction wraps a read-modify-write cycle.
"""

from __future__ import annotations

import logging
from typing import Any

import redis.asyncio as redis
from redis.exceptions import RedisError

from quota_proxy.adapters.quota_store.base import AbstractQuotaStore
from quota_proxy.core.errors import StoreUnavailableError

logger = logging.getLogger(__name__)


class RedisQuotaStore(AbstractQuotaStore):
    """Quota store persisted in Redis under ``{namespace}:{key}``.

    Args:
        redis_url: Redis connection URL (e.g. redis://localhost:6379/0).
        namespace: Logical partition name, used as key prefix.
        _redis_client: Pre-built asyncio client (tests inject fakeredis here).
    """

    def __init__(
        self,
        *,
        redis_url: str,
        namespace: str,
        _redis_client: Any | None = None,
    ) -> None:
        super().__init__(namespace=namespace)
        if _redis_client is not None:
            self._client = _redis_client
        else:
            self._client = redis.Redis.from_url(redis_url, decode_responses=True)

    def _unavailable(self, operation: str, exc: Exception) -> StoreUnavailableError:
        logger.warning(
            "quota_store.redis_error",
            extra={
                "namespace": self.namespace,
                "operation": operation,
                "error_type": type(exc).__name__,
                "error": str(exc),
            },
        )
        return StoreUnavailableError(
            code="store_unavailable",
            message=f"Quota store {operation} failed",
            details={
                "backend": "redis",
                "operation": operation,
                "error_type": type(exc).__name__,
            },
        )

    async def get(self, key: str) -> str | None:
        try:
            value = await self._client.get(self._qualify(key))
        except RedisError as exc:
            raise self._unavailable("get", exc) from exc
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    async def put(
        self,
        key: str,
        value: str,
        *,
        expiration_seconds: int | None = None,
    ) -> None:
        try:
            await self._client.set(self._qualify(key), value, ex=expiration_seconds)
        except RedisError as exc:
            raise self._unavailable("put", exc) from exc

    async def close(self) -> None:
        await self._client.aclose()
