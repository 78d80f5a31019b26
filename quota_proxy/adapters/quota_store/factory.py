"""Factory for quota store backends."""

from __future__ import annotations

from dataclasses import dataclass

from quota_proxy.adapters.quota_store.base import AbstractQuotaStore
from quota_proxy.adapters.quota_store.in_memory import InMemoryQuotaStore
from quota_proxy.adapters.quota_store.redis_store import RedisQuotaStore
from quota_proxy.core.config import StoreSettings
from quota_proxy.core.errors import ValidationAppError


@dataclass(frozen=True)
class QuotaStores:
    """The two logical partitions the proxy writes to.

    Attributes:
        rate_limits: Timestamp logs, one per client, written with a TTL.
        stats: Usage counters, one per client, written without expiry.
    """

    rate_limits: AbstractQuotaStore
    stats: AbstractQuotaStore

    async def close(self) -> None:
        await self.rate_limits.close()
        await self.stats.close()


def create_quota_store(store_settings: StoreSettings, *, namespace: str) -> AbstractQuotaStore:
    """Instantiate the configured backend for one partition.

    StoreSettings already restricts ``backend`` to the supported names; the
    final branch guards callers that pass another settings-like object.

    Raises:
        ValidationAppError: If the configured backend is unknown.
    """
    backend = store_settings.backend.lower()

    if backend == "memory":
        return InMemoryQuotaStore(namespace=namespace)

    if backend == "redis":
        return RedisQuotaStore(redis_url=store_settings.redis_url, namespace=namespace)

    raise ValidationAppError(
        code="store_unknown_backend",
        message=f"Unknown quota store backend: '{backend}'. Supported backends: memory, redis",
    )


def create_quota_stores(store_settings: StoreSettings) -> QuotaStores:
    """Build both partitions from store settings."""
    return QuotaStores(
        rate_limits=create_quota_store(
            store_settings, namespace=store_settings.rate_limit_namespace
        ),
        stats=create_quota_store(store_settings, namespace=store_settings.stats_namespace),
    )
