"""Per-client usage statistics.

Counters live in their own store partition with no expiry and never feed
back into admission decisions. Updates are read-modify-write without
atomicity, so concurrent requests from one client may lose an increment.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Iterable

from pydantic import ValidationError

from quota_proxy.adapters.quota_store.base import AbstractQuotaStore
from quota_proxy.core.logging import hash_identity
from quota_proxy.schemas.usage import UsageCounters

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    """Accounting outcome of a forwarded request."""

    SUCCESS = "success"
    FAILURE = "failure"


class UsageStatsService:
    """Records exactly one counter increment per call.

    Attributes:
        store: Partition holding the serialized UsageCounters.
        exempt_paths: Paths counted under ``modelsCount`` whatever the outcome.
    """

    def __init__(self, store: AbstractQuotaStore, *, exempt_paths: Iterable[str] = ()) -> None:
        self.store = store
        self.exempt_paths = frozenset(exempt_paths)

    async def get(self, identity: str) -> UsageCounters:
        """Return the stored counters for identity (all zero when absent)."""
        raw = await self.store.get(identity)
        if not raw:
            return UsageCounters()
        try:
            return UsageCounters.model_validate_json(raw)
        except ValidationError:
            logger.warning(
                "usage_stats.corrupt_counters",
                extra={"identity_hash": hash_identity(identity)},
            )
            return UsageCounters()

    async def record(self, identity: str, path: str, outcome: Outcome) -> UsageCounters:
        """Increment the counter matching path and outcome, then persist.

        Priority order: exempted path, then failure, then success.

        Returns:
            The updated counters.
        """
        counters = await self.get(identity)

        if path in self.exempt_paths:
            counters.models_count += 1
            bucket = "modelsCount"
        elif outcome is Outcome.FAILURE:
            counters.hit_max_limit_count += 1
            bucket = "hitMaxLimitCount"
        else:
            counters.success_count += 1
            bucket = "successCount"

        await self.store.put(identity, counters.model_dump_json(by_alias=True))

        logger.debug(
            "usage_stats.recorded",
            extra={"identity_hash": hash_identity(identity), "bucket": bucket},
        )
        return counters
