"""Sliding-window-log rate limiter backed by a quota store.

Each client owns a JSON array of admission timestamps (whole UNIX seconds,
in append order) stored under its identity with a TTL equal to the window, so an
idle client's log expires by itself. Stale entries are filtered out when the
log is read; nothing sweeps them in the background.

Concurrency:
    check() is a read-filter-append-write cycle against a store without
    compare-and-swap. Two concurrent requests from one client can read the
    same log and both be admitted, and the later write wins. The limiter can
    therefore over-admit under bursts from a single client, never under-admit.
    rollback() removes the tail entry, which under the same race may be a
    timestamp appended by a different request of that client.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Callable, Iterable, Literal

from quota_proxy.adapters.quota_store.base import AbstractQuotaStore
from quota_proxy.adapters.rate_limit.base import AbstractRateLimiter, RateLimitDecision
from quota_proxy.core.errors import StoreUnavailableError
from quota_proxy.core.logging import hash_identity

logger = logging.getLogger(__name__)

StoreFailureMode = Literal["open", "closed", "error"]


def decode_timestamp_log(raw: str | None) -> list[int]:
    """Parse a stored timestamp log.

    Absent values and values that are not a JSON array of numbers decode to
    an empty log.
    """
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except ValueError:
        logger.warning("rate_limit.corrupt_log", extra={"reason": "invalid_json"})
        return []
    if not isinstance(data, list) or not all(
        isinstance(ts, (int, float)) and not isinstance(ts, bool) for ts in data
    ):
        logger.warning("rate_limit.corrupt_log", extra={"reason": "not_a_timestamp_list"})
        return []
    return [int(ts) for ts in data]


def encode_timestamp_log(timestamps: list[int]) -> str:
    return json.dumps(timestamps, separators=(",", ":"))


class SlidingWindowLogRateLimiter(AbstractRateLimiter):
    """Admit at most ``limit`` requests per client in any ``window_seconds`` span."""

    def __init__(
        self,
        store: AbstractQuotaStore,
        *,
        limit: int,
        window_seconds: int,
        exempt_paths: Iterable[str] = (),
        store_failure_mode: StoreFailureMode = "error",
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the limiter.

        Args:
            store: Partition holding the per-client timestamp logs.
            limit: Maximum admitted non-exempt requests per window.
            window_seconds: Window length in seconds (also the log TTL).
            exempt_paths: Paths that are always admitted without touching the log.
            store_failure_mode: Outcome of check() when the store fails:
                "open" admits, "closed" rejects for a full window, "error"
                re-raises StoreUnavailableError.
            clock: Time source function returning UNIX time in seconds.

        Raises:
            ValueError: If limit, window_seconds or store_failure_mode are invalid.
        """
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if window_seconds < 1:
            raise ValueError("window_seconds must be >= 1")
        if store_failure_mode not in ("open", "closed", "error"):
            raise ValueError("store_failure_mode must be one of: open, closed, error")

        self._store = store
        self._limit = limit
        self._window_seconds = window_seconds
        self._exempt_paths = frozenset(exempt_paths)
        self._store_failure_mode = store_failure_mode
        self._clock = clock

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def window_seconds(self) -> int:
        return self._window_seconds

    def is_exempt(self, path: str) -> bool:
        return path in self._exempt_paths

    async def _load(self, identity: str) -> list[int]:
        return decode_timestamp_log(await self._store.get(identity))

    async def _save(self, identity: str, timestamps: list[int]) -> None:
        await self._store.put(
            identity,
            encode_timestamp_log(timestamps),
            expiration_seconds=self._window_seconds,
        )

    def _allowed(self, remaining: int) -> RateLimitDecision:
        return RateLimitDecision(
            allowed=True,
            limit=self._limit,
            remaining=max(0, remaining),
        )

    def _blocked(self, retry_after: int) -> RateLimitDecision:
        return RateLimitDecision(
            allowed=False,
            limit=self._limit,
            remaining=0,
            retry_after_seconds=retry_after,
        )

    def _on_store_failure(self, identity: str, exc: StoreUnavailableError) -> RateLimitDecision:
        if self._store_failure_mode == "error":
            logger.error(
                "rate_limit.store_failure",
                extra={"identity_hash": hash_identity(identity), "mode": "error"},
            )
            raise exc

        logger.warning(
            "rate_limit.store_failure",
            extra={
                "identity_hash": hash_identity(identity),
                "mode": self._store_failure_mode,
                "error_code": exc.code,
            },
        )
        if self._store_failure_mode == "open":
            return self._allowed(self._limit - 1)
        return self._blocked(self._window_seconds)

    async def check(self, identity: str, path: str, *, now: int | None = None) -> RateLimitDecision:
        if self.is_exempt(path):
            logger.debug(
                "rate_limit.exempt",
                extra={"identity_hash": hash_identity(identity), "path": path},
            )
            return RateLimitDecision(
                allowed=True,
                limit=self._limit,
                remaining=self._limit,
                exempt=True,
            )

        if now is None:
            now = int(self._clock())

        try:
            return await self._admit(identity, now)
        except StoreUnavailableError as exc:
            return self._on_store_failure(identity, exc)

    async def _admit(self, identity: str, now: int) -> RateLimitDecision:
        timestamps = [
            ts for ts in await self._load(identity) if now - ts < self._window_seconds
        ]

        if len(timestamps) >= self._limit:
            # Not necessarily the head: a clock that stepped back leaves the log unsorted
            oldest = min(timestamps)
            wait_time = self._window_seconds - (now - oldest)
            if wait_time > 0:
                # Rejections leave the stored log untouched
                logger.info(
                    "rate_limit.exceeded",
                    extra={
                        "identity_hash": hash_identity(identity),
                        "limit": self._limit,
                        "window_s": self._window_seconds,
                        "retry_after_s": wait_time,
                    },
                )
                return self._blocked(wait_time)
            timestamps.remove(oldest)

        timestamps.append(now)
        await self._save(identity, timestamps)

        remaining = self._limit - len(timestamps)
        logger.debug(
            "rate_limit.allowed",
            extra={
                "identity_hash": hash_identity(identity),
                "limit": self._limit,
                "remaining": remaining,
                "window_s": self._window_seconds,
            },
        )
        return self._allowed(remaining)

    async def rollback(self, identity: str) -> bool:
        timestamps = await self._load(identity)
        if not timestamps:
            logger.debug(
                "rate_limit.rollback_noop",
                extra={"identity_hash": hash_identity(identity)},
            )
            return False

        removed = timestamps.pop()
        await self._save(identity, timestamps)

        logger.info(
            "rate_limit.rollback",
            extra={
                "identity_hash": hash_identity(identity),
                "removed_ts": removed,
                "remaining_entries": len(timestamps),
            },
        )
        return True
