"""In-memory quota store with lazy TTL expiry.

Notes:
- Per-process only: running multiple workers gives each worker its own
  quota state, multiplying the effective limit.
- Each single get/put is atomic (guarded by a lock); sequences of them are not.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable

from quota_proxy.adapters.quota_store.base import AbstractQuotaStore


@dataclass
class _Entry:
    value: str
    expires_at: float | None


class InMemoryQuotaStore(AbstractQuotaStore):
    """Dictionary-backed store honouring per-entry expiry.

    Expired entries are dropped when they are next read, never swept in the
    background.
    """

    def __init__(
        self,
        *,
        namespace: str,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the in-memory store.

        Args:
            namespace: Logical partition name.
            clock: Time source function returning UNIX time in seconds.
        """
        super().__init__(namespace=namespace)
        self._clock = clock
        self._lock = threading.RLock()
        self._entries: dict[str, _Entry] = {}

    def _is_expired(self, entry: _Entry, now: float) -> bool:
        return entry.expires_at is not None and now >= entry.expires_at

    async def get(self, key: str) -> str | None:
        qualified = self._qualify(key)
        with self._lock:
            entry = self._entries.get(qualified)
            if entry is None:
                return None
            if self._is_expired(entry, self._clock()):
                del self._entries[qualified]
                return None
            return entry.value

    async def put(
        self,
        key: str,
        value: str,
        *,
        expiration_seconds: int | None = None,
    ) -> None:
        if expiration_seconds is not None and expiration_seconds < 1:
            raise ValueError("expiration_seconds must be >= 1")

        expires_at = None
        if expiration_seconds is not None:
            expires_at = self._clock() + expiration_seconds

        with self._lock:
            self._entries[self._qualify(key)] = _Entry(value=value, expires_at=expires_at)

    def clear(self) -> None:
        """Remove all entries (useful in tests)."""
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
