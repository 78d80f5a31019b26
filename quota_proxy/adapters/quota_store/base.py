"""Quota store interface.

The store is the only shared mutable state of the proxy. It deliberately
exposes no delete, no listing and no compare-and-swap: every read-modify-write
sequence built on top of it is best-effort under concurrency.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class AbstractQuotaStore(ABC):
    """Key-value store with optional per-entry time-to-live.

    Attributes:
        namespace: Logical partition name; backends sharing a physical store
            use it as a key prefix so partitions never collide.
    """

    def __init__(self, *, namespace: str) -> None:
        if not namespace:
            raise ValueError("namespace must be a non-empty string")
        self.namespace = namespace

    def _qualify(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the stored value for key, or None when absent or expired.

        Raises:
            StoreUnavailableError: If the backend cannot be reached.
        """
        raise NotImplementedError

    @abstractmethod
    async def put(
        self,
        key: str,
        value: str,
        *,
        expiration_seconds: int | None = None,
    ) -> None:
        """Write value under key unconditionally.

        Args:
            key: Entry key (a client identity; may be empty).
            value: Serialized value.
            expiration_seconds: When given, the entry becomes unreadable this
                many seconds after this write. Each write resets the clock;
                a write without it stores the entry with no expiry.

        Raises:
            StoreUnavailableError: If the backend cannot be reached.
        """
        raise NotImplementedError

    async def close(self) -> None:
        """Release backend resources (no-op by default)."""
        return None
