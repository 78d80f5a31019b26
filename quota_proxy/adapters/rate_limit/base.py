"""Rate limiter interfaces."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitDecision:
    """Result of an admission check.

    Attributes:
        allowed: Whether the request may be forwarded.
        limit: Max admitted requests per window.
        remaining: Slots left in the window after this decision (0 when blocked).
        retry_after_seconds: Whole seconds until a slot frees up when blocked.
        exempt: True when the path is unmetered and no slot was consumed.
    """

    allowed: bool
    limit: int
    remaining: int
    retry_after_seconds: int | None = None
    exempt: bool = False

    @property
    def consumed_slot(self) -> bool:
        """Whether this decision appended an entry that a rollback may refund."""
        return self.allowed and not self.exempt


class AbstractRateLimiter(ABC):
    """Interface for rate limiters that support refunding a consumed slot."""

    @abstractmethod
    async def check(self, identity: str, path: str, *, now: int | None = None) -> RateLimitDecision:
        """Decide whether a request from identity to path may proceed.

        An allowed, non-exempt decision consumes one slot of the identity's
        window.

        Args:
            identity: Client identity (the trusted client IP header value).
            path: Request path, used to recognise unmetered routes.
            now: UNIX time in whole seconds; defaults to the limiter's clock.

        Returns:
            RateLimitDecision describing whether it was allowed.
        """
        raise NotImplementedError

    @abstractmethod
    async def rollback(self, identity: str) -> bool:
        """Refund the most recently consumed slot of identity.

        Returns:
            True when an entry was removed, False when there was nothing to refund.
        """
        raise NotImplementedError
