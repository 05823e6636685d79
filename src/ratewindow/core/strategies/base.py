"""
Decision record and the contract for window counters.

A decision is computed fresh on every call and never persisted. Callers
that receive an exception instead of a Decision must treat it as "no
decision was made", not as a denial.
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass

from ratewindow.core.rate import Rate


@dataclass(frozen=True)
class Decision:
    """
    Immutable outcome of a counter update.

    Attributes:
        limit: Maximum number of requests allowed in the window.
        remaining: Requests left in the current window, never below 0.
        reset_at: Unix timestamp (seconds) when the window expires.
        reached: True once the count has gone past the limit.

    Example headers this maps to:
        X-RateLimit-Limit: {limit}
        X-RateLimit-Remaining: {remaining}
        X-RateLimit-Reset: {reset_at}
    """

    limit: int
    remaining: int
    reset_at: int
    reached: bool

    @property
    def is_allowed(self) -> bool:
        """Convenience property to check if request should proceed."""
        return not self.reached

    def retry_after(self, now: float | None = None) -> int:
        """Seconds until the window resets, never negative."""
        if now is None:
            now = time.time()
        return max(0, self.reset_at - int(now))

    def headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_at),
        }


class CounterStrategy(ABC):
    """
    Abstract base class for shared-store rate counters.
    """

    @abstractmethod
    async def get(self, identifier: str, rate: Rate) -> Decision:
        """
        Count one request for `identifier` and decide against `rate`.

        This method is called for every request that needs limiting,
        possibly by many processes at once for the same identifier.

        Args:
            identifier: Unique identifier for the caller.
                 Examples: "user:123", "ip:192.168.1.1", "api_key:abc123"
            rate: Limit and period to enforce.

        Returns:
            Decision with the verdict and header metadata.
        """
        pass
