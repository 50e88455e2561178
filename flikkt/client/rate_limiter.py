"""
Client-side rate limiter for remote function calls.

Fixed windows per function name, held in process memory only. Advisory: it
stops a misbehaving client from hammering the backend, it is not a security
boundary.
"""

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from structlog import get_logger

logger = get_logger(__name__)

DEFAULT_LIMIT = 10
DEFAULT_WINDOW = timedelta(seconds=60)

FUNCTION_LIMITS: dict[str, int] = {
    "check-subscription": 5,
    "analyze-medication": 20,
    "create-checkout": 3,
    "cancel-subscription": 2,
    "customer-portal": 2,
}


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass
class RateLimitEntry:
    """Calls made in the current window and when the window ends."""

    count: int
    reset_time: datetime


class RateLimiter:
    """Per-function call budget over a fixed window."""

    def __init__(
        self,
        limits: Mapping[str, int] | None = None,
        default_limit: int = DEFAULT_LIMIT,
        window: timedelta = DEFAULT_WINDOW,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.limits = dict(FUNCTION_LIMITS if limits is None else limits)
        self.default_limit = default_limit
        self.window = window
        self.clock = clock
        self._entries: dict[str, RateLimitEntry] = {}

    def limit_for(self, function_name: str) -> int:
        return self.limits.get(function_name, self.default_limit)

    def can_execute(self, function_name: str) -> bool:
        """Consume one call from the budget; False when the budget is spent."""
        now = self.clock()
        limit = self.limit_for(function_name)

        entry = self._entries.get(function_name)
        if entry is None or now > entry.reset_time:
            entry = RateLimitEntry(count=0, reset_time=now + self.window)
            self._entries[function_name] = entry

        if entry.count >= limit:
            logger.warning(
                "rate_limit_exceeded",
                function_name=function_name,
                limit=limit,
                window_seconds=self.window.total_seconds(),
            )
            return False

        entry.count += 1
        return True

    def get_remaining_calls(self, function_name: str) -> int:
        limit = self.limit_for(function_name)
        entry = self._entries.get(function_name)
        if entry is None or self.clock() > entry.reset_time:
            return limit
        return max(0, limit - entry.count)

    def get_reset_time(self, function_name: str) -> datetime:
        """End of the current window, or now if the function was never called."""
        entry = self._entries.get(function_name)
        return entry.reset_time if entry else self.clock()

    def get_entry(self, function_name: str) -> RateLimitEntry | None:
        return self._entries.get(function_name)
