"""
Subscription Monitor - Client-side subscription cache with cooldown and breaker.

States:
    IDLE      remote check allowed
    CHECKING  a remote check is in flight
    COOLDOWN  a check ran recently; only refresh(force=True) checks again
    DISABLED  check-subscription was rate limited; remote checks are skipped
              until the disable window elapses (no half-open probing)

Local data (GET /subscription) can always be read, whatever the state.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

from structlog import get_logger

from flikkt.client.functions import FunctionsClient

logger = get_logger(__name__)

CHECK_COOLDOWN = timedelta(minutes=5)
DISABLE_WINDOW = timedelta(minutes=30)


def _utc_now() -> datetime:
    return datetime.now(UTC)


class MonitorState(str, Enum):
    IDLE = "idle"
    CHECKING = "checking"
    COOLDOWN = "cooldown"
    DISABLED = "disabled"


@dataclass(frozen=True)
class SubscriptionData:
    """Cached subscriber fields as last read from the backend."""

    subscribed: bool = False
    subscription_tier: str | None = None
    subscription_end: str | None = None
    scans_used_this_month: int = 0

    @classmethod
    def from_payload(cls, payload: Any) -> "SubscriptionData":
        if not isinstance(payload, dict):
            return cls()
        return cls(
            subscribed=bool(payload.get("subscribed", False)),
            subscription_tier=payload.get("subscription_tier"),
            subscription_end=payload.get("subscription_end"),
            scans_used_this_month=int(payload.get("scans_used_this_month") or 0),
        )


class SubscriptionMonitor:
    """Keeps SubscriptionData fresh without flooding check-subscription."""

    def __init__(
        self,
        client: FunctionsClient,
        clock: Callable[[], datetime] = _utc_now,
        cooldown: timedelta = CHECK_COOLDOWN,
        disable_window: timedelta = DISABLE_WINDOW,
    ) -> None:
        self.client = client
        self.clock = clock
        self.cooldown = cooldown
        self.disable_window = disable_window
        self.data = SubscriptionData()
        self._checking = False
        self._last_check_at: datetime | None = None
        self._disabled_until: datetime | None = None

    @property
    def state(self) -> MonitorState:
        now = self.clock()
        if self._disabled_until is not None:
            if now < self._disabled_until:
                return MonitorState.DISABLED
            self._disabled_until = None
            logger.info("subscription_checks_reenabled")
        if self._checking:
            return MonitorState.CHECKING
        if self._last_check_at is not None and now < self._last_check_at + self.cooldown:
            return MonitorState.COOLDOWN
        return MonitorState.IDLE

    @property
    def disabled_until(self) -> datetime | None:
        return self._disabled_until

    async def refresh(self, force: bool = False) -> SubscriptionData:
        """
        Sync with Stripe through check-subscription, then reload local data.

        force skips the cooldown but never the breaker.
        """
        state = self.state
        if state is MonitorState.DISABLED:
            logger.info(
                "subscription_check_skipped_disabled",
                disabled_until=self._disabled_until.isoformat() if self._disabled_until else None,
            )
            return await self.fetch_local()
        if state is MonitorState.CHECKING:
            return self.data
        if state is MonitorState.COOLDOWN and not force:
            logger.debug("subscription_check_skipped_cooldown")
            return self.data

        self._checking = True
        self._last_check_at = self.clock()
        try:
            response = await self.client.invoke("check-subscription")
        finally:
            self._checking = False

        if response.error is not None:
            if response.error.rate_limited:
                self._disabled_until = self.clock() + self.disable_window
                logger.warning(
                    "subscription_checks_disabled",
                    status_code=response.error.status_code,
                    disabled_until=self._disabled_until.isoformat(),
                )
            else:
                logger.error(
                    "subscription_check_failed",
                    status_code=response.error.status_code,
                    error=response.error.message,
                )

        return await self.fetch_local()

    async def fetch_local(self) -> SubscriptionData:
        """Read the stored subscriber row; keeps the cached data on failure."""
        response = await self.client.fetch_subscription()
        if response.error is not None:
            logger.error("subscription_fetch_failed", error=response.error.message)
            return self.data
        self.data = SubscriptionData.from_payload(response.data)
        return self.data

    def reset(self) -> None:
        """Forget cached data and timers, e.g. on sign-out."""
        self.data = SubscriptionData()
        self._checking = False
        self._last_check_at = None
        self._disabled_until = None
