"""
Tests for the client-side RateLimiter.
"""

from datetime import UTC, datetime, timedelta

import pytest

from flikkt.client.rate_limiter import DEFAULT_LIMIT, FUNCTION_LIMITS, RateLimiter


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 15, 12, 0, 0, tzinfo=UTC))


@pytest.fixture
def limiter(clock: FakeClock) -> RateLimiter:
    return RateLimiter(limits={"x": 3}, clock=clock)


class TestCanExecute:
    """Tests for the per-window call budget."""

    def test_fourth_call_in_window_denied(self, limiter: RateLimiter, clock: FakeClock):
        """With limit 3, calls at t=0, 1, 2 pass and the call at t=3 is denied."""
        results = []
        for _ in range(4):
            results.append(limiter.can_execute("x"))
            clock.advance(1)

        assert results == [True, True, True, False]

    def test_window_reset_after_expiry(self, limiter: RateLimiter, clock: FakeClock):
        """A call after the window ends starts a new window with count 1."""
        for _ in range(3):
            assert limiter.can_execute("x") is True
        assert limiter.can_execute("x") is False

        clock.advance(61)

        assert limiter.can_execute("x") is True
        entry = limiter.get_entry("x")
        assert entry is not None
        assert entry.count == 1
        assert entry.reset_time == clock.now + timedelta(seconds=60)

    def test_call_exactly_at_reset_time_still_in_window(
        self, limiter: RateLimiter, clock: FakeClock
    ):
        """The window only resets once now is strictly past reset_time."""
        for _ in range(3):
            limiter.can_execute("x")

        clock.advance(60)

        assert limiter.can_execute("x") is False

    def test_denied_call_does_not_increment(self, limiter: RateLimiter):
        for _ in range(5):
            limiter.can_execute("x")

        entry = limiter.get_entry("x")
        assert entry is not None
        assert entry.count == 3

    def test_functions_have_independent_budgets(self, limiter: RateLimiter):
        for _ in range(3):
            limiter.can_execute("x")

        assert limiter.can_execute("x") is False
        assert limiter.can_execute("y") is True


class TestLimits:
    """Tests for the limits table."""

    def test_default_table(self, clock: FakeClock):
        limiter = RateLimiter(clock=clock)

        assert limiter.limit_for("check-subscription") == 5
        assert limiter.limit_for("analyze-medication") == 20
        assert limiter.limit_for("create-checkout") == 3
        assert limiter.limit_for("cancel-subscription") == 2
        assert limiter.limit_for("customer-portal") == 2
        assert limiter.limit_for("something-else") == DEFAULT_LIMIT == 10

    def test_table_is_copied(self, clock: FakeClock):
        limiter = RateLimiter(clock=clock)
        limiter.limits["check-subscription"] = 99

        assert FUNCTION_LIMITS["check-subscription"] == 5

    def test_cancel_subscription_allows_two_calls(self, clock: FakeClock):
        limiter = RateLimiter(clock=clock)

        assert limiter.can_execute("cancel-subscription") is True
        assert limiter.can_execute("cancel-subscription") is True
        assert limiter.can_execute("cancel-subscription") is False


class TestHelpers:
    """Tests for remaining-calls and reset-time helpers."""

    def test_remaining_calls_unknown_function(self, limiter: RateLimiter):
        assert limiter.get_remaining_calls("x") == 3

    def test_remaining_calls_counts_down(self, limiter: RateLimiter):
        limiter.can_execute("x")
        limiter.can_execute("x")

        assert limiter.get_remaining_calls("x") == 1

    def test_remaining_calls_never_negative(self, limiter: RateLimiter):
        for _ in range(10):
            limiter.can_execute("x")

        assert limiter.get_remaining_calls("x") == 0

    def test_remaining_calls_restored_after_window(self, limiter: RateLimiter, clock: FakeClock):
        for _ in range(3):
            limiter.can_execute("x")

        clock.advance(61)

        assert limiter.get_remaining_calls("x") == 3

    def test_reset_time_without_entry_is_now(self, limiter: RateLimiter, clock: FakeClock):
        assert limiter.get_reset_time("x") == clock.now

    def test_reset_time_is_window_end(self, limiter: RateLimiter, clock: FakeClock):
        start = clock.now
        limiter.can_execute("x")
        clock.advance(10)

        assert limiter.get_reset_time("x") == start + timedelta(seconds=60)
