"""
Tests for SubscriptionService.

Stripe is replaced by an AsyncMock provider; the subscribers row lookup uses
the mocked session.
"""

from datetime import UTC, datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from flikkt.db.models import Subscriber
from flikkt.exceptions import (
    AuthenticationError,
    PaymentProviderError,
    SubscriptionNotFoundError,
)
from flikkt.models.domain import SubscriptionSnapshot, UserIdentity
from flikkt.services.stripe_provider import StripeBillingProvider, StripeSubscription
from flikkt.services.subscriptions import (
    CancellationResult,
    SubscriptionService,
    SubscriptionStatus,
)

USER_ID = "8b0c3a52-3f6e-4d1e-9a57-2f1d4c6b7e90"
EMAIL = "user@example.com"
APRIL = datetime(2026, 4, 15, 12, 0, 0, tzinfo=UTC)
MAY = datetime(2026, 5, 2, 8, 0, 0, tzinfo=UTC)


def _stripe_sub(
    subscription_id: str = "sub_1", amount: int = 999, end: datetime | None = APRIL
) -> StripeSubscription:
    return StripeSubscription(
        subscription_id=subscription_id,
        status="active",
        unit_amount_minor=amount,
        current_period_end=end,
    )


@pytest.fixture
def provider() -> AsyncMock:
    mock = AsyncMock(spec=StripeBillingProvider)
    mock.find_customer_id = AsyncMock(return_value="cus_1")
    mock.list_active_subscriptions = AsyncMock(return_value=[_stripe_sub()])
    mock.create_checkout_session = AsyncMock(return_value="https://checkout.stripe.com/c/pay/cs_1")
    mock.create_portal_session = AsyncMock(return_value="https://billing.stripe.com/p/session/1")
    mock.cancel_subscription = AsyncMock(
        side_effect=lambda sub_id: _stripe_sub(sub_id, end=MAY if sub_id == "sub_2" else APRIL)
    )
    return mock


@pytest.fixture
def user() -> UserIdentity:
    return UserIdentity(user_id=USER_ID, email=EMAIL)


@pytest.fixture
def service(db_session: AsyncMock, provider: AsyncMock) -> SubscriptionService:
    return SubscriptionService(db_session, provider, site_url="https://app.example.com/")


def _added_subscriber(db_session: AsyncMock) -> Subscriber:
    row = db_session.add.call_args[0][0]
    assert isinstance(row, Subscriber)
    return row


def _lookup(by_user_id: Subscriber | None, by_email: Subscriber | None = None) -> MagicMock:
    result = MagicMock()
    result.scalar_one_or_none = MagicMock(return_value=by_user_id)
    result.scalars = MagicMock(return_value=MagicMock(first=MagicMock(return_value=by_email)))
    return result


class TestCheckSubscription:
    """Tests for check_subscription."""

    async def test_active_subscription(
        self, service: SubscriptionService, db_session: AsyncMock
    ):
        status = await service.check_subscription(
            UserIdentity(user_id=USER_ID, email=EMAIL)
        )

        assert status == SubscriptionStatus(
            subscribed=True, subscription_tier="Basic", subscription_end=APRIL
        )
        row = _added_subscriber(db_session)
        assert row.user_id == USER_ID
        assert row.email == EMAIL
        assert row.stripe_customer_id == "cus_1"
        assert row.subscribed is True
        assert row.subscription_tier == "Basic"
        assert row.subscription_end == APRIL
        db_session.commit.assert_awaited_once()

    async def test_premium_tier_from_amount(
        self, service: SubscriptionService, provider: AsyncMock, user: UserIdentity
    ):
        provider.list_active_subscriptions.return_value = [_stripe_sub(amount=1999)]

        status = await service.check_subscription(user)

        assert status.subscription_tier == "Premium"

    async def test_no_customer_marks_unsubscribed(
        self,
        service: SubscriptionService,
        provider: AsyncMock,
        db_session: AsyncMock,
        user: UserIdentity,
    ):
        provider.find_customer_id.return_value = None

        status = await service.check_subscription(user)

        assert status == SubscriptionStatus(False, None, None)
        provider.list_active_subscriptions.assert_not_awaited()
        row = _added_subscriber(db_session)
        assert row.subscribed is False
        assert row.stripe_customer_id is None

    async def test_no_active_subscription(
        self, service: SubscriptionService, provider: AsyncMock, user: UserIdentity
    ):
        provider.list_active_subscriptions.return_value = []

        status = await service.check_subscription(user)

        assert status.subscribed is False
        assert status.subscription_tier is None

    async def test_existing_row_is_updated_in_place(
        self, service: SubscriptionService, db_session: AsyncMock, user: UserIdentity
    ):
        existing = Subscriber(user_id=None, email=EMAIL, subscribed=False)
        db_session.execute.side_effect = [_lookup(None), _lookup(None, by_email=existing)]

        await service.check_subscription(user)

        db_session.add.assert_not_called()
        assert existing.user_id == USER_ID
        assert existing.subscribed is True

    async def test_user_id_row_wins_over_email_match(
        self, service: SubscriptionService, db_session: AsyncMock, user: UserIdentity
    ):
        own = Subscriber(user_id=USER_ID, email="old@example.com", subscribed=False)
        db_session.execute.side_effect = [_lookup(own)]

        await service.check_subscription(user)

        assert db_session.execute.await_count == 1
        db_session.add.assert_not_called()
        assert own.email == EMAIL
        assert own.subscribed is True

    async def test_requires_email(self, service: SubscriptionService, provider: AsyncMock):
        with pytest.raises(AuthenticationError, match="email not available"):
            await service.check_subscription(UserIdentity(user_id=USER_ID))

        provider.find_customer_id.assert_not_awaited()

    async def test_concurrent_insert_surfaces_as_provider_error(
        self, service: SubscriptionService, db_session: AsyncMock, user: UserIdentity
    ):
        db_session.flush.side_effect = IntegrityError("INSERT", {}, Exception("duplicate"))

        with pytest.raises(PaymentProviderError, match="concurrently"):
            await service.check_subscription(user)

        db_session.rollback.assert_awaited_once()

    async def test_database_failure(
        self, service: SubscriptionService, db_session: AsyncMock, user: UserIdentity
    ):
        db_session.commit.side_effect = OperationalError("UPDATE", {}, Exception("down"))

        with pytest.raises(PaymentProviderError, match="Failed to update subscriber"):
            await service.check_subscription(user)


class TestCreateCheckout:
    """Tests for create_checkout."""

    async def test_redirect_urls_use_site_url(
        self, service: SubscriptionService, provider: AsyncMock, user: UserIdentity
    ):
        url = await service.create_checkout(user, "premium")

        assert url == "https://checkout.stripe.com/c/pay/cs_1"
        args = provider.create_checkout_session.call_args
        assert args[0][0].plan_id == "premium"
        assert args.kwargs["customer_id"] == "cus_1"
        assert args.kwargs["success_url"] == "https://app.example.com/payment-success"
        assert args.kwargs["cancel_url"] == "https://app.example.com/payment-cancel"

    async def test_free_plan_rejected(self, service: SubscriptionService, user: UserIdentity):
        with pytest.raises(ValueError, match="cannot be purchased"):
            await service.create_checkout(user, "free")

    async def test_unknown_plan_rejected(self, service: SubscriptionService, user: UserIdentity):
        with pytest.raises(ValueError, match="Unknown plan ID"):
            await service.create_checkout(user, "gold")


class TestCustomerPortal:
    """Tests for customer_portal."""

    async def test_portal_url(
        self, service: SubscriptionService, provider: AsyncMock, user: UserIdentity
    ):
        url = await service.customer_portal(user)

        assert url == "https://billing.stripe.com/p/session/1"
        provider.create_portal_session.assert_awaited_once_with(
            "cus_1", return_url="https://app.example.com/billing"
        )

    async def test_no_customer(
        self, service: SubscriptionService, provider: AsyncMock, user: UserIdentity
    ):
        provider.find_customer_id.return_value = None

        with pytest.raises(SubscriptionNotFoundError, match="No Stripe customer found"):
            await service.customer_portal(user)


class TestCancel:
    """Tests for cancel."""

    async def test_cancels_all_and_keeps_access_until_latest_end(
        self,
        service: SubscriptionService,
        provider: AsyncMock,
        db_session: AsyncMock,
        user: UserIdentity,
    ):
        provider.list_active_subscriptions.return_value = [
            _stripe_sub("sub_1"),
            _stripe_sub("sub_2"),
        ]

        result = await service.cancel(user)

        assert result == CancellationResult(cancelled_subscriptions=2, subscription_end=MAY)
        assert provider.cancel_subscription.await_count == 2
        row = _added_subscriber(db_session)
        assert row.subscribed is True
        assert row.subscription_tier is None
        assert row.subscription_end == MAY

    async def test_no_customer(
        self, service: SubscriptionService, provider: AsyncMock, user: UserIdentity
    ):
        provider.find_customer_id.return_value = None

        with pytest.raises(SubscriptionNotFoundError, match="No Stripe customer found"):
            await service.cancel(user)

    async def test_no_active_subscription(
        self, service: SubscriptionService, provider: AsyncMock, user: UserIdentity
    ):
        provider.list_active_subscriptions.return_value = []

        with pytest.raises(SubscriptionNotFoundError, match="No active subscription found"):
            await service.cancel(user)

        provider.cancel_subscription.assert_not_awaited()


class TestGetLocal:
    """Tests for get_local."""

    async def test_missing_row_reads_as_free_account(self, service: SubscriptionService):
        snapshot = await service.get_local(USER_ID)

        assert snapshot == SubscriptionSnapshot(
            subscribed=False,
            subscription_tier=None,
            subscription_end=None,
            scans_used_this_month=0,
        )

    async def test_existing_row(self, service: SubscriptionService, db_session: AsyncMock):
        result = MagicMock()
        result.scalar_one_or_none = MagicMock(
            return_value=SimpleNamespace(
                subscribed=True,
                subscription_tier="Premium",
                subscription_end=APRIL,
                scans_used_this_month=12,
            )
        )
        db_session.execute.return_value = result

        snapshot = await service.get_local(USER_ID)

        assert snapshot.subscription_tier == "Premium"
        assert snapshot.scans_used_this_month == 12
