"""
Subscription Service - Stripe-backed subscription state for subscribers.

Stripe is the source of truth for whether a user is subscribed; the
subscribers row is a cache of it that check-subscription and
cancel-subscription refresh.
"""

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from flikkt.db.models import Subscriber
from flikkt.exceptions import (
    AuthenticationError,
    PaymentProviderError,
    SubscriptionNotFoundError,
)
from flikkt.models.domain import SubscriptionSnapshot, UserIdentity
from flikkt.services.plans import get_plan, tier_for_amount
from flikkt.services.stripe_provider import StripeBillingProvider

logger = get_logger(__name__)


@dataclass(frozen=True)
class SubscriptionStatus:
    """Result of a check-subscription call."""

    subscribed: bool
    subscription_tier: str | None
    subscription_end: datetime | None


@dataclass(frozen=True)
class CancellationResult:
    """Result of a cancel-subscription call."""

    cancelled_subscriptions: int
    subscription_end: datetime | None


def _require_email(user: UserIdentity) -> str:
    if not user.email:
        raise AuthenticationError("User not authenticated or email not available")
    return user.email


class SubscriptionService:
    """Stripe pass-through operations plus the subscribers row upsert."""

    def __init__(
        self,
        session: AsyncSession,
        provider: StripeBillingProvider,
        site_url: str = "http://localhost:5173",
    ) -> None:
        self.session = session
        self.provider = provider
        self.site_url = site_url.rstrip("/")

    async def check_subscription(self, user: UserIdentity) -> SubscriptionStatus:
        """
        Refresh the subscribers row from Stripe.

        Raises:
            AuthenticationError: Token carries no email
            PaymentProviderError: Stripe call or row update failed
        """
        email = _require_email(user)
        customer_id = await self.provider.find_customer_id(email)

        if customer_id is None:
            status = SubscriptionStatus(
                subscribed=False, subscription_tier=None, subscription_end=None
            )
            await self._upsert(user, email, None, status)
            return status

        subscriptions = await self.provider.list_active_subscriptions(customer_id)
        if subscriptions:
            active = subscriptions[0]
            status = SubscriptionStatus(
                subscribed=True,
                subscription_tier=tier_for_amount(active.unit_amount_minor),
                subscription_end=active.current_period_end,
            )
        else:
            status = SubscriptionStatus(
                subscribed=False, subscription_tier=None, subscription_end=None
            )

        await self._upsert(user, email, customer_id, status)
        logger.info(
            "subscription_checked",
            user_id=user.user_id,
            subscribed=status.subscribed,
            subscription_tier=status.subscription_tier,
        )
        return status

    async def create_checkout(self, user: UserIdentity, plan_id: str) -> str:
        """
        Start a Stripe Checkout for a paid plan.

        Raises:
            AuthenticationError: Token carries no email
            ValueError: Unknown or free plan
            PaymentProviderError: Stripe call failed
        """
        email = _require_email(user)
        plan = get_plan(plan_id)
        if plan.price_minor == 0:
            raise ValueError(f"Plan {plan_id} cannot be purchased")

        customer_id = await self.provider.find_customer_id(email)
        url = await self.provider.create_checkout_session(
            plan,
            email=email,
            customer_id=customer_id,
            success_url=f"{self.site_url}/payment-success",
            cancel_url=f"{self.site_url}/payment-cancel",
        )
        logger.info("checkout_started", user_id=user.user_id, plan_id=plan.plan_id)
        return url

    async def customer_portal(self, user: UserIdentity) -> str:
        """
        Open the Stripe billing portal for an existing customer.

        Raises:
            SubscriptionNotFoundError: No Stripe customer for this email
        """
        email = _require_email(user)
        customer_id = await self.provider.find_customer_id(email)
        if customer_id is None:
            raise SubscriptionNotFoundError("No Stripe customer found for this user")
        return await self.provider.create_portal_session(
            customer_id, return_url=f"{self.site_url}/billing"
        )

    async def cancel(self, user: UserIdentity) -> CancellationResult:
        """
        Cancel every active subscription for the user.

        The row stays subscribed until the latest period end; the tier is cleared.

        Raises:
            SubscriptionNotFoundError: No customer or no active subscription
        """
        email = _require_email(user)
        customer_id = await self.provider.find_customer_id(email)
        if customer_id is None:
            raise SubscriptionNotFoundError("No Stripe customer found")

        subscriptions = await self.provider.list_active_subscriptions(customer_id)
        if not subscriptions:
            raise SubscriptionNotFoundError("No active subscription found")

        latest_end: datetime | None = None
        for subscription in subscriptions:
            cancelled = await self.provider.cancel_subscription(subscription.subscription_id)
            end = cancelled.current_period_end
            if end is not None and (latest_end is None or end > latest_end):
                latest_end = end

        await self._upsert(
            user,
            email,
            customer_id,
            SubscriptionStatus(subscribed=True, subscription_tier=None, subscription_end=latest_end),
        )
        logger.info(
            "subscriptions_cancelled",
            user_id=user.user_id,
            count=len(subscriptions),
            subscription_end=latest_end.isoformat() if latest_end else None,
        )
        return CancellationResult(
            cancelled_subscriptions=len(subscriptions), subscription_end=latest_end
        )

    async def get_local(self, user_id: str) -> SubscriptionSnapshot:
        """Stored subscriber fields; an unknown user reads as an unused free account."""
        stmt = select(Subscriber).where(Subscriber.user_id == user_id)
        result = await self.session.execute(stmt)
        row = result.scalar_one_or_none()
        if row is None:
            return SubscriptionSnapshot(
                subscribed=False,
                subscription_tier=None,
                subscription_end=None,
                scans_used_this_month=0,
            )
        return SubscriptionSnapshot(
            subscribed=row.subscribed,
            subscription_tier=row.subscription_tier,
            subscription_end=row.subscription_end,
            scans_used_this_month=row.scans_used_this_month,
        )

    async def _find_subscriber(self, user_id: str, email: str) -> Subscriber | None:
        """The row keyed by user_id wins; email only adopts a row with no user match."""
        result = await self.session.execute(
            select(Subscriber).where(Subscriber.user_id == user_id)
        )
        row = result.scalar_one_or_none()
        if row is not None:
            return row

        result = await self.session.execute(
            select(Subscriber).where(Subscriber.email == email).order_by(Subscriber.created_at)
        )
        return result.scalars().first()

    async def _upsert(
        self,
        user: UserIdentity,
        email: str,
        customer_id: str | None,
        status: SubscriptionStatus,
    ) -> None:
        """Write Stripe state onto the subscribers row, creating it if needed."""
        try:
            row = await self._find_subscriber(user.user_id, email)
            if row is None:
                row = Subscriber(user_id=user.user_id, email=email)
                self.session.add(row)

            row.user_id = user.user_id
            row.email = email
            row.stripe_customer_id = customer_id
            row.subscribed = status.subscribed
            row.subscription_tier = status.subscription_tier
            row.subscription_end = status.subscription_end

            await self.session.flush()
            await self.session.commit()
        except IntegrityError as exc:
            # Race condition - row created by a concurrent request
            await self.session.rollback()
            logger.warning("subscriber_upsert_conflict", user_id=user.user_id, error=str(exc))
            raise PaymentProviderError("Subscriber row changed concurrently, retry") from exc
        except SQLAlchemyError as exc:
            await self.session.rollback()
            logger.error("subscriber_upsert_failed", user_id=user.user_id, error=str(exc))
            raise PaymentProviderError(f"Failed to update subscriber: {exc}") from exc
