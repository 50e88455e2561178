"""
Stripe Billing Provider.

Thin wrapper over the Stripe SDK returning typed results; every Stripe error
surfaces as PaymentProviderError.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import stripe
from structlog import get_logger

from flikkt.exceptions import PaymentProviderError
from flikkt.services.plans import Plan

logger = get_logger(__name__)


@dataclass(frozen=True)
class StripeSubscription:
    """The subset of a Stripe subscription the app cares about."""

    subscription_id: str
    status: str
    unit_amount_minor: int
    current_period_end: datetime | None


def _field(obj: Any, key: str) -> Any:
    try:
        return obj[key]
    except (KeyError, TypeError):
        return None


def _to_subscription(sub: Any) -> StripeSubscription:
    items = _field(_field(sub, "items"), "data") or []
    first_item = items[0] if items else None
    price = _field(first_item, "price")
    # Newer API versions report the period end on the item instead of the subscription
    period_end = _field(sub, "current_period_end") or _field(first_item, "current_period_end")
    return StripeSubscription(
        subscription_id=_field(sub, "id"),
        status=_field(sub, "status") or "unknown",
        unit_amount_minor=int(_field(price, "unit_amount") or 0),
        current_period_end=datetime.fromtimestamp(period_end, UTC) if period_end else None,
    )


class StripeBillingProvider:
    """Customer, checkout, portal and cancellation operations."""

    def __init__(self, api_key: str, currency: str = "usd") -> None:
        self.api_key = api_key
        self.currency = currency
        stripe.api_key = api_key

    async def find_customer_id(self, email: str) -> str | None:
        """Get the Stripe customer ID for an email, if one exists."""
        if not self.api_key:
            raise PaymentProviderError("STRIPE_API_KEY is not set")
        try:
            customers = stripe.Customer.list(email=email, limit=1)
        except stripe.StripeError as exc:
            logger.error("stripe_customer_lookup_failed", error=str(exc))
            raise PaymentProviderError(f"Customer lookup failed: {exc}") from exc

        if not customers.data:
            logger.info("stripe_customer_not_found", email=email)
            return None
        customer_id: str = customers.data[0]["id"]
        logger.info("stripe_customer_found", customer_id=customer_id)
        return customer_id

    async def list_active_subscriptions(self, customer_id: str) -> list[StripeSubscription]:
        try:
            subscriptions = stripe.Subscription.list(
                customer=customer_id, status="active", limit=10
            )
        except stripe.StripeError as exc:
            logger.error(
                "stripe_subscription_list_failed", customer_id=customer_id, error=str(exc)
            )
            raise PaymentProviderError(f"Subscription lookup failed: {exc}") from exc

        return [_to_subscription(sub) for sub in subscriptions.data]

    async def create_checkout_session(
        self,
        plan: Plan,
        email: str,
        customer_id: str | None,
        success_url: str,
        cancel_url: str,
    ) -> str:
        """
        Create a subscription-mode Checkout Session.

        Returns:
            Hosted checkout URL
        """
        try:
            session = stripe.checkout.Session.create(
                customer=customer_id,
                customer_email=None if customer_id else email,
                line_items=[
                    {
                        "price_data": {
                            "currency": self.currency,
                            "product_data": {"name": f"{plan.name} Plan"},
                            "unit_amount": plan.price_minor,
                            "recurring": {"interval": plan.interval},
                        },
                        "quantity": 1,
                    }
                ],
                mode="subscription",
                success_url=success_url,
                cancel_url=cancel_url,
                metadata={"plan_id": plan.plan_id},
            )
        except stripe.StripeError as exc:
            logger.error("stripe_checkout_failed", plan_id=plan.plan_id, error=str(exc))
            raise PaymentProviderError(f"Checkout creation failed: {exc}") from exc

        logger.info("stripe_checkout_created", session_id=session.id, plan_id=plan.plan_id)
        url: str = session.url
        return url

    async def create_portal_session(self, customer_id: str, return_url: str) -> str:
        try:
            session = stripe.billing_portal.Session.create(
                customer=customer_id, return_url=return_url
            )
        except stripe.StripeError as exc:
            logger.error("stripe_portal_failed", customer_id=customer_id, error=str(exc))
            raise PaymentProviderError(f"Customer portal failed: {exc}") from exc

        logger.info("stripe_portal_created", customer_id=customer_id)
        url: str = session.url
        return url

    async def cancel_subscription(self, subscription_id: str) -> StripeSubscription:
        try:
            cancelled = stripe.Subscription.cancel(subscription_id)
        except stripe.StripeError as exc:
            logger.error(
                "stripe_cancel_failed", subscription_id=subscription_id, error=str(exc)
            )
            raise PaymentProviderError(f"Cancellation failed: {exc}") from exc

        result = _to_subscription(cancelled)
        logger.info(
            "stripe_subscription_cancelled",
            subscription_id=result.subscription_id,
            status=result.status,
            current_period_end=result.current_period_end.isoformat()
            if result.current_period_end
            else None,
        )
        return result
