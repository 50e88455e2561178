"""
Subscription plan catalogue.

Prices are charged through Stripe Checkout with inline price data; tiers are
derived back from the subscription's unit amount.
"""

from dataclasses import dataclass

from flikkt.config import settings


@dataclass(frozen=True)
class Plan:
    """Plan configuration."""

    plan_id: str
    name: str
    price_minor: int
    interval: str
    scans_per_month: int | None  # None means unlimited
    features: tuple[str, ...]

    def __post_init__(self) -> None:
        """Validate plan configuration."""
        if self.price_minor < 0:
            raise ValueError(f"Price must be non-negative: {self.price_minor}")
        if not self.plan_id:
            raise ValueError("Plan ID required")


def _build_catalogue() -> dict[str, Plan]:
    return {
        "free": Plan(
            plan_id="free",
            name="Free Trial",
            price_minor=0,
            interval="forever",
            scans_per_month=settings.free_scans_per_month,
            features=(
                f"{settings.free_scans_per_month} scans per month",
                "Basic medication analysis",
                "Safety warnings and alerts",
            ),
        ),
        "basic": Plan(
            plan_id="basic",
            name="Basic",
            price_minor=settings.stripe_basic_price_minor,
            interval="month",
            scans_per_month=50,
            features=(
                "50 scans per month",
                "Complete medication analysis",
                "Safety warnings and alerts",
            ),
        ),
        "premium": Plan(
            plan_id="premium",
            name="Premium",
            price_minor=settings.stripe_premium_price_minor,
            interval="month",
            scans_per_month=None,
            features=(
                "Unlimited scans",
                "Complete medication analysis",
                "Safety warnings and alerts",
            ),
        ),
    }


PLANS: dict[str, Plan] = _build_catalogue()


def get_plan(plan_id: str) -> Plan:
    """
    Get plan configuration by ID.

    Raises:
        ValueError: If plan ID not found
    """
    plan = PLANS.get(plan_id)
    if not plan:
        raise ValueError(f"Unknown plan ID: {plan_id}")
    return plan


def tier_for_amount(unit_amount_minor: int) -> str:
    """Map a subscription price back to its tier name."""
    if unit_amount_minor <= settings.stripe_basic_price_minor:
        return PLANS["basic"].name
    return PLANS["premium"].name
