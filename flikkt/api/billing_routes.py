"""
Billing Routes - Stripe pass-through functions.

Every failure answers 500 with {"error": message}, the shape the client's
function invoker expects. Auth failures answer 401 before reaching Stripe.
"""

from typing import Any

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from structlog import get_logger

from flikkt.api.dependencies import get_current_user, get_subscription_service
from flikkt.exceptions import FlikktError
from flikkt.models.api import (
    CancelSubscriptionResponse,
    CheckoutRequest,
    CheckSubscriptionResponse,
    FunctionErrorResponse,
    RedirectUrlResponse,
)
from flikkt.models.domain import UserIdentity
from flikkt.observability import metrics
from flikkt.services.subscriptions import SubscriptionService

logger = get_logger(__name__)

router = APIRouter()

_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {500: {"model": FunctionErrorResponse}}


def _function_error(operation: str, exc: Exception) -> JSONResponse:
    message = getattr(exc, "message", None) or str(exc)
    metrics.record_error(type(exc).__name__, operation)
    logger.error("billing_function_failed", operation=operation, error=message)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=FunctionErrorResponse(error=message).model_dump(),
    )


@router.post(
    "/check-subscription",
    response_model=CheckSubscriptionResponse,
    responses=_ERROR_RESPONSES,
)
async def check_subscription(
    user: UserIdentity = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
) -> CheckSubscriptionResponse | JSONResponse:
    """
    Sync the caller's subscriber row with Stripe.

    Auth: Bearer {user_jwt}
    """
    try:
        result = await service.check_subscription(user)
    except (FlikktError, ValueError) as exc:
        return _function_error("check_subscription", exc)

    return CheckSubscriptionResponse(
        subscribed=result.subscribed,
        subscription_tier=result.subscription_tier,
        subscription_end=result.subscription_end.isoformat()
        if result.subscription_end
        else None,
    )


@router.post("/create-checkout", response_model=RedirectUrlResponse, responses=_ERROR_RESPONSES)
async def create_checkout(
    request: CheckoutRequest,
    user: UserIdentity = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
) -> RedirectUrlResponse | JSONResponse:
    """
    Start a Stripe Checkout for the basic or premium plan.

    Auth: Bearer {user_jwt}
    """
    try:
        url = await service.create_checkout(user, request.plan_id)
    except (FlikktError, ValueError) as exc:
        return _function_error("create_checkout", exc)
    return RedirectUrlResponse(url=url)


@router.post("/customer-portal", response_model=RedirectUrlResponse, responses=_ERROR_RESPONSES)
async def customer_portal(
    user: UserIdentity = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
) -> RedirectUrlResponse | JSONResponse:
    """
    Open the Stripe billing portal.

    Auth: Bearer {user_jwt}
    """
    try:
        url = await service.customer_portal(user)
    except (FlikktError, ValueError) as exc:
        return _function_error("customer_portal", exc)
    return RedirectUrlResponse(url=url)


@router.post(
    "/cancel-subscription",
    response_model=CancelSubscriptionResponse,
    responses=_ERROR_RESPONSES,
)
async def cancel_subscription(
    user: UserIdentity = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
) -> CancelSubscriptionResponse | JSONResponse:
    """
    Cancel all active subscriptions; access continues until the period ends.

    Auth: Bearer {user_jwt}
    """
    try:
        result = await service.cancel(user)
    except (FlikktError, ValueError) as exc:
        return _function_error("cancel_subscription", exc)

    return CancelSubscriptionResponse(
        success=True,
        message="Subscription cancelled successfully",
        cancelled_subscriptions=result.cancelled_subscriptions,
    )
