"""
API Models - Pydantic models for request/response validation.

Wire names follow what the mobile client already sends and reads:
camelCase for analysis payloads, snake_case for subscription and quota payloads.
"""

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class InteractionLevel(str, Enum):
    """How a product interacts with the user's medications."""

    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class CamelModel(BaseModel):
    """Base model serialized with camelCase field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Analysis Models
# ============================================================================


class AnalyzeMedicationRequest(CamelModel):
    """POST /analyze-medication request body.

    Every field is optional here; missing input is reported by the analysis
    service with a descriptive error instead of a schema error.
    """

    user_id: str | None = None
    image_data: str | None = Field(None, description="data:image/... URL of the photo")
    product_name: str | None = Field(None, max_length=500)
    analysis_type: str | None = Field(None, max_length=50)


class AnalysisResultResponse(CamelModel):
    """POST /analyze-medication 200 response."""

    product_name: str
    compatibility_score: int | None
    interaction_level: InteractionLevel
    pros: list[str] = Field(default_factory=list)
    cons: list[str] = Field(default_factory=list)
    alternatives: list[str] = Field(default_factory=list)
    user_medications: list[str] = Field(default_factory=list)
    timestamp: str
    note: str | None = None
    identified: bool
    unidentified_reason: str | None = None


class ScanLimitResponse(BaseModel):
    """POST /analyze-medication 429 response."""

    error: Literal["scan_limit_reached"] = "scan_limit_reached"
    message: str = (
        "You have reached your monthly scan limit. Please upgrade to continue scanning."
    )
    scans_remaining: int = 0
    is_subscribed: bool = False


class AnalysisErrorResponse(BaseModel):
    """POST /analyze-medication error response."""

    error: str
    details: str
    timestamp: str


class HistoryItem(BaseModel):
    """One stored analysis."""

    product_name: str
    analysis_type: str
    compatibility_score: int | None
    interaction_level: str
    warnings: list[str]
    recommendations: list[str]
    created_at: str


class HistoryResponse(BaseModel):
    """GET /history response."""

    items: list[HistoryItem]
    count: int


# ============================================================================
# Subscription Models
# ============================================================================


class SubscriptionStatusResponse(BaseModel):
    """GET /subscription response - the stored subscriber row."""

    subscribed: bool = False
    subscription_tier: str | None = None
    subscription_end: str | None = None
    scans_used_this_month: int = 0
    free_scans_per_month: int


class CheckSubscriptionResponse(BaseModel):
    """POST /check-subscription response."""

    subscribed: bool
    subscription_tier: str | None = None
    subscription_end: str | None = None


class CheckoutRequest(CamelModel):
    """POST /create-checkout request body."""

    plan_id: Literal["basic", "premium"]


class RedirectUrlResponse(BaseModel):
    """Response carrying a hosted Stripe page URL."""

    url: str


class CancelSubscriptionResponse(BaseModel):
    """POST /cancel-subscription response."""

    success: bool
    message: str
    cancelled_subscriptions: int


class FunctionErrorResponse(BaseModel):
    """Error body for billing functions."""

    error: str


class PlanResponse(BaseModel):
    """One plan of the catalogue."""

    id: str
    name: str
    price_minor: int
    interval: str
    scans_per_month: int | None = Field(None, description="None means unlimited")
    features: list[str]


class PlanListResponse(BaseModel):
    """GET /plans response."""

    plans: list[PlanResponse]


# ============================================================================
# Health Check
# ============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    database: str
    timestamp: str
    version: str
