"""
Domain Models - Internal business logic models using dataclasses.

All data structures are strongly typed immutable dataclasses.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from flikkt.models.api import InteractionLevel

# Product names the model (or the fallback path) uses when nothing was identified.
# They stay on the wire for existing clients; internally use Identification instead.
NOT_RECOGNIZED_PRODUCT_NAME = "Sorry, we couldn't catch that"
UNAVAILABLE_PRODUCT_NAME = "Unable to analyze at this time"


class AnalysisKind(str, Enum):
    """Which LLM variant an analysis uses."""

    IMAGE = "image"
    TEXT = "text"


class UnidentifiedReason(str, Enum):
    """Why a result carries no identified product."""

    NOT_RECOGNIZED = "not_recognized"
    ANALYSIS_UNAVAILABLE = "analysis_unavailable"
    NOT_ANALYZED = "not_analyzed"


@dataclass(frozen=True)
class Identified:
    """The product was positively identified by the model."""

    product_name: str

    @property
    def is_identified(self) -> bool:
        return True


@dataclass(frozen=True)
class Unidentified:
    """No product was identified; usage must not be charged."""

    reason: UnidentifiedReason

    @property
    def is_identified(self) -> bool:
        return False


Identification = Identified | Unidentified

_SENTINEL_REASONS: dict[str, UnidentifiedReason] = {
    NOT_RECOGNIZED_PRODUCT_NAME: UnidentifiedReason.NOT_RECOGNIZED,
    UNAVAILABLE_PRODUCT_NAME: UnidentifiedReason.ANALYSIS_UNAVAILABLE,
}


def identify(product_name: str | None) -> Identification:
    """Classify a model-reported product name."""
    if not product_name:
        return Unidentified(UnidentifiedReason.NOT_RECOGNIZED)
    reason = _SENTINEL_REASONS.get(product_name.strip())
    if reason is not None:
        return Unidentified(reason)
    return Identified(product_name)


@dataclass(frozen=True)
class Medication:
    """One entry of a user's medication profile."""

    name: str
    dosage: str | None = None
    frequency: str | None = None
    purpose: str | None = None
    notes: str | None = None

    def describe(self) -> str:
        """Render the medication as one line of the patient profile."""
        details = self.name
        if self.dosage:
            details += f" ({self.dosage})"
        if self.frequency:
            details += f" taken {self.frequency}"
        if self.purpose:
            details += f" for {self.purpose}"
        if self.notes:
            details += f" - Additional notes: {self.notes}"
        return details


@dataclass(frozen=True)
class ScanCheck:
    """Result of the scan usage procedure."""

    scans_remaining: int
    is_subscribed: bool

    @property
    def limit_reached(self) -> bool:
        return not self.is_subscribed and self.scans_remaining <= 0


@dataclass(frozen=True)
class AnalysisInput:
    """Validated-later analysis request."""

    user_id: str | None
    image_data: str | None = None
    product_name: str | None = None
    analysis_type: str | None = None

    @property
    def kind(self) -> AnalysisKind:
        return AnalysisKind.IMAGE if self.image_data else AnalysisKind.TEXT


@dataclass(frozen=True)
class AnalysisResult:
    """Normalized analysis returned to the caller."""

    product_name: str
    compatibility_score: int | None
    interaction_level: InteractionLevel
    identification: Identification
    timestamp: datetime
    pros: list[str] = field(default_factory=list)
    cons: list[str] = field(default_factory=list)
    alternatives: list[str] = field(default_factory=list)
    user_medications: list[str] = field(default_factory=list)
    note: str | None = None

    def __post_init__(self) -> None:
        """Validate score range."""
        if self.compatibility_score is not None and not 0 <= self.compatibility_score <= 100:
            raise ValueError(f"Compatibility score out of range: {self.compatibility_score}")

    @property
    def identified(self) -> bool:
        return self.identification.is_identified


@dataclass(frozen=True)
class HistoryEntry:
    """A stored analysis."""

    product_name: str
    analysis_type: str
    compatibility_score: int | None
    interaction_level: str
    warnings: list[str]
    recommendations: list[str]
    created_at: datetime


@dataclass(frozen=True)
class UserIdentity:
    """Authenticated user identity from a bearer token."""

    user_id: str
    email: str | None = None


@dataclass(frozen=True)
class SubscriptionSnapshot:
    """Stored subscription and usage fields for a user."""

    subscribed: bool
    subscription_tier: str | None
    subscription_end: datetime | None
    scans_used_this_month: int
