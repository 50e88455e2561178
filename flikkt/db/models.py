"""
Database Models - SQLAlchemy ORM models with strict typing.

User IDs come from the auth provider and are stored as UUID columns without a
foreign key; the users table lives in the provider's schema.
"""

from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    ARRAY,
    Boolean,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class Subscriber(Base):
    """
    ORM model for subscribers table.

    One row per user: Stripe subscription state plus the monthly scan counter.
    The counter is only mutated by the increment_scan_usage procedure.
    """

    __tablename__ = "subscribers"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)

    user_id: Mapped[str | None] = mapped_column(PG_UUID(as_uuid=False), nullable=True, unique=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)
    stripe_customer_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Subscription
    subscribed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    subscription_tier: Mapped[str | None] = mapped_column(String(50), nullable=True)
    subscription_end: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Monthly scan usage (lazily reset by the procedure)
    scans_used_this_month: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    scans_reset_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("scans_used_this_month >= 0", name="ck_scans_used_non_negative"),
        Index("idx_subscribers_stripe_customer_id", "stripe_customer_id"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<Subscriber(user_id={self.user_id}, subscribed={self.subscribed}, "
            f"tier={self.subscription_tier}, scans_used={self.scans_used_this_month})>"
        )


class UserMedication(Base):
    """ORM model for user_medications table."""

    __tablename__ = "user_medications"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id: Mapped[str] = mapped_column(PG_UUID(as_uuid=False), nullable=False)

    medication_name: Mapped[str] = mapped_column(String(255), nullable=False)
    dosage: Mapped[str | None] = mapped_column(String(255), nullable=True)
    frequency: Mapped[str | None] = mapped_column(String(255), nullable=True)
    purpose: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (Index("idx_user_medications_user_id", "user_id"),)

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<UserMedication(user_id={self.user_id}, name={self.medication_name})>"


class FoodAnalysisHistory(Base):
    """
    ORM model for food_analysis_history table.

    Append-only record of identified analyses.
    """

    __tablename__ = "food_analysis_history"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id: Mapped[str] = mapped_column(PG_UUID(as_uuid=False), nullable=False)

    product_name: Mapped[str] = mapped_column(String(500), nullable=False)
    analysis_type: Mapped[str] = mapped_column(String(50), nullable=False)
    compatibility_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    interaction_level: Mapped[str] = mapped_column(String(20), nullable=False)
    warnings: Mapped[list[str]] = mapped_column(ARRAY(Text), nullable=False, default=list)
    recommendations: Mapped[list[str]] = mapped_column(ARRAY(Text), nullable=False, default=list)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        CheckConstraint(
            "compatibility_score IS NULL OR (compatibility_score BETWEEN 0 AND 100)",
            name="ck_history_score_range",
        ),
        Index("idx_food_analysis_history_user_created", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<FoodAnalysisHistory(user_id={self.user_id}, product={self.product_name}, "
            f"score={self.compatibility_score})>"
        )
