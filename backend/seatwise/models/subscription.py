"""Subscription model."""

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional
from uuid import UUID

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, Numeric, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.schema import CheckConstraint, Index

from seatwise.models._base import Base
from seatwise.schemas.enums import BillingCycle, Currency, SubscriptionStatus

if TYPE_CHECKING:
    from seatwise.models.organization import Organization
    from seatwise.models.plan import Plan


class Subscription(Base):
    """An organization's subscription to a plan.

    Rows are append-only history: a charged plan, seat or cycle change inserts a
    new row and cancels the previous one.
    """

    __tablename__ = "subscription"

    organization_id: Mapped[UUID] = mapped_column(
        ForeignKey("organization.id", ondelete="CASCADE"), nullable=False
    )
    plan_id: Mapped[UUID] = mapped_column(ForeignKey("subscription_plan.id"), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), default=SubscriptionStatus.ACTIVE.value, nullable=False
    )
    billing_cycle: Mapped[str] = mapped_column(
        String(10), default=BillingCycle.MONTHLY.value, nullable=False
    )
    currency: Mapped[str] = mapped_column(String(3), default=Currency.USD.value, nullable=False)

    # Pricing
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    user_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    volume_discount_percent: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(5, 2), nullable=True
    )
    final_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)

    # Snapshot of the last proration computation (ProrationSnapshot)
    proration_details: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    # Period boundaries
    current_period_start: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=False), nullable=True
    )
    current_period_end: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=False), nullable=True
    )
    trial_start: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=False), nullable=True)
    trial_end: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=False), nullable=True)

    # Cancellation
    cancel_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=False), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=False), nullable=True
    )
    cancel_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Changes deferred to the next renewal
    pending_user_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    pending_plan_id: Mapped[Optional[UUID]] = mapped_column(
        ForeignKey("subscription_plan.id"), nullable=True
    )
    pending_change_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Payment provider references
    payment_provider: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    stripe_subscription_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    stripe_customer_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    razorpay_subscription_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    razorpay_customer_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    organization: Mapped["Organization"] = relationship(
        "Organization", back_populates="subscriptions", lazy="noload"
    )
    plan: Mapped["Plan"] = relationship("Plan", foreign_keys=[plan_id], lazy="noload")

    __table_args__ = (
        CheckConstraint("user_count IS NULL OR user_count >= 1", name="check_user_count_positive"),
        CheckConstraint(
            "current_period_end IS NULL OR current_period_start IS NULL "
            "OR current_period_end > current_period_start",
            name="check_subscription_period_order",
        ),
        # At most one live (ACTIVE or TRIAL) subscription per organization
        Index(
            "uq_subscription_one_live_per_org",
            "organization_id",
            unique=True,
            postgresql_where=text("status IN ('ACTIVE', 'TRIAL')"),
            sqlite_where=text("status IN ('ACTIVE', 'TRIAL')"),
        ),
        Index("ix_subscription_org_status", "organization_id", "status"),
        Index("ix_subscription_status_period_end", "status", "current_period_end"),
    )
