"""Subscription plan model."""

from decimal import Decimal
from typing import Optional

from sqlalchemy import JSON, Boolean, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.schema import CheckConstraint

from seatwise.models._base import Base


class Plan(Base):
    """Catalog entry describing per-seat prices and capability limits."""

    __tablename__ = "subscription_plan"

    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Per-seat prices; the yearly price is the undiscounted annual list price
    price_per_user_monthly: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(10, 2), nullable=True
    )
    price_per_user_yearly: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)

    # Capability limits (None means unlimited)
    daily_email_limit: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    max_contacts: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    max_campaigns: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    max_templates: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    max_users: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    features: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True, default=dict)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_public: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "price_per_user_monthly IS NULL OR price_per_user_monthly >= 0",
            name="check_plan_monthly_price_non_negative",
        ),
        CheckConstraint(
            "price_per_user_yearly IS NULL OR price_per_user_yearly >= 0",
            name="check_plan_yearly_price_non_negative",
        ),
    )
