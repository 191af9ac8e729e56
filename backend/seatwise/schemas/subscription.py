"""Subscription schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from seatwise.schemas.enums import BillingCycle, Currency, PaymentProvider, SubscriptionStatus


class SubscriptionBase(BaseModel):
    """Subscription base schema."""

    organization_id: UUID = Field(..., description="Organization owning the subscription")
    plan_id: UUID = Field(..., description="Subscribed plan")
    status: SubscriptionStatus = Field(..., description="Lifecycle status")
    billing_cycle: BillingCycle = Field(BillingCycle.MONTHLY, description="Billing cycle")
    currency: Currency = Currency.USD
    amount: Decimal = Field(..., description="Pre-discount base amount for the period")
    user_count: Optional[int] = Field(None, ge=1, description="Seats paid for")
    volume_discount_percent: Optional[Decimal] = Field(None, description="Applied volume discount")
    final_amount: Optional[Decimal] = Field(None, description="Amount charged per period")


class SubscriptionCreate(SubscriptionBase):
    """Schema for inserting a subscription row."""

    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    trial_start: Optional[datetime] = None
    trial_end: Optional[datetime] = None
    proration_details: Optional[Dict[str, Any]] = None
    payment_provider: Optional[PaymentProvider] = None
    stripe_subscription_id: Optional[str] = None
    stripe_customer_id: Optional[str] = None
    razorpay_subscription_id: Optional[str] = None
    razorpay_customer_id: Optional[str] = None


class SubscriptionUpdate(BaseModel):
    """Schema for in-place subscription updates."""

    status: Optional[SubscriptionStatus] = None
    plan_id: Optional[UUID] = None
    billing_cycle: Optional[BillingCycle] = None
    amount: Optional[Decimal] = None
    user_count: Optional[int] = Field(None, ge=1)
    volume_discount_percent: Optional[Decimal] = None
    final_amount: Optional[Decimal] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    pending_user_count: Optional[int] = None
    pending_plan_id: Optional[UUID] = None
    pending_change_reason: Optional[str] = None
    proration_details: Optional[Dict[str, Any]] = None


class SubscriptionInDBBase(SubscriptionBase):
    """Subscription as stored in the database."""

    model_config = {"from_attributes": True}

    id: UUID
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    trial_start: Optional[datetime] = None
    trial_end: Optional[datetime] = None
    cancel_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    pending_user_count: Optional[int] = None
    pending_plan_id: Optional[UUID] = None
    pending_change_reason: Optional[str] = None
    proration_details: Optional[Dict[str, Any]] = None
    payment_provider: Optional[PaymentProvider] = None
    stripe_subscription_id: Optional[str] = None
    stripe_customer_id: Optional[str] = None
    razorpay_subscription_id: Optional[str] = None
    razorpay_customer_id: Optional[str] = None
    created_at: datetime
    modified_at: datetime


class Subscription(SubscriptionInDBBase):
    """Complete subscription representation."""

    pass


class TrialStatus(BaseModel):
    """Trial state of an organization."""

    is_trial: bool
    is_expired: bool
    days_remaining: int = 0
    trial_start: Optional[datetime] = None
    trial_end: Optional[datetime] = None
