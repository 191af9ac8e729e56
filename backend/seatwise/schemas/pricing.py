"""Pricing and proration schemas.

Quotes are ephemeral and recomputed on every request; the proration snapshot is
the typed record persisted into ``Subscription.proration_details`` and
``Invoice.breakdown["proration"]``.
"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from seatwise.schemas.enums import BillingCycle, Currency, OperationType


class PricingQuote(BaseModel):
    """Price of a plan at a seat count for one billing cycle."""

    plan_id: Optional[UUID] = None
    plan_name: Optional[str] = None
    billing_cycle: BillingCycle
    user_count: int
    base_price_per_user: Decimal = Field(..., description="Per-seat price before volume discount")
    volume_discount_percent: int = Field(..., description="Volume discount tier in percent")
    discounted_price_per_user: Decimal
    total_amount: Decimal = Field(..., description="discounted_price_per_user x user_count")
    requires_contact_sales: bool = False
    currency: Currency = Currency.USD


class PricingOptions(BaseModel):
    """Monthly and yearly quotes side by side for a seat count."""

    plan_id: Optional[UUID] = None
    plan_name: Optional[str] = None
    user_count: int
    monthly: PricingQuote
    yearly: PricingQuote
    yearly_savings: Decimal = Field(
        Decimal("0.00"), description="12 x monthly total minus the yearly total"
    )
    requires_contact_sales: bool = False


class ProrationSnapshot(BaseModel):
    """Audit record of a committed proration computation."""

    operation_type: Optional[OperationType] = None
    credit_amount: Decimal = Decimal("0.00")
    charge_amount: Decimal = Decimal("0.00")
    net_charge: Decimal = Decimal("0.00")
    days_remaining: int = 0
    total_days_in_period: int = 0
    old_plan_id: Optional[UUID] = None
    old_plan_name: Optional[str] = None
    old_user_count: Optional[int] = None
    old_billing_cycle: Optional[BillingCycle] = None
    old_amount_paid: Optional[Decimal] = None
    calculation: Dict[str, str] = Field(default_factory=dict)
    calculated_at: Optional[datetime] = None


class PricingBreakdown(BaseModel):
    """What the customer is charged now, carried from checkout to verification.

    ``total_amount`` is the amount due now (the net charge for upgrades), while
    ``period_amount`` is the full recurring amount of the new subscription.
    """

    base_price_per_user: Decimal
    volume_discount_percent: int
    discounted_price_per_user: Decimal
    total_amount: Decimal
    period_amount: Decimal
    currency: Currency = Currency.USD
    requires_contact_sales: bool = False
    proration_details: Optional[ProrationSnapshot] = None
