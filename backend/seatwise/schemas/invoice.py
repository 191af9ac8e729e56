"""Invoice schemas."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from seatwise.schemas.enums import Currency, InvoicePaymentStatus, InvoiceStatus
from seatwise.schemas.pricing import ProrationSnapshot


class InvoiceLineItem(BaseModel):
    """A single itemized line on an invoice. Credits and discounts are negative."""

    description: str
    quantity: int = 1
    unit_price: Decimal
    amount: Decimal
    type: str = Field(
        ...,
        description="subscription, previous_subscription, base_price, volume_discount, "
        "proration, credit or charge",
    )


class InvoiceBreakdown(BaseModel):
    """Structured contents of ``Invoice.breakdown``."""

    line_items: List[InvoiceLineItem] = Field(default_factory=list)
    plan_id: Optional[UUID] = None
    plan_name: Optional[str] = None
    billing_cycle: Optional[str] = None
    user_count: Optional[int] = None
    base_price_per_user: Optional[Decimal] = None
    volume_discount_percent: Optional[int] = None
    discounted_price_per_user: Optional[Decimal] = None
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None
    previous_subscription_id: Optional[UUID] = None
    proration: Optional[ProrationSnapshot] = None


class InvoiceBase(BaseModel):
    """Invoice base schema."""

    organization_id: UUID
    subscription_id: Optional[UUID] = None
    invoice_number: str
    status: InvoiceStatus = InvoiceStatus.DRAFT
    subtotal: Decimal
    tax_amount: Decimal = Decimal("0.00")
    total: Decimal
    amount_paid: Decimal = Decimal("0.00")
    amount_due: Decimal
    currency: Currency = Currency.USD
    issue_date: date
    due_date: Optional[date] = None
    paid_at: Optional[datetime] = None


class InvoiceCreate(InvoiceBase):
    """Schema for creating an invoice.

    The amounts are checked here so no invoice can be built with an
    inconsistent ``amount_due``.
    """

    breakdown: Optional[Dict[str, Any]] = None
    billing_address: Optional[Dict[str, Any]] = None
    stripe_invoice_id: Optional[str] = None
    stripe_payment_intent_id: Optional[str] = None
    razorpay_order_id: Optional[str] = None
    razorpay_payment_id: Optional[str] = None
    payment_method: Optional[str] = None
    payment_status: Optional[InvoicePaymentStatus] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def check_amounts(self) -> "InvoiceCreate":
        """Reject invoices whose amount_due is not total - amount_paid."""
        if self.amount_due != self.total - self.amount_paid:
            raise ValueError("amount_due must equal total - amount_paid")
        if self.status == InvoiceStatus.PAID and self.amount_due != 0:
            raise ValueError("A PAID invoice cannot have an amount due")
        return self


class InvoiceUpdate(BaseModel):
    """Schema for updating status and payment fields of an invoice."""

    status: Optional[InvoiceStatus] = None
    amount_paid: Optional[Decimal] = None
    amount_due: Optional[Decimal] = None
    paid_at: Optional[datetime] = None
    payment_status: Optional[InvoicePaymentStatus] = None
    stripe_payment_intent_id: Optional[str] = None
    razorpay_payment_id: Optional[str] = None


class InvoiceInDBBase(InvoiceBase):
    """Invoice as stored in the database."""

    model_config = {"from_attributes": True}

    id: UUID
    breakdown: Optional[Dict[str, Any]] = None
    payment_status: Optional[InvoicePaymentStatus] = None
    created_at: datetime
    modified_at: datetime


class Invoice(InvoiceInDBBase):
    """Complete invoice representation."""

    pass
