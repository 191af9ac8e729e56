"""Schemas exchanged by the payment orchestrator and the gateways."""

from decimal import Decimal
from typing import Dict, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from seatwise.schemas.enums import BillingCycle, Currency, OperationType, PaymentProvider
from seatwise.schemas.pricing import PricingBreakdown


class GatewayCustomer(BaseModel):
    """A customer record at a payment gateway."""

    provider: PaymentProvider
    customer_id: str
    email: Optional[str] = None


class GatewayCheckout(BaseModel):
    """An order (Razorpay) or checkout session (Stripe) awaiting payment."""

    provider: PaymentProvider
    reference_id: str = Field(..., description="Razorpay order id or Stripe checkout session id")
    amount: Decimal
    currency: Currency
    checkout_url: Optional[str] = None
    receipt: Optional[str] = None
    key_id: Optional[str] = Field(None, description="Publishable key for client-side checkout")


class VerifiedPayment(BaseModel):
    """A payment the gateway confirmed as captured/paid."""

    provider: PaymentProvider
    payment_id: str
    status: str
    amount_paid: Decimal
    currency: Optional[str] = None
    order_id: Optional[str] = None
    payment_intent_id: Optional[str] = None
    customer_id: Optional[str] = None
    remote_subscription_id: Optional[str] = None
    payment_method: Optional[str] = None
    metadata: Dict[str, str] = Field(
        default_factory=dict, description="Order notes or checkout metadata set at initiation"
    )


class PendingChanges(BaseModel):
    """Target subscription state carried from checkout to verification."""

    plan_id: UUID
    user_count: int = Field(..., ge=1)
    billing_cycle: BillingCycle
    operation_type: OperationType
    existing_subscription_id: Optional[UUID] = None
    existing_user_count: Optional[int] = None
    new_user_count: Optional[int] = None


class PaymentInitiation(BaseModel):
    """Everything the client needs to complete payment and call verification."""

    payment_provider: PaymentProvider
    checkout: GatewayCheckout
    pricing_breakdown: PricingBreakdown
    pending_changes: PendingChanges


class PaymentVerification(BaseModel):
    """Result of a verified payment."""

    subscription_id: UUID
    invoice_id: Optional[UUID] = None
    payment_provider: PaymentProvider
    duplicate: bool = Field(False, description="True when served by the idempotency window")
