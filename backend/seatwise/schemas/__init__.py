# flake8: noqa: F401
"""Schemas for the application."""

from .enums import (
    LIVE_SUBSCRIPTION_STATUSES,
    BillingCycle,
    Currency,
    InvoicePaymentStatus,
    InvoiceStatus,
    OperationType,
    PaymentProvider,
    SubscriptionStatus,
)
from .invoice import (
    Invoice,
    InvoiceBreakdown,
    InvoiceCreate,
    InvoiceInDBBase,
    InvoiceLineItem,
    InvoiceUpdate,
)
from .organization import Organization
from .payment import (
    GatewayCheckout,
    GatewayCustomer,
    PaymentInitiation,
    PaymentVerification,
    PendingChanges,
    VerifiedPayment,
)
from .plan import Plan, PlanCreate, PlanInDBBase, PlanUpdate
from .pricing import PricingBreakdown, PricingOptions, PricingQuote, ProrationSnapshot
from .subscription import (
    Subscription,
    SubscriptionCreate,
    SubscriptionInDBBase,
    SubscriptionUpdate,
    TrialStatus,
)
