"""Billing enums shared by models, schemas and services."""

from enum import Enum


class SubscriptionStatus(str, Enum):
    """Lifecycle status of a subscription row."""

    TRIAL = "TRIAL"
    ACTIVE = "ACTIVE"
    PAST_DUE = "PAST_DUE"
    UNPAID = "UNPAID"
    INCOMPLETE = "INCOMPLETE"
    CANCELLED = "CANCELLED"


LIVE_SUBSCRIPTION_STATUSES = (SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIAL)


class BillingCycle(str, Enum):
    """How often a subscription is charged."""

    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


class Currency(str, Enum):
    """Supported billing currencies."""

    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"


class InvoiceStatus(str, Enum):
    """Status of an invoice."""

    DRAFT = "DRAFT"
    OPEN = "OPEN"
    PAID = "PAID"
    VOID = "VOID"
    UNCOLLECTIBLE = "UNCOLLECTIBLE"


class InvoicePaymentStatus(str, Enum):
    """Gateway-side status of the payment attached to an invoice."""

    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class PaymentProvider(str, Enum):
    """Payment gateways."""

    STRIPE = "STRIPE"
    RAZORPAY = "RAZORPAY"


class OperationType(str, Enum):
    """What a paid checkout does to the organization's subscription."""

    TRIAL_TO_PAID = "TRIAL_TO_PAID"
    UPGRADE = "UPGRADE"
    ADD_USERS = "ADD_USERS"
    COMBINED = "COMBINED"
