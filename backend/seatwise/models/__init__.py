"""Models for the application."""

from .invoice import Invoice
from .organization import Organization
from .plan import Plan
from .subscription import Subscription
from .user import User

__all__ = [
    "Invoice",
    "Organization",
    "Plan",
    "Subscription",
    "User",
]
