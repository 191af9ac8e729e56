"""CRUD operations for the application."""

from .crud_invoice import invoice
from .crud_organization import organization
from .crud_plan import plan
from .crud_subscription import subscription

__all__ = [
    "invoice",
    "organization",
    "plan",
    "subscription",
]
