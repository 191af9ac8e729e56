"""CRUD operations for invoices."""

from datetime import date
from typing import Optional
from uuid import UUID

from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from seatwise.crud._base import CRUDBase
from seatwise.models import Invoice
from seatwise.schemas.enums import InvoiceStatus
from seatwise.schemas.invoice import InvoiceCreate, InvoiceUpdate


class CRUDInvoice(CRUDBase[Invoice, InvoiceCreate, InvoiceUpdate]):
    """CRUD operations for invoices."""

    async def get_latest_paid(
        self, db: AsyncSession, *, subscription_id: UUID
    ) -> Optional[Invoice]:
        """Get the most recent PAID invoice of a subscription.

        Args:
            db: Database session
            subscription_id: Subscription ID

        Returns:
            Invoice or None
        """
        query = (
            select(Invoice)
            .where(
                Invoice.subscription_id == subscription_id,
                Invoice.status == InvoiceStatus.PAID.value,
            )
            .order_by(desc(Invoice.created_at))
            .limit(1)
        )
        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def has_open_invoice_due(
        self, db: AsyncSession, *, subscription_id: UUID, due_date: date
    ) -> bool:
        """Whether an OPEN invoice with this due date already exists for the subscription."""
        query = (
            select(Invoice.id)
            .where(
                Invoice.subscription_id == subscription_id,
                Invoice.status == InvoiceStatus.OPEN.value,
                Invoice.due_date == due_date,
            )
            .limit(1)
        )
        result = await db.execute(query)
        return result.scalar_one_or_none() is not None


invoice = CRUDInvoice(Invoice)
