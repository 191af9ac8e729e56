"""Invoice model."""

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional
from uuid import UUID

from sqlalchemy import JSON, Date, DateTime, ForeignKey, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.schema import CheckConstraint, Index

from seatwise.models._base import Base
from seatwise.schemas.enums import Currency, InvoiceStatus

if TYPE_CHECKING:
    from seatwise.models.subscription import Subscription


class Invoice(Base):
    """One invoice per billing event (trial start, payment, renewal, admin override)."""

    __tablename__ = "invoice"

    organization_id: Mapped[UUID] = mapped_column(
        ForeignKey("organization.id", ondelete="CASCADE"), nullable=False
    )
    subscription_id: Mapped[Optional[UUID]] = mapped_column(
        ForeignKey("subscription.id", ondelete="SET NULL"), nullable=True
    )

    invoice_number: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    status: Mapped[str] = mapped_column(
        String(20), default=InvoiceStatus.DRAFT.value, nullable=False
    )

    # Amounts
    subtotal: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), default=Decimal("0"), nullable=False
    )
    total: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    amount_paid: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), default=Decimal("0"), nullable=False
    )
    amount_due: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default=Currency.USD.value, nullable=False)

    # Dates
    issue_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=False), nullable=True)

    # Itemized breakdown (line items, pricing, proration snapshot)
    breakdown: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    billing_address: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    # Payment provider references
    stripe_invoice_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    stripe_payment_intent_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    razorpay_order_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    razorpay_payment_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    payment_method: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    payment_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    subscription: Mapped[Optional["Subscription"]] = relationship("Subscription", lazy="noload")

    __table_args__ = (
        CheckConstraint("amount_due = total - amount_paid", name="check_invoice_amount_due"),
        CheckConstraint(
            "status <> 'PAID' OR amount_due = 0", name="check_invoice_paid_has_no_amount_due"
        ),
        Index("ix_invoice_org_issue_date", "organization_id", "issue_date"),
        Index("ix_invoice_subscription_status", "subscription_id", "status"),
    )

    def apply_payment(self, amount: Decimal, paid_at: datetime) -> None:
        """Record a payment and keep ``amount_due == total - amount_paid``.

        A payment covering the total marks the invoice PAID.
        """
        self.amount_paid = (self.amount_paid or Decimal("0")) + amount
        if self.amount_paid >= self.total:
            self.amount_paid = self.total
            self.status = InvoiceStatus.PAID.value
            self.paid_at = paid_at
        self.amount_due = self.total - self.amount_paid
