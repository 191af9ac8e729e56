"""Invoice generation for billing events.

Every invoice keeps ``amount_due == total - amount_paid``; paid invoices are
created with ``amount_paid == total``. Invoice numbers are unique per table and a
collision surfaces as ``ConflictError``.
"""

import secrets
import time
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from seatwise import crud
from seatwise.billing.periods import next_period_end
from seatwise.billing.pricing import ZERO, discounted_total, round_money, to_money
from seatwise.core.config import settings
from seatwise.core.datetime_utils import utc_now_naive
from seatwise.core.exceptions import ConflictError, PaymentVerificationFailedError
from seatwise.core.logging import ContextualLogger, logger
from seatwise.db.unit_of_work import UnitOfWork
from seatwise.models import Invoice, Plan, Subscription
from seatwise.schemas.enums import (
    BillingCycle,
    InvoicePaymentStatus,
    InvoiceStatus,
    PaymentProvider,
)
from seatwise.schemas.invoice import InvoiceBreakdown, InvoiceCreate, InvoiceLineItem
from seatwise.schemas.payment import VerifiedPayment
from seatwise.schemas.pricing import PricingBreakdown, ProrationSnapshot


def generate_invoice_number(now_ms: Optional[int] = None) -> str:
    """``INV-{epoch_ms}-{4 hex chars}``."""
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"INV-{now_ms}-{secrets.token_hex(2).upper()}"


def _users(count: Any) -> str:
    return f"{count} user{'' if count == 1 else 's'}"


def build_line_items(
    plan: Plan,
    user_count: int,
    pricing_breakdown: PricingBreakdown,
    previous_subscription: Optional[Subscription] = None,
    previous_plan_name: Optional[str] = None,
    proration: Optional[ProrationSnapshot] = None,
) -> List[InvoiceLineItem]:
    """Itemize a paid subscription purchase. Credits and discounts are negative."""
    base = round_money(pricing_breakdown.base_price_per_user)
    subtotal = round_money(base * user_count)

    items = [
        InvoiceLineItem(
            description=f"Subscription: {plan.name} - {_users(user_count)}",
            unit_price=ZERO,
            amount=ZERO,
            type="subscription",
        )
    ]

    old_plan_name = previous_plan_name or (proration.old_plan_name if proration else None)
    old_user_count = previous_subscription.user_count if previous_subscription else None
    if previous_subscription is not None:
        items.append(
            InvoiceLineItem(
                description=(
                    f"Previous Subscription: {old_plan_name or 'Previous Plan'} - "
                    f"{_users(old_user_count or 1)}"
                ),
                unit_price=ZERO,
                amount=ZERO,
                type="previous_subscription",
            )
        )

    items.append(
        InvoiceLineItem(
            description=f"Base Price: ${base}/user × {user_count} users",
            quantity=user_count,
            unit_price=base,
            amount=subtotal,
            type="base_price",
        )
    )

    if pricing_breakdown.volume_discount_percent > 0:
        discount = subtotal - round_money(pricing_breakdown.period_amount)
        items.append(
            InvoiceLineItem(
                description=f"Volume Discount: {pricing_breakdown.volume_discount_percent}%",
                unit_price=ZERO,
                amount=-discount,
                type="volume_discount",
            )
        )

    if proration is not None:
        items.append(
            InvoiceLineItem(
                description=(
                    f"Proration: {proration.days_remaining}/{proration.total_days_in_period} "
                    "days of billing period"
                ),
                unit_price=ZERO,
                amount=proration.charge_amount,
                type="proration",
            )
        )
        if proration.credit_amount > 0:
            items.append(
                InvoiceLineItem(
                    description=(
                        f"Credit from {old_plan_name or 'Previous Plan'} "
                        f"({_users(old_user_count or proration.old_user_count or 1)})"
                    ),
                    unit_price=ZERO,
                    amount=-proration.credit_amount,
                    type="credit",
                )
            )
            if proration.charge_amount > 0:
                items.append(
                    InvoiceLineItem(
                        description=f"Charge for {plan.name} ({_users(user_count)})",
                        unit_price=ZERO,
                        amount=proration.charge_amount,
                        type="charge",
                    )
                )

    return items


class InvoiceGenerator:
    """Creates invoice rows for purchases, charges, renewals and zero-amount events."""

    async def _create(
        self, db: AsyncSession, obj_in: InvoiceCreate, uow: Optional[UnitOfWork]
    ) -> Invoice:
        try:
            return await crud.invoice.create(db, obj_in=obj_in, uow=uow)
        except IntegrityError as e:
            raise ConflictError(
                f"Invoice {obj_in.invoice_number} conflicts with an existing invoice"
            ) from e

    async def create_detailed_invoice(
        self,
        db: AsyncSession,
        subscription: Subscription,
        plan: Plan,
        pricing_breakdown: PricingBreakdown,
        payment: VerifiedPayment,
        previous_subscription: Optional[Subscription] = None,
        previous_plan_name: Optional[str] = None,
        uow: Optional[UnitOfWork] = None,
        contextual_logger: Optional[ContextualLogger] = None,
    ) -> Invoice:
        """Create the PAID invoice for a verified purchase.

        Args:
            db: Database session
            subscription: The newly inserted subscription row
            plan: Its plan
            pricing_breakdown: What was charged; ``total_amount`` is the invoice total
            payment: Gateway confirmation of the payment
            previous_subscription: Row superseded by this purchase, if any
            previous_plan_name: Name of the superseded row's plan
            uow: Unit of work the invoice joins
            contextual_logger: Optional contextual logger

        Returns:
            The created invoice
        """
        log = contextual_logger or logger
        now = utc_now_naive()
        total = round_money(pricing_breakdown.total_amount)
        proration = pricing_breakdown.proration_details

        amount_paid = round_money(payment.amount_paid)
        if amount_paid != total:
            raise PaymentVerificationFailedError(
                f"Gateway reported {amount_paid} paid for {payment.payment_id}, "
                f"invoice total is {total}"
            )

        breakdown = InvoiceBreakdown(
            line_items=build_line_items(
                plan,
                subscription.user_count or 1,
                pricing_breakdown,
                previous_subscription=previous_subscription,
                previous_plan_name=previous_plan_name,
                proration=proration,
            ),
            plan_id=plan.id,
            plan_name=plan.name,
            billing_cycle=subscription.billing_cycle,
            user_count=subscription.user_count,
            base_price_per_user=pricing_breakdown.base_price_per_user,
            volume_discount_percent=pricing_breakdown.volume_discount_percent,
            discounted_price_per_user=pricing_breakdown.discounted_price_per_user,
            period_start=subscription.current_period_start,
            period_end=subscription.current_period_end,
            previous_subscription_id=previous_subscription.id if previous_subscription else None,
            proration=proration,
        )

        is_razorpay = payment.provider == PaymentProvider.RAZORPAY
        obj_in = InvoiceCreate(
            organization_id=subscription.organization_id,
            subscription_id=subscription.id,
            invoice_number=generate_invoice_number(),
            status=InvoiceStatus.PAID,
            subtotal=total,
            total=total,
            amount_paid=amount_paid,
            amount_due=ZERO,
            currency=pricing_breakdown.currency,
            issue_date=now.date(),
            due_date=now.date(),
            paid_at=now,
            breakdown=breakdown.model_dump(mode="json"),
            razorpay_order_id=payment.order_id if is_razorpay else None,
            razorpay_payment_id=payment.payment_id if is_razorpay else None,
            stripe_payment_intent_id=None if is_razorpay else payment.payment_intent_id,
            payment_method=payment.payment_method,
            payment_status=InvoicePaymentStatus.SUCCESS,
        )
        invoice = await self._create(db, obj_in, uow)

        log.info(
            f"Generated detailed invoice {invoice.invoice_number} (${total}) "
            f"for subscription {subscription.id}"
        )
        return invoice

    async def create_charge_invoice(
        self,
        db: AsyncSession,
        subscription: Subscription,
        plan: Plan,
        amount: Decimal,
        description: str,
        proration: Optional[ProrationSnapshot] = None,
        uow: Optional[UnitOfWork] = None,
        contextual_logger: Optional[ContextualLogger] = None,
    ) -> Invoice:
        """Create an OPEN invoice for a net charge that has not been paid yet."""
        log = contextual_logger or logger
        today = utc_now_naive().date()
        total = round_money(amount)

        line_items = [
            InvoiceLineItem(
                description=description, unit_price=total, amount=total, type="charge"
            )
        ]
        if proration is not None and proration.credit_amount > 0:
            line_items = [
                InvoiceLineItem(
                    description=f"Charge for {plan.name} ({_users(subscription.user_count)})",
                    unit_price=proration.charge_amount,
                    amount=proration.charge_amount,
                    type="charge",
                ),
                InvoiceLineItem(
                    description=f"Credit from {proration.old_plan_name or 'Previous Plan'}",
                    unit_price=-proration.credit_amount,
                    amount=-proration.credit_amount,
                    type="credit",
                ),
            ]

        breakdown = InvoiceBreakdown(
            line_items=line_items,
            plan_id=plan.id,
            plan_name=plan.name,
            billing_cycle=subscription.billing_cycle,
            user_count=subscription.user_count,
            period_start=subscription.current_period_start,
            period_end=subscription.current_period_end,
            proration=proration,
        )
        obj_in = InvoiceCreate(
            organization_id=subscription.organization_id,
            subscription_id=subscription.id,
            invoice_number=generate_invoice_number(),
            status=InvoiceStatus.OPEN,
            subtotal=total,
            total=total,
            amount_paid=ZERO,
            amount_due=total,
            currency=subscription.currency,
            issue_date=today,
            due_date=today + timedelta(days=settings.INVOICE_DUE_DAYS),
            breakdown=breakdown.model_dump(mode="json"),
            payment_status=InvoicePaymentStatus.PENDING,
            notes=description,
        )
        invoice = await self._create(db, obj_in, uow)

        log.info(
            f"Generated charge invoice {invoice.invoice_number} (${total}) "
            f"for subscription {subscription.id}"
        )
        return invoice

    def renewal_due_date(self, subscription: Subscription) -> date:
        """Renewal invoices are due a few days after the period ends."""
        period_end = subscription.current_period_end or utc_now_naive()
        return period_end.date() + timedelta(days=settings.INVOICE_DUE_DAYS)

    async def create_renewal_invoice(
        self,
        db: AsyncSession,
        subscription: Subscription,
        plan: Plan,
        uow: Optional[UnitOfWork] = None,
        contextual_logger: Optional[ContextualLogger] = None,
    ) -> Invoice:
        """Create the OPEN invoice for the next period of a subscription.

        The amount is the subscription's ``final_amount``; rows without one fall
        back to the plan price at the stored seat count and discount.
        """
        log = contextual_logger or logger
        cycle = BillingCycle(subscription.billing_cycle)
        seats = subscription.user_count or 1

        amount = to_money(subscription.final_amount)
        if amount <= 0:
            amount = discounted_total(
                plan, cycle, seats, subscription.volume_discount_percent or 0
            )
        total = round_money(amount)

        period_start = subscription.current_period_end or utc_now_naive()
        breakdown = InvoiceBreakdown(
            line_items=[
                InvoiceLineItem(
                    description=f"Renewal: {plan.name} - {_users(seats)} ({cycle.value})",
                    quantity=1,
                    unit_price=total,
                    amount=total,
                    type="subscription",
                )
            ],
            plan_id=plan.id,
            plan_name=plan.name,
            billing_cycle=cycle.value,
            user_count=seats,
            volume_discount_percent=int(subscription.volume_discount_percent or 0),
            period_start=period_start,
            period_end=next_period_end(period_start, cycle),
        )
        obj_in = InvoiceCreate(
            organization_id=subscription.organization_id,
            subscription_id=subscription.id,
            invoice_number=generate_invoice_number(),
            status=InvoiceStatus.OPEN,
            subtotal=total,
            total=total,
            amount_paid=ZERO,
            amount_due=total,
            currency=subscription.currency,
            issue_date=utc_now_naive().date(),
            due_date=self.renewal_due_date(subscription),
            breakdown=breakdown.model_dump(mode="json"),
            payment_status=InvoicePaymentStatus.PENDING,
        )
        invoice = await self._create(db, obj_in, uow)

        log.info(
            f"Generated renewal invoice {invoice.invoice_number} (${total}) "
            f"for subscription {subscription.id}"
        )
        return invoice

    async def create_zero_invoice(
        self,
        db: AsyncSession,
        subscription: Subscription,
        plan: Plan,
        description: str,
        uow: Optional[UnitOfWork] = None,
        contextual_logger: Optional[ContextualLogger] = None,
    ) -> Invoice:
        """Create a PAID $0 invoice (trial start, admin override)."""
        log = contextual_logger or logger
        now = utc_now_naive()
        due = subscription.trial_end or subscription.current_period_end or now

        breakdown = InvoiceBreakdown(
            line_items=[
                InvoiceLineItem(
                    description=description, unit_price=ZERO, amount=ZERO, type="subscription"
                )
            ],
            plan_id=plan.id,
            plan_name=plan.name,
            billing_cycle=subscription.billing_cycle,
            user_count=subscription.user_count,
            period_start=subscription.current_period_start,
            period_end=subscription.current_period_end,
        )
        obj_in = InvoiceCreate(
            organization_id=subscription.organization_id,
            subscription_id=subscription.id,
            invoice_number=generate_invoice_number(),
            status=InvoiceStatus.PAID,
            subtotal=ZERO,
            total=ZERO,
            amount_paid=ZERO,
            amount_due=ZERO,
            currency=subscription.currency,
            issue_date=now.date(),
            due_date=due.date(),
            paid_at=now,
            breakdown=breakdown.model_dump(mode="json"),
            payment_status=InvoicePaymentStatus.SUCCESS,
            notes=description,
        )
        invoice = await self._create(db, obj_in, uow)

        log.info(
            f"Generated $0 invoice {invoice.invoice_number} for organization "
            f"{subscription.organization_id}: {description}"
        )
        return invoice

    async def mark_paid(
        self,
        db: AsyncSession,
        invoice: Invoice,
        amount: Decimal,
        payment: Optional[VerifiedPayment] = None,
        uow: Optional[UnitOfWork] = None,
    ) -> Invoice:
        """Apply a payment to an open invoice, keeping amount_due = total - amount_paid."""
        invoice.apply_payment(round_money(amount), utc_now_naive())

        updates = {}
        if invoice.status == InvoiceStatus.PAID.value:
            updates["payment_status"] = InvoicePaymentStatus.SUCCESS.value
        if payment is not None:
            if payment.provider == PaymentProvider.RAZORPAY:
                updates["razorpay_payment_id"] = payment.payment_id
            else:
                updates["stripe_payment_intent_id"] = payment.payment_intent_id
        return await crud.invoice.update(db, db_obj=invoice, obj_in=updates, uow=uow)


invoice_generator = InvoiceGenerator()
