"""Payment-first subscription purchases.

``initiate`` prices the requested change and opens a gateway order or checkout
session; nothing is persisted. ``verify`` confirms the payment with the gateway
and only then supersedes the live subscription and writes the paid invoice in
one serializable transaction.
"""

import json
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple, Union
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from seatwise import crud
from seatwise.billing import proration
from seatwise.billing.invoice_generator import invoice_generator
from seatwise.billing.periods import next_period_end
from seatwise.billing.pricing import per_seat_price, quote, require_self_serve, round_money
from seatwise.billing.pricing_service import pricing_service
from seatwise.billing.state_machine import (
    ChangeClassification,
    SubscriptionAction,
    classify_change,
    supersede_reason,
)
from seatwise.billing.subscription_service import subscription_service
from seatwise.core.config import settings
from seatwise.core.datetime_utils import utc_now_naive
from seatwise.core.exceptions import (
    ConflictError,
    ExternalServiceError,
    InvalidInputError,
    InvalidStateTransitionError,
    InvoiceNotFoundError,
    OrganizationNotFoundError,
    PaymentVerificationFailedError,
    SubscriptionNotFoundError,
)
from seatwise.core.logging import ContextualLogger, LoggerConfigurator
from seatwise.db.unit_of_work import SERIALIZABLE, UnitOfWork
from seatwise.integrations.payment_gateway import PaymentGateway, get_payment_gateway
from seatwise.integrations.razorpay_client import build_receipt
from seatwise.models import Plan, Subscription
from seatwise.schemas import organization as organization_schema
from seatwise.schemas.enums import (
    LIVE_SUBSCRIPTION_STATUSES,
    BillingCycle,
    Currency,
    InvoiceStatus,
    OperationType,
    PaymentProvider,
    SubscriptionStatus,
)
from seatwise.schemas.payment import (
    PaymentInitiation,
    PaymentVerification,
    PendingChanges,
    VerifiedPayment,
)
from seatwise.schemas.pricing import PricingBreakdown
from seatwise.schemas.subscription import SubscriptionCreate

logger = LoggerConfigurator.configure_logger(
    __name__, dimensions={"component": "payment_orchestrator"}
)

_LIVE = {status.value for status in LIVE_SUBSCRIPTION_STATUSES}
_INTERVALS = {BillingCycle.MONTHLY: "month", BillingCycle.YEARLY: "year"}


class PaymentOrchestrator:
    """Coordinates pricing, the payment gateways and the subscription rows."""

    # Initiation

    async def resolve_seat_count(
        self,
        db: AsyncSession,
        organization_id: UUID,
        current: Optional[Subscription],
        seats: Optional[int] = None,
    ) -> int:
        """Requested seats, else the live row's seats, else active users, at least 1."""
        if seats is not None:
            if seats < 1:
                raise InvalidInputError("User count must be at least 1")
            return seats
        if current is not None and current.user_count:
            return current.user_count
        active_users = await crud.organization.count_active_users(
            db, organization_id=organization_id
        )
        return max(1, active_users)

    def price_change(
        self,
        plan: Plan,
        seat_count: int,
        cycle: BillingCycle,
        classification: ChangeClassification,
        current: Optional[Subscription] = None,
        old_plan: Optional[Plan] = None,
    ) -> PricingBreakdown:
        """What the customer pays now for a classified change.

        Raises:
            ContactSalesRequiredError: If the seat count is above the self-serve tiers
        """
        new_quote = require_self_serve(quote(plan, seat_count, cycle))
        breakdown = PricingBreakdown(
            base_price_per_user=new_quote.base_price_per_user,
            volume_discount_percent=new_quote.volume_discount_percent,
            discounted_price_per_user=new_quote.discounted_price_per_user,
            total_amount=new_quote.total_amount,
            period_amount=new_quote.total_amount,
            currency=new_quote.currency,
        )
        if classification.is_new_purchase:
            return breakdown

        old_cycle = BillingCycle(current.billing_cycle)
        old_seats = current.user_count or 1
        days_left, total_days = subscription_service.period_days(current)
        common = dict(
            old_actual_amount_paid=current.final_amount,
            old_discount_percent=current.volume_discount_percent,
        )

        operation = classification.operation_type
        if classification.cycle_changed and not (
            classification.plan_changed or classification.seats_changed
        ):
            cycle_result = proration.billing_cycle_change_charge(
                old_cycle,
                cycle,
                plan,
                seat_count,
                days_left,
                total_days,
                old_discount_percent=current.volume_discount_percent,
            )
            breakdown.total_amount = round_money(cycle_result.net_charge)
            breakdown.proration_details = cycle_result.to_snapshot(
                old_plan=old_plan, old_user_count=old_seats, old_billing_cycle=old_cycle
            )
            return breakdown

        if operation == OperationType.COMBINED or classification.cycle_changed:
            result = proration.combined_upgrade_charge(
                old_plan, plan, old_seats, seat_count, old_cycle, days_left, total_days,
                new_cycle=cycle, **common,
            )
        elif operation == OperationType.ADD_USERS:
            result = proration.add_users_charge(
                plan, old_seats, seat_count, old_cycle, days_left, total_days, **common
            )
        else:
            result = proration.upgrade_charge(
                old_plan, plan, old_seats, seat_count, old_cycle, days_left, total_days,
                **common,
            )

        breakdown.total_amount = round_money(result.net_charge)
        breakdown.proration_details = result.to_snapshot(
            operation,
            old_plan=old_plan,
            old_user_count=old_seats,
            old_billing_cycle=old_cycle,
            old_amount_paid=current.final_amount,
        )
        return breakdown

    def require_pricier_plan(
        self, plan: Plan, old_plan: Plan, cycle: BillingCycle, status: str
    ) -> None:
        """Raise unless ``plan`` costs more per seat than ``old_plan`` on ``cycle``.

        Moving to a cheaper or equally priced plan, with or without extra seats, is
        a downgrade and waits for the renewal.
        """
        new_price = per_seat_price(plan, cycle)
        old_price = per_seat_price(old_plan, cycle)
        if new_price <= old_price:
            raise InvalidStateTransitionError(
                current_status=status,
                action=SubscriptionAction.SCHEDULE_DOWNGRADE.value,
                message=(
                    f"{plan.name} costs {new_price} per user against {old_price} on "
                    f"{old_plan.name}. Schedule a plan downgrade for the next billing "
                    "cycle instead."
                ),
            )

    async def resolve_customer_id(
        self,
        db: AsyncSession,
        gateway: PaymentGateway,
        organization: Any,
        current: Optional[Subscription],
        log: ContextualLogger,
    ) -> Optional[str]:
        """Gateway customer id: live row, then any earlier row, then a new customer."""
        provider = gateway.provider
        if current is not None:
            customer_id = (
                current.stripe_customer_id
                if provider == PaymentProvider.STRIPE
                else current.razorpay_customer_id
            )
            if customer_id:
                return customer_id

        customer_id = await crud.subscription.find_customer_id(
            db, organization_id=organization.id, provider=provider
        )
        if customer_id:
            return customer_id

        try:
            customer = await gateway.create_customer(
                organization_schema.Organization.model_validate(organization, from_attributes=True)
            )
        except ExternalServiceError as e:
            log.warning(f"Could not create {provider.value} customer, continuing without: {e}")
            return None
        return customer.customer_id if customer else None

    def order_metadata(
        self,
        organization_id: UUID,
        plan: Plan,
        pending: PendingChanges,
        breakdown: PricingBreakdown,
    ) -> Dict[str, Any]:
        """Purchase details attached to the gateway order or checkout session."""
        return {
            "organizationId": organization_id,
            "planId": pending.plan_id,
            "planName": plan.name,
            "userCount": pending.user_count,
            "billingCycle": pending.billing_cycle.value,
            "operationType": pending.operation_type.value,
            "existingSubscriptionId": pending.existing_subscription_id,
            "pricingBreakdown": json.dumps(
                {
                    "basePricePerUser": str(breakdown.base_price_per_user),
                    "volumeDiscountPercent": breakdown.volume_discount_percent,
                    "totalAmount": str(breakdown.total_amount),
                    "periodAmount": str(breakdown.period_amount),
                },
                separators=(",", ":"),
            ),
        }

    def check_payment(
        self,
        payment: VerifiedPayment,
        organization_id: UUID,
        pending: PendingChanges,
        breakdown: PricingBreakdown,
    ) -> None:
        """Match a confirmed payment against the purchase about to be activated.

        The captured amount and currency must equal the breakdown, and the details
        recorded on the order at initiation must name the same organization, plan,
        seats, cycle and prices as the pending changes.

        Raises:
            PaymentVerificationFailedError: On any mismatch
        """
        reference = payment.payment_id
        currency = Currency(breakdown.currency).value
        if (payment.currency or "").upper() != currency:
            raise PaymentVerificationFailedError(
                f"Payment {reference} was made in {payment.currency}, expected {currency}"
            )
        if round_money(payment.amount_paid) != round_money(breakdown.total_amount):
            raise PaymentVerificationFailedError(
                f"Payment {reference} captured {payment.amount_paid}, "
                f"expected {round_money(breakdown.total_amount)}"
            )

        recorded = payment.metadata
        if not recorded:
            raise PaymentVerificationFailedError(
                f"Payment {reference} carries no purchase details"
            )

        expected = {
            "organizationId": str(organization_id),
            "planId": str(pending.plan_id),
            "userCount": str(pending.user_count),
            "billingCycle": pending.billing_cycle.value,
            "operationType": pending.operation_type.value,
            "existingSubscriptionId": (
                str(pending.existing_subscription_id)
                if pending.existing_subscription_id is not None
                else None
            ),
        }
        mismatched = [key for key, value in expected.items() if recorded.get(key) != value]

        try:
            prices = json.loads(recorded.get("pricingBreakdown") or "{}")
            if not (
                round_money(prices.get("totalAmount")) == round_money(breakdown.total_amount)
                and round_money(prices.get("periodAmount"))
                == round_money(breakdown.period_amount)
                and round_money(prices.get("basePricePerUser"))
                == round_money(breakdown.base_price_per_user)
                and int(prices.get("volumeDiscountPercent", -1))
                == breakdown.volume_discount_percent
            ):
                mismatched.append("pricingBreakdown")
        except (ValueError, TypeError, AttributeError, ArithmeticError):
            mismatched.append("pricingBreakdown")

        if mismatched:
            raise PaymentVerificationFailedError(
                f"Payment {reference} does not match the order: {', '.join(mismatched)}"
            )

    async def initiate(
        self,
        db: AsyncSession,
        organization_id: UUID,
        plan_id: UUID,
        cycle: BillingCycle,
        provider: PaymentProvider,
        seats: Optional[int] = None,
        contextual_logger: Optional[ContextualLogger] = None,
    ) -> PaymentInitiation:
        """Price a purchase and open the gateway order/checkout for it.

        Args:
            db: Database session
            organization_id: Purchasing organization
            plan_id: Plan to buy
            cycle: Billing cycle to buy
            provider: Gateway to pay with
            seats: Seat count; defaults to the current seats or the active user count
            contextual_logger: Optional contextual logger

        Returns:
            PaymentInitiation with the checkout, the breakdown and the pending changes
            the client passes back to ``verify``

        Raises:
            InvalidStateTransitionError: On a seat decrease, a move to a plan that is not
                pricier per seat, or a non-purchasable status
            InvalidInputError: When nothing changes or nothing would be charged
            ContactSalesRequiredError: Above the self-serve seat tiers
        """
        log = (contextual_logger or logger).with_context(organization_id=str(organization_id))
        cycle = BillingCycle(cycle)
        provider = PaymentProvider(provider)

        plan = await pricing_service.get_active_plan(db, plan_id)
        organization = await crud.organization.get(db, id=organization_id)
        if organization is None:
            raise OrganizationNotFoundError(f"Organization {organization_id} not found")

        current = await crud.subscription.get_live_by_organization(
            db, organization_id=organization_id
        )
        seat_count = await self.resolve_seat_count(db, organization_id, current, seats)
        classification = classify_change(current, plan.id, seat_count, cycle)

        old_plan = None
        if not classification.is_new_purchase:
            old_plan = await subscription_service.get_plan(db, current.plan_id)
            if classification.plan_changed:
                self.require_pricier_plan(plan, old_plan, cycle, current.status)
        breakdown = self.price_change(plan, seat_count, cycle, classification, current, old_plan)
        if breakdown.total_amount <= 0:
            raise InvalidInputError(
                "This change has no amount to charge. Schedule a downgrade instead."
            )

        gateway = get_payment_gateway(provider)
        customer_id = await self.resolve_customer_id(db, gateway, organization, current, log)

        pending = PendingChanges(
            plan_id=plan.id,
            user_count=seat_count,
            billing_cycle=cycle,
            operation_type=classification.operation_type,
            existing_subscription_id=current.id if current is not None else None,
            existing_user_count=classification.old_user_count,
            new_user_count=seat_count,
        )
        metadata = self.order_metadata(organization_id, plan, pending, breakdown)

        # Only a charge equal to the full period can recur at the provider
        recurring = breakdown.total_amount == breakdown.period_amount
        checkout = await gateway.create_order_or_checkout(
            amount=breakdown.total_amount,
            currency=breakdown.currency,
            metadata=metadata,
            description=f"{plan.name} - {seat_count} users ({cycle.value})",
            interval=_INTERVALS[cycle] if recurring else None,
            customer_id=customer_id,
            receipt=build_receipt(organization_id),
        )

        log.info(
            f"Initiated {classification.operation_type.value} payment of "
            f"${breakdown.total_amount} via {provider.value} ({checkout.reference_id})"
        )
        return PaymentInitiation(
            payment_provider=provider,
            checkout=checkout,
            pricing_breakdown=breakdown,
            pending_changes=pending,
        )

    # Verification

    def new_period(
        self,
        pending: PendingChanges,
        previous: Optional[Subscription],
        now: datetime,
    ) -> Tuple[datetime, datetime]:
        """Period of the new row.

        Upgrades and seat additions on the same cycle keep the running period; new
        purchases, combined changes and cycle changes start a new one.
        """
        keeps_period = (
            previous is not None
            and pending.operation_type in (OperationType.UPGRADE, OperationType.ADD_USERS)
            and BillingCycle(previous.billing_cycle) == pending.billing_cycle
            and previous.status == SubscriptionStatus.ACTIVE.value
            and previous.current_period_start is not None
            and previous.current_period_end is not None
            and previous.current_period_end > now
        )
        if keeps_period:
            return previous.current_period_start, previous.current_period_end
        return now, next_period_end(now, pending.billing_cycle)

    async def _find_duplicate(
        self,
        db: AsyncSession,
        organization_id: UUID,
        pending: PendingChanges,
        provider: PaymentProvider,
    ) -> Optional[PaymentVerification]:
        window_start = utc_now_naive() - timedelta(seconds=settings.IDEMPOTENCY_WINDOW_SECONDS)
        duplicate = await crud.subscription.find_recent_duplicate(
            db,
            organization_id=organization_id,
            plan_id=pending.plan_id,
            user_count=pending.user_count,
            billing_cycle=pending.billing_cycle,
            payment_provider=provider,
            created_after=window_start,
        )
        if duplicate is None:
            return None
        invoice = await crud.invoice.get_latest_paid(db, subscription_id=duplicate.id)
        return PaymentVerification(
            subscription_id=duplicate.id,
            invoice_id=invoice.id if invoice is not None else None,
            payment_provider=provider,
            duplicate=True,
        )

    async def verify(
        self,
        db: AsyncSession,
        organization_id: UUID,
        order_id: str,
        payment_id: str,
        signature: Optional[str],
        pending_changes: Union[PendingChanges, Dict[str, Any]],
        pricing_breakdown: Union[PricingBreakdown, Dict[str, Any]],
        provider: PaymentProvider,
        contextual_logger: Optional[ContextualLogger] = None,
    ) -> PaymentVerification:
        """Confirm a payment and activate the purchased subscription.

        A repeated call for the same purchase within the idempotency window returns
        the subscription and invoice created by the first call.

        Raises:
            PaymentVerificationFailedError: If the gateway signature/order check fails
            PaymentNotConfirmedError: If the payment is not captured/paid
            ConflictError: If the organization gained another live subscription meanwhile
        """
        log = (contextual_logger or logger).with_context(organization_id=str(organization_id))
        provider = PaymentProvider(provider)
        pending = PendingChanges.model_validate(pending_changes)
        breakdown = PricingBreakdown.model_validate(pricing_breakdown)

        duplicate = await self._find_duplicate(db, organization_id, pending, provider)
        if duplicate is not None:
            log.info(
                f"Payment {payment_id} already processed as subscription "
                f"{duplicate.subscription_id}"
            )
            return duplicate

        gateway = get_payment_gateway(provider)
        payment = await gateway.verify_payment(
            order_id=order_id, payment_id=payment_id, signature=signature
        )
        self.check_payment(payment, organization_id, pending, breakdown)

        organization = await crud.organization.get(db, id=organization_id)
        if organization is None:
            raise OrganizationNotFoundError(f"Organization {organization_id} not found")
        customer_id = payment.customer_id or await self.resolve_customer_id(
            db, gateway, organization, None, log
        )

        async with UnitOfWork(db, isolation_level=SERIALIZABLE) as uow:
            subscription, invoice = await self._activate(
                db, organization_id, pending, breakdown, payment, customer_id, uow, log
            )

        await subscription_service.invalidate_quota_cache(organization_id, log)
        log.info(
            f"Verified {provider.value} payment {payment.payment_id}: subscription "
            f"{subscription.id}, invoice {invoice.invoice_number}"
        )
        return PaymentVerification(
            subscription_id=subscription.id,
            invoice_id=invoice.id,
            payment_provider=provider,
        )

    async def _activate(
        self,
        db: AsyncSession,
        organization_id: UUID,
        pending: PendingChanges,
        breakdown: PricingBreakdown,
        payment: VerifiedPayment,
        customer_id: Optional[str],
        uow: UnitOfWork,
        log: ContextualLogger,
    ):
        plan = await pricing_service.get_active_plan(db, pending.plan_id)
        await subscription_service.lock_organization(db, organization_id)

        previous = None
        previous_plan_name = None
        if pending.existing_subscription_id is not None:
            previous = await crud.subscription.get_for_update(
                db, id=pending.existing_subscription_id
            )
            if previous is None or previous.organization_id != organization_id:
                raise SubscriptionNotFoundError(
                    f"Subscription {pending.existing_subscription_id} not found"
                )
            if previous.status not in _LIVE:
                raise ConflictError(
                    f"Subscription {previous.id} changed to {previous.status} "
                    "before the payment was verified"
                )
            previous_plan = await crud.plan.get(db, id=previous.plan_id)
            previous_plan_name = previous_plan.name if previous_plan else None

        others = await crud.subscription.count_live(
            db,
            organization_id=organization_id,
            exclude_id=previous.id if previous is not None else None,
        )
        if others:
            raise ConflictError("Organization already has an active subscription")

        now = utc_now_naive()
        period_start, period_end = self.new_period(pending, previous, now)
        is_stripe = payment.provider == PaymentProvider.STRIPE
        obj_in = SubscriptionCreate(
            organization_id=organization_id,
            plan_id=plan.id,
            status=SubscriptionStatus.ACTIVE,
            billing_cycle=pending.billing_cycle,
            currency=breakdown.currency,
            amount=round_money(breakdown.base_price_per_user * pending.user_count),
            user_count=pending.user_count,
            volume_discount_percent=breakdown.volume_discount_percent,
            final_amount=breakdown.period_amount,
            current_period_start=period_start,
            current_period_end=period_end,
            proration_details=(
                breakdown.proration_details.model_dump(mode="json")
                if breakdown.proration_details is not None
                else None
            ),
            payment_provider=payment.provider,
            stripe_subscription_id=payment.remote_subscription_id if is_stripe else None,
            stripe_customer_id=customer_id if is_stripe else None,
            razorpay_subscription_id=None if is_stripe else payment.remote_subscription_id,
            razorpay_customer_id=None if is_stripe else customer_id,
        )

        if previous is not None:
            subscription = await subscription_service.supersede(
                db,
                previous,
                obj_in,
                supersede_reason(plan.name, pending.user_count),
                uow,
                cancel_remote=True,
                contextual_logger=log,
            )
        else:
            subscription = await crud.subscription.create(db, obj_in=obj_in, uow=uow)

        invoice = await invoice_generator.create_detailed_invoice(
            db,
            subscription,
            plan,
            breakdown,
            payment,
            previous_subscription=previous,
            previous_plan_name=previous_plan_name,
            uow=uow,
            contextual_logger=log,
        )
        return subscription, invoice

    # Failure handling

    async def handle_payment_failure(
        self,
        db: AsyncSession,
        invoice_id: UUID,
        contextual_logger: Optional[ContextualLogger] = None,
    ) -> bool:
        """Discard the invoice of a failed payment.

        A freshly created INCOMPLETE subscription behind it is deleted as well; an
        older one is left INCOMPLETE for manual review.

        Returns:
            True if the subscription was deleted

        Raises:
            InvoiceNotFoundError: If the invoice does not exist
            InvalidStateTransitionError: If the invoice is already paid
        """
        log = contextual_logger or logger
        subscription_deleted = False

        async with UnitOfWork(db, isolation_level=SERIALIZABLE) as uow:
            invoice = await crud.invoice.get_for_update(db, id=invoice_id)
            if invoice is None:
                raise InvoiceNotFoundError(f"Invoice {invoice_id} not found")
            if invoice.status == InvoiceStatus.PAID.value:
                raise InvalidStateTransitionError(
                    message=f"Invoice {invoice.invoice_number} is paid and cannot be discarded"
                )
            log = log.with_context(organization_id=str(invoice.organization_id))

            subscription = None
            if invoice.subscription_id is not None:
                subscription = await crud.subscription.get_for_update(
                    db, id=invoice.subscription_id
                )

            await crud.invoice.remove(db, id=invoice.id, uow=uow)
            log.info(f"Deleted invoice {invoice.invoice_number} after payment failure")

            if subscription is not None and subscription.status == (
                SubscriptionStatus.INCOMPLETE.value
            ):
                age = utc_now_naive() - subscription.created_at
                if age < timedelta(seconds=settings.INCOMPLETE_ROLLBACK_WINDOW_SECONDS):
                    await crud.subscription.remove(db, id=subscription.id, uow=uow)
                    subscription_deleted = True
                    log.info(f"Deleted incomplete subscription {subscription.id}")
                else:
                    log.warning(
                        f"Subscription {subscription.id} left INCOMPLETE after payment "
                        "failure; it predates the rollback window and needs manual review"
                    )

        return subscription_deleted

    async def get_payment_status(self, provider: PaymentProvider, payment_id: str) -> str:
        """Provider-side status of a payment."""
        return await get_payment_gateway(PaymentProvider(provider)).get_payment_status(payment_id)


payment_orchestrator = PaymentOrchestrator()
