"""Subscription lifecycle operations.

Plan and cycle changes that cost money supersede the live row: the old row is
cancelled and a new ACTIVE row is inserted in the same serializable transaction.
Scheduled reductions, cancellations, renewals and admin seat updates modify the
live row in place. Every committed change drops the organization's quota cache.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from seatwise import crud
from seatwise.billing import proration
from seatwise.billing.invoice_generator import invoice_generator
from seatwise.billing.periods import next_period_end
from seatwise.billing.pricing import (
    per_seat_price,
    quote,
    require_self_serve,
    round_money,
    to_money,
)
from seatwise.billing.pricing_service import pricing_service
from seatwise.billing.state_machine import (
    SubscriptionAction,
    ensure_action_allowed,
    ensure_transition,
    supersede_reason,
)
from seatwise.core.datetime_utils import utc_now_naive
from seatwise.core.exceptions import (
    InvalidInputError,
    InvalidStateTransitionError,
    OrganizationNotFoundError,
    PlanNotFoundError,
    SubscriptionNotFoundError,
)
from seatwise.core.logging import ContextualLogger, logger
from seatwise.core.quota_cache import quota_cache
from seatwise.db.unit_of_work import SERIALIZABLE, UnitOfWork
from seatwise.integrations.payment_gateway import get_payment_gateway
from seatwise.models import Plan, Subscription
from seatwise.schemas.enums import (
    BillingCycle,
    OperationType,
    PaymentProvider,
    SubscriptionStatus,
)
from seatwise.schemas.pricing import PricingQuote
from seatwise.schemas.subscription import SubscriptionCreate


def pricing_fields(pricing: PricingQuote) -> dict:
    """Subscription pricing columns for a quote.

    ``amount`` is the undiscounted base for the period, ``final_amount`` what
    the period costs after the volume discount.
    """
    return {
        "amount": round_money(pricing.base_price_per_user * pricing.user_count),
        "user_count": pricing.user_count,
        "volume_discount_percent": Decimal(pricing.volume_discount_percent),
        "final_amount": pricing.total_amount,
    }


class SubscriptionService:
    """Applies lifecycle operations to an organization's subscription."""

    # Lookups

    async def get_live_subscription(
        self, db: AsyncSession, organization_id: UUID, for_update: bool = False
    ) -> Subscription:
        """The organization's ACTIVE or TRIAL subscription.

        Raises:
            SubscriptionNotFoundError: If there is none
        """
        subscription = await crud.subscription.get_live_by_organization(
            db, organization_id=organization_id, for_update=for_update
        )
        if subscription is None:
            raise SubscriptionNotFoundError(
                f"No active subscription found for organization {organization_id}"
            )
        return subscription

    async def get_plan(self, db: AsyncSession, plan_id: UUID) -> Plan:
        """Load a plan regardless of whether it is still sold."""
        plan = await crud.plan.get(db, id=plan_id)
        if plan is None:
            raise PlanNotFoundError(f"Subscription plan {plan_id} not found")
        return plan

    async def lock_organization(self, db: AsyncSession, organization_id: UUID) -> None:
        """Row-lock the organization for the rest of the transaction."""
        organization = await crud.organization.get_for_update(db, id=organization_id)
        if organization is None:
            raise OrganizationNotFoundError(f"Organization {organization_id} not found")

    def period_days(
        self, subscription: Subscription, now: Optional[datetime] = None
    ) -> Tuple[int, int]:
        """Days remaining and total days of the subscription's current period."""
        now = now or utc_now_naive()
        start = subscription.current_period_start or now
        end = subscription.current_period_end or now
        return (
            proration.days_remaining(start, end, now),
            proration.total_days_in_period(start, end),
        )

    async def invalidate_quota_cache(
        self, organization_id: UUID, contextual_logger: Optional[ContextualLogger] = None
    ) -> None:
        """Drop cached limits after a committed change; failures are only logged."""
        await quota_cache.invalidate(organization_id, contextual_logger=contextual_logger)

    # Superseding

    async def cancel_remote_subscription(
        self, subscription: Subscription, log: ContextualLogger
    ) -> None:
        """Best-effort cancellation of the provider-side recurring subscription."""
        remote_id = subscription.stripe_subscription_id or subscription.razorpay_subscription_id
        if not remote_id or not subscription.payment_provider:
            return
        try:
            gateway = get_payment_gateway(PaymentProvider(subscription.payment_provider))
            await gateway.cancel_remote_subscription(remote_id)
        except Exception as e:
            log.warning(f"Failed to cancel remote subscription {remote_id}: {e}")

    async def supersede(
        self,
        db: AsyncSession,
        old: Subscription,
        obj_in: SubscriptionCreate,
        reason: str,
        uow: UnitOfWork,
        cancel_remote: bool = False,
        contextual_logger: Optional[ContextualLogger] = None,
    ) -> Subscription:
        """Cancel ``old`` and insert its replacement inside ``uow``.

        The cancellation is flushed first so the one-live-row index never sees
        two live rows.
        """
        log = contextual_logger or logger
        ensure_transition(old.status, SubscriptionStatus.CANCELLED, action="replace")

        now = utc_now_naive()
        await crud.subscription.update(
            db,
            db_obj=old,
            obj_in={
                "status": SubscriptionStatus.CANCELLED,
                "cancelled_at": now,
                "cancel_reason": reason,
            },
            uow=uow,
        )
        if cancel_remote:
            await self.cancel_remote_subscription(old, log)

        new = await crud.subscription.create(db, obj_in=obj_in, uow=uow)
        log.info(f"Superseded subscription {old.id} with {new.id}: {reason}")
        return new

    def _carry_over_provider(self, old: Subscription) -> dict:
        return {
            "payment_provider": old.payment_provider,
            "stripe_subscription_id": old.stripe_subscription_id,
            "stripe_customer_id": old.stripe_customer_id,
            "razorpay_subscription_id": old.razorpay_subscription_id,
            "razorpay_customer_id": old.razorpay_customer_id,
        }

    # Plan changes

    async def upgrade_or_downgrade(
        self,
        db: AsyncSession,
        organization_id: UUID,
        new_plan_id: UUID,
        contextual_logger: Optional[ContextualLogger] = None,
    ) -> Subscription:
        """Move the live subscription to another plan.

        A more expensive plan is applied now with a prorated OPEN invoice for the
        net charge. A cheaper plan is scheduled for the next renewal instead.

        Args:
            db: Database session
            organization_id: Organization ID
            new_plan_id: Target plan
            contextual_logger: Optional contextual logger

        Returns:
            The new subscription row (upgrade) or the updated live row (downgrade)
        """
        log = (contextual_logger or logger).with_context(organization_id=str(organization_id))

        async with UnitOfWork(db, isolation_level=SERIALIZABLE) as uow:
            await self.lock_organization(db, organization_id)
            current = await self.get_live_subscription(db, organization_id, for_update=True)
            ensure_action_allowed(current.status, SubscriptionAction.CHANGE_PLAN)

            if current.plan_id == new_plan_id:
                raise InvalidInputError("New plan must be different from current plan")

            old_plan = await self.get_plan(db, current.plan_id)
            new_plan = await pricing_service.get_active_plan(db, new_plan_id)
            cycle = BillingCycle(current.billing_cycle)

            if per_seat_price(new_plan, cycle) <= per_seat_price(old_plan, cycle):
                updated = await self._schedule_downgrade(
                    db,
                    current,
                    old_plan,
                    new_plan,
                    f"Plan downgrade: {old_plan.name} → {new_plan.name}",
                    uow,
                    log,
                )
            else:
                updated = await self._upgrade_now(db, current, old_plan, new_plan, uow, log)

        await self.invalidate_quota_cache(organization_id, log)
        return updated

    async def _upgrade_now(
        self,
        db: AsyncSession,
        current: Subscription,
        old_plan: Plan,
        new_plan: Plan,
        uow: UnitOfWork,
        log: ContextualLogger,
    ) -> Subscription:
        now = utc_now_naive()
        cycle = BillingCycle(current.billing_cycle)
        seats = current.user_count or 1

        new_quote = require_self_serve(quote(new_plan, seats, cycle))
        days_left, total_days = self.period_days(current, now)
        result = proration.upgrade_charge(
            old_plan,
            new_plan,
            seats,
            seats,
            cycle,
            days_left,
            total_days,
            old_actual_amount_paid=current.final_amount,
            old_discount_percent=current.volume_discount_percent,
        )
        snapshot = result.to_snapshot(
            OperationType.UPGRADE,
            old_plan=old_plan,
            old_user_count=seats,
            old_billing_cycle=cycle,
            old_amount_paid=to_money(current.final_amount),
            calculated_at=now,
        )

        new = await self.supersede(
            db,
            current,
            SubscriptionCreate(
                organization_id=current.organization_id,
                plan_id=new_plan.id,
                status=SubscriptionStatus.ACTIVE,
                billing_cycle=cycle,
                currency=current.currency,
                current_period_start=current.current_period_start or now,
                current_period_end=current.current_period_end or next_period_end(now, cycle),
                proration_details=snapshot.model_dump(mode="json"),
                **pricing_fields(new_quote),
                **self._carry_over_provider(current),
            ),
            supersede_reason(new_plan.name, seats),
            uow,
            contextual_logger=log,
        )

        if result.net_charge > 0:
            await invoice_generator.create_charge_invoice(
                db,
                new,
                new_plan,
                result.net_charge,
                f"Upgrade from {old_plan.name} to {new_plan.name}",
                proration=snapshot,
                uow=uow,
                contextual_logger=log,
            )

        log.info(
            f"Upgraded subscription {current.id} from {old_plan.name} to {new_plan.name}. "
            f"Prorated charge: ${result.net_charge}"
        )
        return new

    async def change_billing_cycle(
        self,
        db: AsyncSession,
        organization_id: UUID,
        new_cycle: BillingCycle,
        contextual_logger: Optional[ContextualLogger] = None,
    ) -> Subscription:
        """Switch between monthly and yearly billing.

        The old cycle is credited pro rata, the new cycle is charged in full and a
        new period starts now. A positive net charge is invoiced; a negative one is
        not refunded.
        """
        log = (contextual_logger or logger).with_context(organization_id=str(organization_id))
        new_cycle = BillingCycle(new_cycle)

        async with UnitOfWork(db, isolation_level=SERIALIZABLE) as uow:
            await self.lock_organization(db, organization_id)
            current = await self.get_live_subscription(db, organization_id, for_update=True)
            ensure_action_allowed(current.status, SubscriptionAction.CHANGE_BILLING_CYCLE)

            old_cycle = BillingCycle(current.billing_cycle)
            if old_cycle == new_cycle:
                raise InvalidInputError(
                    f"Subscription is already on {new_cycle.value} billing cycle"
                )

            plan = await self.get_plan(db, current.plan_id)
            seats = current.user_count or 1
            new_quote = require_self_serve(quote(plan, seats, new_cycle))

            now = utc_now_naive()
            days_left, total_days = self.period_days(current, now)
            result = proration.billing_cycle_change_charge(
                old_cycle,
                new_cycle,
                plan,
                seats,
                days_left,
                total_days,
                old_discount_percent=current.volume_discount_percent,
            )
            snapshot = result.to_snapshot(
                old_plan=plan, old_user_count=seats, old_billing_cycle=old_cycle, calculated_at=now
            )

            new = await self.supersede(
                db,
                current,
                SubscriptionCreate(
                    organization_id=current.organization_id,
                    plan_id=plan.id,
                    status=SubscriptionStatus.ACTIVE,
                    billing_cycle=new_cycle,
                    currency=current.currency,
                    current_period_start=now,
                    current_period_end=next_period_end(now, new_cycle),
                    proration_details=snapshot.model_dump(mode="json"),
                    **pricing_fields(new_quote),
                    **self._carry_over_provider(current),
                ),
                f"Billing cycle changed from {old_cycle.value} to {new_cycle.value}",
                uow,
                contextual_logger=log,
            )

            if result.net_charge > 0:
                await invoice_generator.create_charge_invoice(
                    db,
                    new,
                    plan,
                    result.net_charge,
                    f"Billing cycle change from {old_cycle.value} to {new_cycle.value}",
                    proration=snapshot,
                    uow=uow,
                    contextual_logger=log,
                )
            elif result.net_charge < 0:
                log.info(
                    f"Billing cycle change leaves ${-result.net_charge} unused; no credit issued"
                )

        log.info(
            f"Changed billing cycle for subscription {current.id} from {old_cycle.value} "
            f"to {new_cycle.value}. Net charge: ${result.net_charge}"
        )
        await self.invalidate_quota_cache(organization_id, log)
        return new

    # Scheduled changes

    async def cancel_subscription(
        self,
        db: AsyncSession,
        organization_id: UUID,
        reason: Optional[str] = None,
        contextual_logger: Optional[ContextualLogger] = None,
    ) -> Subscription:
        """Cancel at the end of the current period; access continues until then."""
        log = (contextual_logger or logger).with_context(organization_id=str(organization_id))

        async with UnitOfWork(db) as uow:
            current = await self.get_live_subscription(db, organization_id, for_update=True)
            ensure_action_allowed(current.status, SubscriptionAction.CANCEL)
            if current.cancel_at is not None:
                raise InvalidStateTransitionError(
                    current_status=current.status,
                    action=SubscriptionAction.CANCEL.value,
                    message="Subscription is already scheduled for cancellation",
                )

            cancel_at = current.current_period_end or current.trial_end or utc_now_naive()
            updated = await crud.subscription.update(
                db,
                db_obj=current,
                obj_in={"cancel_at": cancel_at, "cancel_reason": reason},
                uow=uow,
            )

        log.info(
            f"Cancelled subscription {updated.id}. Access until {cancel_at.isoformat()}. "
            "No credit given."
        )
        await self.invalidate_quota_cache(organization_id, log)
        return updated

    async def schedule_seat_reduction(
        self,
        db: AsyncSession,
        organization_id: UUID,
        new_seats: int,
        reason: Optional[str] = None,
        contextual_logger: Optional[ContextualLogger] = None,
    ) -> Subscription:
        """Reduce seats at the next renewal; no credit is given."""
        log = (contextual_logger or logger).with_context(organization_id=str(organization_id))

        async with UnitOfWork(db) as uow:
            current = await self.get_live_subscription(db, organization_id, for_update=True)
            ensure_action_allowed(current.status, SubscriptionAction.SCHEDULE_SEAT_REDUCTION)

            current_seats = current.user_count or 1
            if new_seats < 1:
                raise InvalidInputError("User count must be at least 1")
            if new_seats >= current_seats:
                raise InvalidInputError(
                    f"New user count ({new_seats}) must be less than current user count "
                    f"({current_seats})"
                )

            updated = await crud.subscription.update(
                db,
                db_obj=current,
                obj_in={
                    "pending_user_count": new_seats,
                    "pending_change_reason": reason
                    or f"User count reduction scheduled: {current_seats} → {new_seats}",
                },
                uow=uow,
            )

        log.info(
            f"Scheduled user count reduction for subscription {updated.id}: "
            f"{current_seats} → {new_seats}. Applies at {updated.current_period_end}."
        )
        await self.invalidate_quota_cache(organization_id, log)
        return updated

    async def _schedule_downgrade(
        self,
        db: AsyncSession,
        current: Subscription,
        old_plan: Plan,
        new_plan: Plan,
        reason: Optional[str],
        uow: UnitOfWork,
        log: ContextualLogger,
    ) -> Subscription:
        ensure_action_allowed(current.status, SubscriptionAction.SCHEDULE_DOWNGRADE)
        cycle = BillingCycle(current.billing_cycle)
        if per_seat_price(new_plan, cycle) >= per_seat_price(old_plan, cycle):
            raise InvalidInputError(
                f"Plan {new_plan.name} is not a downgrade from {old_plan.name}. "
                "Use upgrade flow for same or higher priced plans."
            )

        credit = proration.downgrade_credit(old_plan, new_plan, current.user_count or 1, cycle)
        updated = await crud.subscription.update(
            db,
            db_obj=current,
            obj_in={
                "pending_plan_id": new_plan.id,
                "pending_change_reason": reason
                or f"Plan downgrade scheduled: {old_plan.name} → {new_plan.name}",
            },
            uow=uow,
        )
        log.info(
            f"Scheduled plan downgrade for subscription {current.id}: {old_plan.name} → "
            f"{new_plan.name}. Applies at {current.current_period_end}. Credit: ${credit}"
        )
        return updated

    async def schedule_plan_downgrade(
        self,
        db: AsyncSession,
        organization_id: UUID,
        new_plan_id: UUID,
        reason: Optional[str] = None,
        contextual_logger: Optional[ContextualLogger] = None,
    ) -> Subscription:
        """Move to a cheaper plan at the next renewal; no credit is given."""
        log = (contextual_logger or logger).with_context(organization_id=str(organization_id))

        async with UnitOfWork(db) as uow:
            current = await self.get_live_subscription(db, organization_id, for_update=True)
            ensure_action_allowed(current.status, SubscriptionAction.SCHEDULE_DOWNGRADE)
            old_plan = await self.get_plan(db, current.plan_id)
            new_plan = await pricing_service.get_active_plan(db, new_plan_id)
            updated = await self._schedule_downgrade(
                db, current, old_plan, new_plan, reason, uow, log
            )

        await self.invalidate_quota_cache(organization_id, log)
        return updated

    # Admin paths

    async def admin_override_upgrade(
        self,
        db: AsyncSession,
        organization_id: UUID,
        plan_id: UUID,
        seat_count: int,
        cycle: BillingCycle,
        reason: Optional[str] = None,
        contextual_logger: Optional[ContextualLogger] = None,
    ) -> Subscription:
        """Put an organization on a plan without charging it.

        The live row is cancelled immediately and replaced by an ACTIVE row with a
        zero ``final_amount``; a $0 PAID invoice records the change.
        """
        log = (contextual_logger or logger).with_context(organization_id=str(organization_id))
        if seat_count < 1:
            raise InvalidInputError("User count must be at least 1")
        cycle = BillingCycle(cycle)

        async with UnitOfWork(db, isolation_level=SERIALIZABLE) as uow:
            await self.lock_organization(db, organization_id)
            plan = await pricing_service.get_active_plan(db, plan_id)
            pricing = quote(plan, seat_count, cycle)

            now = utc_now_naive()
            obj_in = SubscriptionCreate(
                organization_id=organization_id,
                plan_id=plan.id,
                status=SubscriptionStatus.ACTIVE,
                billing_cycle=cycle,
                amount=round_money(pricing.base_price_per_user * seat_count),
                user_count=seat_count,
                volume_discount_percent=Decimal(pricing.volume_discount_percent),
                final_amount=Decimal("0.00"),
                current_period_start=now,
                current_period_end=next_period_end(now, cycle),
            )
            note = reason or f"Admin override: {plan.name} - {seat_count} users"

            current = await crud.subscription.get_live_by_organization(
                db, organization_id=organization_id, for_update=True
            )
            if current is not None:
                new = await self.supersede(
                    db, current, obj_in, note, uow, cancel_remote=True, contextual_logger=log
                )
            else:
                new = await crud.subscription.create(db, obj_in=obj_in, uow=uow)

            await invoice_generator.create_zero_invoice(
                db, new, plan, note, uow=uow, contextual_logger=log
            )

        log.info(f"Admin override put organization on {plan.name} with {seat_count} seats")
        await self.invalidate_quota_cache(organization_id, log)
        return new

    async def admin_update_user_count(
        self,
        db: AsyncSession,
        organization_id: UUID,
        user_count: int,
        contextual_logger: Optional[ContextualLogger] = None,
    ) -> Subscription:
        """Set the seat count of the live row without charging; pending changes are dropped."""
        log = (contextual_logger or logger).with_context(organization_id=str(organization_id))
        if user_count < 1:
            raise InvalidInputError("User count must be at least 1")

        async with UnitOfWork(db) as uow:
            current = await self.get_live_subscription(db, organization_id, for_update=True)
            ensure_action_allowed(current.status, SubscriptionAction.UPDATE_SEATS)

            updates = {
                "user_count": user_count,
                "pending_user_count": None,
                "pending_plan_id": None,
                "pending_change_reason": None,
            }
            if current.status != SubscriptionStatus.TRIAL.value:
                plan = await self.get_plan(db, current.plan_id)
                pricing = quote(plan, user_count, BillingCycle(current.billing_cycle))
                if not pricing.requires_contact_sales:
                    updates.update(pricing_fields(pricing))

            updated = await crud.subscription.update(db, db_obj=current, obj_in=updates, uow=uow)

        log.info(f"Admin set user count of subscription {updated.id} to {user_count}")
        await self.invalidate_quota_cache(organization_id, log)
        return updated

    async def recalculate_if_needed(
        self,
        db: AsyncSession,
        organization_id: UUID,
        contextual_logger: Optional[ContextualLogger] = None,
    ) -> Optional[Subscription]:
        """Refresh stored pricing of the live row from its plan and seat count.

        Trials and contact-sales seat counts are left alone.

        Returns:
            The subscription when pricing changed, None otherwise
        """
        log = (contextual_logger or logger).with_context(organization_id=str(organization_id))

        async with UnitOfWork(db) as uow:
            current = await crud.subscription.get_live_by_organization(
                db, organization_id=organization_id, for_update=True
            )
            if current is None or current.status == SubscriptionStatus.TRIAL.value:
                return None

            plan = await self.get_plan(db, current.plan_id)
            pricing = quote(plan, current.user_count or 1, BillingCycle(current.billing_cycle))
            if pricing.requires_contact_sales:
                return None

            fields = pricing_fields(pricing)
            unchanged = (
                to_money(current.final_amount) == fields["final_amount"]
                and to_money(current.volume_discount_percent)
                == fields["volume_discount_percent"]
                and to_money(current.amount) == fields["amount"]
            )
            if unchanged:
                return None

            fields.pop("user_count")
            updated = await crud.subscription.update(db, db_obj=current, obj_in=fields, uow=uow)

        log.info(
            f"Recalculated pricing of subscription {updated.id}: ${updated.final_amount} "
            f"at {updated.volume_discount_percent}% discount"
        )
        await self.invalidate_quota_cache(organization_id, log)
        return updated

    # Renewal

    async def apply_pending_changes(
        self,
        db: AsyncSession,
        subscription: Subscription,
        uow: Optional[UnitOfWork] = None,
        contextual_logger: Optional[ContextualLogger] = None,
    ) -> Subscription:
        """Apply a scheduled seat reduction and/or plan downgrade and reprice."""
        log = contextual_logger or logger
        if subscription.pending_user_count is None and subscription.pending_plan_id is None:
            return subscription

        plan_id = subscription.pending_plan_id or subscription.plan_id
        seats = subscription.pending_user_count or subscription.user_count or 1
        plan = await self.get_plan(db, plan_id)
        pricing = require_self_serve(quote(plan, seats, BillingCycle(subscription.billing_cycle)))

        log.info(
            f"Applying pending changes to subscription {subscription.id}: "
            f"plan {subscription.plan_id} → {plan_id}, "
            f"users {subscription.user_count} → {seats}"
        )
        return await crud.subscription.update(
            db,
            db_obj=subscription,
            obj_in={
                "plan_id": plan.id,
                **pricing_fields(pricing),
                "pending_user_count": None,
                "pending_plan_id": None,
                "pending_change_reason": None,
            },
            uow=uow,
        )

    async def process_auto_renewal(
        self,
        db: AsyncSession,
        subscription_id: UUID,
        contextual_logger: Optional[ContextualLogger] = None,
    ) -> Subscription:
        """Renew a subscription for another period.

        Pending changes are applied first, the renewal invoice is issued unless the
        sweep already issued it, and the period is rolled forward.
        """
        log = contextual_logger or logger

        async with UnitOfWork(db) as uow:
            subscription = await crud.subscription.get_for_update(db, id=subscription_id)
            if subscription is None:
                raise SubscriptionNotFoundError(f"Subscription {subscription_id} not found")
            log = log.with_context(organization_id=str(subscription.organization_id))

            ensure_action_allowed(subscription.status, SubscriptionAction.RENEW)
            if subscription.cancel_at is not None:
                raise InvalidStateTransitionError(
                    current_status=subscription.status,
                    action=SubscriptionAction.RENEW.value,
                    message="Subscription is scheduled for cancellation and will not renew",
                )

            subscription = await self.apply_pending_changes(
                db, subscription, uow=uow, contextual_logger=log
            )
            plan = await self.get_plan(db, subscription.plan_id)

            already_invoiced = await crud.invoice.has_open_invoice_due(
                db,
                subscription_id=subscription.id,
                due_date=invoice_generator.renewal_due_date(subscription),
            )
            if not already_invoiced:
                await invoice_generator.create_renewal_invoice(
                    db, subscription, plan, uow=uow, contextual_logger=log
                )

            cycle = BillingCycle(subscription.billing_cycle)
            start = subscription.current_period_end or utc_now_naive()
            renewed = await crud.subscription.update(
                db,
                db_obj=subscription,
                obj_in={
                    "current_period_start": start,
                    "current_period_end": next_period_end(start, cycle),
                    "status": SubscriptionStatus.ACTIVE,
                },
                uow=uow,
            )

        log.info(f"Subscription {renewed.id} renewed until {renewed.current_period_end}")
        await self.invalidate_quota_cache(renewed.organization_id, log)
        return renewed


subscription_service = SubscriptionService()
