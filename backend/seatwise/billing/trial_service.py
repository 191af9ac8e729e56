"""Signup trials."""

from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from seatwise import crud
from seatwise.billing.invoice_generator import invoice_generator
from seatwise.billing.periods import trial_end_for
from seatwise.billing.proration import days_remaining
from seatwise.billing.subscription_service import subscription_service
from seatwise.core.config import settings
from seatwise.core.datetime_utils import utc_now_naive
from seatwise.core.exceptions import ConflictError, SubscriptionNotFoundError
from seatwise.core.logging import ContextualLogger, logger
from seatwise.db.unit_of_work import SERIALIZABLE, UnitOfWork
from seatwise.models import Plan, Subscription
from seatwise.schemas.enums import BillingCycle, Currency, SubscriptionStatus
from seatwise.schemas.plan import PlanCreate
from seatwise.schemas.subscription import SubscriptionCreate, TrialStatus

TRIAL_PLAN_NAME = "Free Trial"
TRIAL_DAILY_EMAIL_LIMIT = 30
TRIAL_FEATURES = {
    "basic_analytics": True,
    "email_support": True,
    "campaign_templates": True,
    "contact_management": True,
    "basic_reporting": True,
}


class TrialService:
    """Creates and inspects the free trial every organization starts with."""

    async def get_or_create_trial_plan(
        self, db: AsyncSession, uow: Optional[UnitOfWork] = None
    ) -> Plan:
        """Get the non-public trial plan, creating it on first use."""
        plan = await crud.plan.get_by_name(db, name=TRIAL_PLAN_NAME)
        if plan is not None:
            return plan

        plan_in = PlanCreate(
            name=TRIAL_PLAN_NAME,
            description=(
                f"{settings.TRIAL_DURATION_DAYS}-day free trial with Starter features "
                f"and {TRIAL_DAILY_EMAIL_LIMIT} emails per day"
            ),
            price_per_user_monthly=Decimal("0"),
            price_per_user_yearly=Decimal("0"),
            daily_email_limit=TRIAL_DAILY_EMAIL_LIMIT,
            features=dict(TRIAL_FEATURES),
            is_active=True,
            is_public=False,
        )
        plan = await crud.plan.create(db, obj_in=plan_in, uow=uow)
        logger.info(f"Created trial plan {plan.id}")
        return plan

    async def create_trial_subscription(
        self,
        db: AsyncSession,
        organization_id: UUID,
        contextual_logger: Optional[ContextualLogger] = None,
    ) -> Subscription:
        """Start the trial of a new organization.

        Args:
            db: Database session
            organization_id: Organization that just signed up
            contextual_logger: Optional contextual logger

        Returns:
            The TRIAL subscription

        Raises:
            OrganizationNotFoundError: If the organization does not exist
            ConflictError: If the organization already has a live subscription
        """
        log = (contextual_logger or logger).with_context(organization_id=str(organization_id))

        async with UnitOfWork(db, isolation_level=SERIALIZABLE) as uow:
            await subscription_service.lock_organization(db, organization_id)

            live = await crud.subscription.count_live(db, organization_id=organization_id)
            if live:
                raise ConflictError("Organization already has an active subscription")

            plan = await self.get_or_create_trial_plan(db, uow=uow)

            now = utc_now_naive()
            trial_end = trial_end_for(now)
            subscription = await crud.subscription.create(
                db,
                obj_in=SubscriptionCreate(
                    organization_id=organization_id,
                    plan_id=plan.id,
                    status=SubscriptionStatus.TRIAL,
                    billing_cycle=BillingCycle.MONTHLY,
                    currency=Currency.USD,
                    amount=Decimal("0.00"),
                    user_count=1,
                    volume_discount_percent=Decimal("0"),
                    final_amount=Decimal("0.00"),
                    trial_start=now,
                    trial_end=trial_end,
                    current_period_start=now,
                    current_period_end=trial_end,
                ),
                uow=uow,
            )
            await invoice_generator.create_zero_invoice(
                db,
                subscription,
                plan,
                f"{plan.name} - {settings.TRIAL_DURATION_DAYS} days",
                uow=uow,
                contextual_logger=log,
            )

        log.info(f"Created trial subscription {subscription.id}, ends {trial_end.isoformat()}")
        await subscription_service.invalidate_quota_cache(organization_id, log)
        return subscription

    async def check_trial_status(self, db: AsyncSession, organization_id: UUID) -> TrialStatus:
        """Trial state of the organization's live subscription.

        A trial without an end date counts as expired.

        Raises:
            SubscriptionNotFoundError: If the organization has no live subscription
        """
        subscription = await crud.subscription.get_live_by_organization(
            db, organization_id=organization_id
        )
        if subscription is None:
            raise SubscriptionNotFoundError(
                f"No subscription found for organization {organization_id}"
            )

        if subscription.status != SubscriptionStatus.TRIAL.value:
            return TrialStatus(is_trial=False, is_expired=False)

        if subscription.trial_end is None:
            return TrialStatus(
                is_trial=True,
                is_expired=True,
                trial_start=subscription.trial_start,
            )

        now = utc_now_naive()
        return TrialStatus(
            is_trial=True,
            is_expired=subscription.trial_end < now,
            days_remaining=days_remaining(
                subscription.trial_start or now, subscription.trial_end, now
            ),
            trial_start=subscription.trial_start,
            trial_end=subscription.trial_end,
        )


trial_service = TrialService()
