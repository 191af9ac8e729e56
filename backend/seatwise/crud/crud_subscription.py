"""CRUD operations for subscriptions."""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import and_, desc, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from seatwise.crud._base import CRUDBase
from seatwise.models import Subscription
from seatwise.schemas.enums import (
    LIVE_SUBSCRIPTION_STATUSES,
    BillingCycle,
    PaymentProvider,
    SubscriptionStatus,
)
from seatwise.schemas.subscription import SubscriptionCreate, SubscriptionUpdate

_LIVE = [status.value for status in LIVE_SUBSCRIPTION_STATUSES]


class CRUDSubscription(CRUDBase[Subscription, SubscriptionCreate, SubscriptionUpdate]):
    """CRUD operations for subscriptions."""

    async def get_live_by_organization(
        self, db: AsyncSession, *, organization_id: UUID, for_update: bool = False
    ) -> Optional[Subscription]:
        """Get the organization's ACTIVE or TRIAL subscription.

        Args:
            db: Database session
            organization_id: Organization ID
            for_update: Lock the row until the transaction ends

        Returns:
            The most recent live subscription or None
        """
        query = (
            select(Subscription)
            .where(
                Subscription.organization_id == organization_id,
                Subscription.status.in_(_LIVE),
            )
            .order_by(desc(Subscription.created_at))
            .limit(1)
        )
        if for_update:
            query = query.with_for_update()
        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def count_live(
        self, db: AsyncSession, *, organization_id: UUID, exclude_id: Optional[UUID] = None
    ) -> int:
        """Count ACTIVE/TRIAL rows of an organization, optionally ignoring one row."""
        query = select(func.count(Subscription.id)).where(
            Subscription.organization_id == organization_id,
            Subscription.status.in_(_LIVE),
        )
        if exclude_id is not None:
            query = query.where(Subscription.id != exclude_id)
        result = await db.execute(query)
        return int(result.scalar_one() or 0)

    async def find_recent_duplicate(
        self,
        db: AsyncSession,
        *,
        organization_id: UUID,
        plan_id: UUID,
        user_count: int,
        billing_cycle: BillingCycle,
        payment_provider: PaymentProvider,
        created_after: datetime,
    ) -> Optional[Subscription]:
        """Find a subscription with identical terms created after the given time.

        Used to detect repeated verification of the same payment.
        """
        query = (
            select(Subscription)
            .where(
                Subscription.organization_id == organization_id,
                Subscription.plan_id == plan_id,
                Subscription.user_count == user_count,
                Subscription.billing_cycle == billing_cycle.value,
                Subscription.payment_provider == payment_provider.value,
                Subscription.created_at >= created_after,
            )
            .order_by(desc(Subscription.created_at))
            .limit(1)
        )
        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def find_customer_id(
        self, db: AsyncSession, *, organization_id: UUID, provider: PaymentProvider
    ) -> Optional[str]:
        """Return the most recent gateway customer id stored on any of the org's rows.

        Args:
            db: Database session
            organization_id: Organization ID
            provider: Which gateway's customer id to look for

        Returns:
            Customer id or None
        """
        column = (
            Subscription.stripe_customer_id
            if provider == PaymentProvider.STRIPE
            else Subscription.razorpay_customer_id
        )
        query = (
            select(column)
            .where(Subscription.organization_id == organization_id, column.is_not(None))
            .order_by(desc(Subscription.created_at))
            .limit(1)
        )
        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def list_expired_trials(self, db: AsyncSession, *, now: datetime) -> List[Subscription]:
        """TRIAL rows whose trial (or period, when no trial end is set) has ended."""
        query = select(Subscription).where(
            Subscription.status == SubscriptionStatus.TRIAL.value,
            or_(
                Subscription.trial_end < now,
                and_(
                    Subscription.trial_end.is_(None),
                    Subscription.current_period_end < now,
                ),
            ),
        )
        result = await db.execute(query)
        return list(result.scalars().all())

    async def list_lapsed(self, db: AsyncSession, *, now: datetime) -> List[Subscription]:
        """ACTIVE/PAST_DUE rows past their period end that were never scheduled to cancel."""
        query = select(Subscription).where(
            Subscription.status.in_(
                [SubscriptionStatus.ACTIVE.value, SubscriptionStatus.PAST_DUE.value]
            ),
            Subscription.current_period_end < now,
            Subscription.cancel_at.is_(None),
        )
        result = await db.execute(query)
        return list(result.scalars().all())

    async def list_due_cancellations(
        self, db: AsyncSession, *, now: datetime
    ) -> List[Subscription]:
        """Rows whose scheduled cancellation time has passed."""
        query = select(Subscription).where(
            Subscription.cancel_at.is_not(None),
            Subscription.cancel_at <= now,
            Subscription.status != SubscriptionStatus.CANCELLED.value,
        )
        result = await db.execute(query)
        return list(result.scalars().all())

    async def list_due_for_renewal(
        self, db: AsyncSession, *, now: datetime, window_end: datetime
    ) -> List[Subscription]:
        """ACTIVE rows ending between now and window_end that will renew."""
        query = select(Subscription).where(
            Subscription.status == SubscriptionStatus.ACTIVE.value,
            Subscription.current_period_end >= now,
            Subscription.current_period_end <= window_end,
            Subscription.cancel_at.is_(None),
        )
        result = await db.execute(query)
        return list(result.scalars().all())


subscription = CRUDSubscription(Subscription)
