"""Scheduler for subscription expiry.

Periodically cancels expired trials, lapsed and scheduled cancellations, and
issues renewal invoices for subscriptions approaching their period end.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from seatwise import crud
from seatwise.billing.invoice_generator import invoice_generator
from seatwise.billing.periods import renewal_window_end
from seatwise.billing.state_machine import ensure_transition
from seatwise.core.config import settings
from seatwise.core.datetime_utils import utc_now_naive
from seatwise.core.logging import LoggerConfigurator
from seatwise.core.quota_cache import quota_cache
from seatwise.db.session import get_db_context
from seatwise.db.unit_of_work import UnitOfWork
from seatwise.models import Subscription
from seatwise.schemas.enums import SubscriptionStatus

logger = LoggerConfigurator.configure_logger(
    __name__, dimensions={"component": "expiry_scheduler"}
)

TRIAL_EXPIRED_REASON = "Trial expired"
LAPSED_REASON = "Subscription period ended without renewal"
SCHEDULED_REASON = "Scheduled cancellation"


@dataclass
class ExpirySweepResult:
    """Counts of what one sweep changed."""

    trials_expired: int = 0
    lapsed_cancelled: int = 0
    scheduled_cancelled: int = 0
    renewal_invoices: int = 0
    failures: int = 0


class ExpiryScheduler:
    """Runs the expiry sweep once or on a fixed interval."""

    def __init__(self):
        """Initialize the scheduler."""
        self.running = False
        self.task: Optional[asyncio.Task] = None
        self.check_interval = settings.EXPIRY_SWEEP_INTERVAL_SECONDS

    async def run_expiry_sweep(self, now: Optional[datetime] = None) -> ExpirySweepResult:
        """Run every part of the sweep once.

        Each part runs in its own session and each row in its own transaction, so a
        failing row is logged and counted without stopping the rest.

        Args:
            now: Reference time, defaults to the current UTC time

        Returns:
            ExpirySweepResult with counts per category
        """
        now = now or utc_now_naive()
        result = ExpirySweepResult()

        result.trials_expired = await self._sweep(
            "expired trials",
            crud.subscription.list_expired_trials,
            now,
            lambda db, sub_id: self._cancel(db, sub_id, TRIAL_EXPIRED_REASON, now),
            result,
        )
        result.lapsed_cancelled = await self._sweep(
            "lapsed subscriptions",
            crud.subscription.list_lapsed,
            now,
            lambda db, sub_id: self._cancel(db, sub_id, LAPSED_REASON, now),
            result,
        )
        result.scheduled_cancelled = await self._sweep(
            "scheduled cancellations",
            crud.subscription.list_due_cancellations,
            now,
            lambda db, sub_id: self._cancel(db, sub_id, SCHEDULED_REASON, now),
            result,
        )
        result.renewal_invoices = await self._sweep(
            "renewal invoices",
            self._list_due_for_renewal,
            now,
            lambda db, sub_id: self._issue_renewal_invoice(db, sub_id, now),
            result,
        )

        logger.info(
            f"Expiry sweep done: {result.trials_expired} trials expired, "
            f"{result.lapsed_cancelled} lapsed, {result.scheduled_cancelled} scheduled "
            f"cancellations, {result.renewal_invoices} renewal invoices, "
            f"{result.failures} failures"
        )
        return result

    async def _list_due_for_renewal(
        self, db: AsyncSession, *, now: datetime
    ) -> List[Subscription]:
        return await crud.subscription.list_due_for_renewal(
            db, now=now, window_end=renewal_window_end(now)
        )

    async def _sweep(
        self,
        name: str,
        list_rows: Callable[..., Awaitable[List[Subscription]]],
        now: datetime,
        process: Callable[[AsyncSession, UUID], Awaitable[bool]],
        result: ExpirySweepResult,
    ) -> int:
        processed = 0
        try:
            async with get_db_context() as db:
                rows = await list_rows(db, now=now)
                # Ids are read up front; a rolled back row expires the loaded objects
                subscription_ids = [row.id for row in rows]
                logger.debug(f"Found {len(subscription_ids)} {name}")

                for subscription_id in subscription_ids:
                    try:
                        if await process(db, subscription_id):
                            processed += 1
                    except Exception as e:
                        result.failures += 1
                        logger.error(
                            f"Error processing {name} for subscription {subscription_id}: {e}",
                            exc_info=True,
                        )
        except Exception as e:
            result.failures += 1
            logger.error(f"Error sweeping {name}: {e}", exc_info=True)
        return processed

    async def _cancel(
        self, db: AsyncSession, subscription_id: UUID, reason: str, now: datetime
    ) -> bool:
        async with UnitOfWork(db) as uow:
            subscription = await crud.subscription.get_for_update(db, id=subscription_id)
            if subscription is None or subscription.status == SubscriptionStatus.CANCELLED.value:
                return False
            ensure_transition(subscription.status, SubscriptionStatus.CANCELLED, action=reason)

            await crud.subscription.update(
                db,
                db_obj=subscription,
                obj_in={
                    "status": SubscriptionStatus.CANCELLED,
                    "cancelled_at": now,
                    "cancel_reason": subscription.cancel_reason or reason,
                },
                uow=uow,
            )
            organization_id = subscription.organization_id

        log = logger.with_context(organization_id=str(organization_id))
        log.info(f"Cancelled subscription {subscription_id}: {reason}")
        await quota_cache.invalidate(organization_id, contextual_logger=log)
        return True

    async def _issue_renewal_invoice(
        self, db: AsyncSession, subscription_id: UUID, now: datetime
    ) -> bool:
        async with UnitOfWork(db) as uow:
            subscription = await crud.subscription.get_for_update(db, id=subscription_id)
            if (
                subscription is None
                or subscription.status != SubscriptionStatus.ACTIVE.value
                or subscription.cancel_at is not None
            ):
                return False

            already_invoiced = await crud.invoice.has_open_invoice_due(
                db,
                subscription_id=subscription.id,
                due_date=invoice_generator.renewal_due_date(subscription),
            )
            if already_invoiced:
                return False

            plan = await crud.plan.get(db, id=subscription.plan_id)
            log = logger.with_context(organization_id=str(subscription.organization_id))
            await invoice_generator.create_renewal_invoice(
                db, subscription, plan, uow=uow, contextual_logger=log
            )
        return True

    async def start(self):
        """Start the sweep loop."""
        if self.running:
            logger.warning("Expiry scheduler is already running")
            return

        self.running = True
        self.task = asyncio.create_task(self._scheduler_loop())
        logger.info(f"Expiry scheduler started, sweeping every {self.check_interval} seconds")

    async def stop(self):
        """Stop the sweep loop."""
        if not self.running:
            logger.warning("Expiry scheduler is not running")
            return

        self.running = False
        if self.task:
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                logger.debug("Expiry scheduler task cancelled")
            self.task = None
        logger.info("Expiry scheduler stopped")

    async def _scheduler_loop(self):
        while self.running:
            try:
                await self.run_expiry_sweep()
            except Exception as e:
                logger.error(f"Error in expiry scheduler loop: {e}", exc_info=True)

            await asyncio.sleep(self.check_interval)


expiry_scheduler = ExpiryScheduler()
