"""Unit tests for the expiry scheduler."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest

from seatwise import crud
from seatwise.billing.expiry_scheduler import (
    LAPSED_REASON,
    TRIAL_EXPIRED_REASON,
    ExpiryScheduler,
)
from seatwise.schemas.enums import InvoiceStatus, SubscriptionStatus
from tests.fixtures.common import build_subscription


@pytest.fixture
def db_context(mock_db):
    """Patch get_db_context to hand out the mock session."""
    context = AsyncMock()
    context.__aenter__.return_value = mock_db
    with patch("seatwise.billing.expiry_scheduler.get_db_context", return_value=context):
        yield context


@pytest.fixture
def sweep_rows(starter_plan):
    """One row for every part of the sweep."""
    trial = build_subscription(
        starter_plan, status=SubscriptionStatus.TRIAL, final_amount="0", days_left=0
    )
    lapsed = build_subscription(starter_plan, days_left=0)
    lapsed.current_period_end -= timedelta(days=2)
    scheduled = build_subscription(
        starter_plan, days_left=0, cancel_reason="Too expensive"
    )
    scheduled.cancel_at = scheduled.current_period_end
    renewing = build_subscription(starter_plan, days_left=3)
    return {"trial": trial, "lapsed": lapsed, "scheduled": scheduled, "renewing": renewing}


@pytest.fixture
def listings(sweep_rows):
    """Patch the sweep queries."""
    with (
        patch.object(
            crud.subscription,
            "list_expired_trials",
            AsyncMock(return_value=[sweep_rows["trial"]]),
        ) as trials,
        patch.object(
            crud.subscription, "list_lapsed", AsyncMock(return_value=[sweep_rows["lapsed"]])
        ) as lapsed,
        patch.object(
            crud.subscription,
            "list_due_cancellations",
            AsyncMock(return_value=[sweep_rows["scheduled"]]),
        ) as scheduled,
        patch.object(
            crud.subscription,
            "list_due_for_renewal",
            AsyncMock(return_value=[sweep_rows["renewing"]]),
        ) as renewing,
    ):
        yield trials, lapsed, scheduled, renewing


def _by_id(rows):
    index = {row.id: row for row in rows.values()}

    async def get_for_update(db, id):
        return index.get(id)

    return get_for_update


class TestRunExpirySweep:
    """Tests for run_expiry_sweep."""

    @pytest.mark.asyncio
    async def test_every_category(self, db_context, patched_crud, sweep_rows, listings):
        """Each category is processed and counted."""
        patched_crud.get_for_update.side_effect = _by_id(sweep_rows)

        result = await ExpiryScheduler().run_expiry_sweep()

        assert result.trials_expired == 1
        assert result.lapsed_cancelled == 1
        assert result.scheduled_cancelled == 1
        assert result.renewal_invoices == 1
        assert result.failures == 0

        assert sweep_rows["trial"].status == SubscriptionStatus.CANCELLED.value
        assert sweep_rows["trial"].cancel_reason == TRIAL_EXPIRED_REASON
        assert sweep_rows["lapsed"].cancel_reason == LAPSED_REASON
        assert sweep_rows["scheduled"].status == SubscriptionStatus.CANCELLED.value
        assert sweep_rows["scheduled"].cancel_reason == "Too expensive"
        assert sweep_rows["renewing"].status == SubscriptionStatus.ACTIVE.value

        invoice_in = patched_crud.create_invoice.await_args.kwargs["obj_in"]
        assert invoice_in.subscription_id == sweep_rows["renewing"].id
        assert invoice_in.status == InvoiceStatus.OPEN
        assert patched_crud.invalidate.await_count == 3

    @pytest.mark.asyncio
    async def test_failing_row_does_not_stop_sweep(
        self, db_context, patched_crud, sweep_rows, listings
    ):
        """A row that raises is counted and the rest are still processed."""
        lookup = _by_id(sweep_rows)

        async def get_for_update(db, id):
            if id == sweep_rows["trial"].id:
                raise RuntimeError("could not serialize access")
            return await lookup(db, id)

        patched_crud.get_for_update.side_effect = get_for_update

        result = await ExpiryScheduler().run_expiry_sweep()

        assert result.failures == 1
        assert result.trials_expired == 0
        assert result.lapsed_cancelled == 1
        assert sweep_rows["trial"].status == SubscriptionStatus.TRIAL.value

    @pytest.mark.asyncio
    async def test_already_cancelled_is_skipped(
        self, db_context, patched_crud, sweep_rows, listings
    ):
        """Rows cancelled since the listing are not counted."""
        sweep_rows["lapsed"].status = SubscriptionStatus.CANCELLED.value
        patched_crud.get_for_update.side_effect = _by_id(sweep_rows)

        result = await ExpiryScheduler().run_expiry_sweep()

        assert result.lapsed_cancelled == 0
        assert result.failures == 0

    @pytest.mark.asyncio
    async def test_existing_renewal_invoice_not_duplicated(
        self, db_context, patched_crud, sweep_rows, listings
    ):
        """A renewal invoice already due on the same date is not issued again."""
        patched_crud.get_for_update.side_effect = _by_id(sweep_rows)

        with patch.object(crud.invoice, "has_open_invoice_due", AsyncMock(return_value=True)):
            result = await ExpiryScheduler().run_expiry_sweep()

        assert result.renewal_invoices == 0
        patched_crud.create_invoice.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_listing_failure_is_counted(self, db_context, patched_crud, listings):
        """A failing query is logged and counted."""
        trials = listings[0]
        trials.side_effect = RuntimeError("connection reset")

        result = await ExpiryScheduler().run_expiry_sweep()

        assert result.failures >= 1
        assert result.trials_expired == 0


class TestSchedulerStartStop:
    """Tests for scheduler start and stop methods."""

    @pytest.mark.asyncio
    async def test_start(self):
        """Starting creates the loop task."""
        scheduler = ExpiryScheduler()
        dummy_task = asyncio.create_task(asyncio.sleep(0))

        with patch("asyncio.create_task", return_value=dummy_task):
            await scheduler.start()

            assert scheduler.running is True
            asyncio.create_task.assert_called_once()

        await dummy_task

    @pytest.mark.asyncio
    async def test_start_already_running(self):
        """A second start does nothing."""
        scheduler = ExpiryScheduler()
        scheduler.running = True

        with patch("asyncio.create_task") as create_task:
            await scheduler.start()

        create_task.assert_not_called()

    @pytest.mark.asyncio
    async def test_stop(self):
        """Stopping cancels the loop task."""
        scheduler = ExpiryScheduler()
        scheduler.running = True
        dummy_task = asyncio.create_task(asyncio.sleep(1))
        scheduler.task = dummy_task

        await scheduler.stop()

        assert scheduler.running is False
        assert dummy_task.cancelled()
        assert scheduler.task is None

    @pytest.mark.asyncio
    async def test_stop_not_running(self):
        """Stopping an idle scheduler does nothing."""
        scheduler = ExpiryScheduler()

        await scheduler.stop()

        assert scheduler.task is None


class TestSchedulerLoop:
    """Tests for the scheduler loop."""

    @pytest.mark.asyncio
    async def test_scheduler_loop(self):
        """The loop sweeps, then sleeps for the configured interval."""
        scheduler = ExpiryScheduler()
        scheduler.running = True
        scheduler.check_interval = 5

        async def mock_sleep(seconds):
            assert seconds == 5
            scheduler.running = False

        scheduler.run_expiry_sweep = AsyncMock()

        with patch("asyncio.sleep", mock_sleep):
            await scheduler._scheduler_loop()

        scheduler.run_expiry_sweep.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_scheduler_loop_survives_errors(self):
        """A failing sweep does not end the loop."""
        scheduler = ExpiryScheduler()
        scheduler.running = True

        async def mock_sleep(seconds):
            scheduler.running = False

        scheduler.run_expiry_sweep = AsyncMock(side_effect=RuntimeError("boom"))

        with patch("asyncio.sleep", mock_sleep):
            await scheduler._scheduler_loop()

        assert scheduler.running is False
