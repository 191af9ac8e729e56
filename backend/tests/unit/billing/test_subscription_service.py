"""Unit tests for SubscriptionService."""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from seatwise.billing.state_machine import supersede_reason
from seatwise.billing.subscription_service import subscription_service
from seatwise.core.exceptions import (
    InvalidInputError,
    InvalidStateTransitionError,
    SubscriptionNotFoundError,
)
from seatwise.schemas.enums import BillingCycle, InvoiceStatus, SubscriptionStatus
from tests.fixtures.common import build_subscription


@pytest.mark.asyncio
class TestUpgradeOrDowngrade:
    """Tests for upgrade_or_downgrade."""

    async def test_upgrade_supersedes_and_invoices(
        self, mock_db, organization_id, starter_plan, pro_plan, patched_crud
    ):
        """Starter -> Pro on 4 seats with half the period left costs $20 now."""
        current = build_subscription(
            starter_plan, organization_id=organization_id, user_count=4, final_amount="40.00"
        )
        patched_crud.live.return_value = current

        new = await subscription_service.upgrade_or_downgrade(mock_db, organization_id, pro_plan.id)

        assert current.status == SubscriptionStatus.CANCELLED.value
        assert current.cancel_reason == supersede_reason("Pro", 4)
        assert new is not current
        assert new.plan_id == pro_plan.id
        assert new.status == SubscriptionStatus.ACTIVE.value
        assert new.final_amount == Decimal("80.00")
        assert new.current_period_end == current.current_period_end
        assert new.proration_details["net_charge"] == "20.00"

        call = patched_crud.create_invoice.await_args
        assert call.kwargs["obj_in"].status == InvoiceStatus.OPEN
        assert call.kwargs["obj_in"].total == Decimal("20.00")

        mock_db.commit.assert_awaited()
        patched_crud.invalidate.assert_awaited_once()

    async def test_cheaper_plan_is_scheduled(
        self, mock_db, organization_id, starter_plan, pro_plan, patched_crud
    ):
        """A cheaper plan only records the pending change."""
        current = build_subscription(pro_plan, organization_id=organization_id, user_count=4)
        patched_crud.live.return_value = current

        updated = await subscription_service.upgrade_or_downgrade(
            mock_db, organization_id, starter_plan.id
        )

        assert updated is current
        assert current.plan_id == pro_plan.id
        assert current.pending_plan_id == starter_plan.id
        assert current.pending_change_reason == "Plan downgrade: Pro → Starter"
        patched_crud.create_subscription.assert_not_awaited()
        patched_crud.create_invoice.assert_not_awaited()

    async def test_same_plan_rejected(self, mock_db, organization_id, starter_plan, patched_crud):
        """Switching to the current plan is an input error."""
        patched_crud.live.return_value = build_subscription(starter_plan)

        with pytest.raises(InvalidInputError):
            await subscription_service.upgrade_or_downgrade(
                mock_db, organization_id, starter_plan.id
            )
        mock_db.rollback.assert_awaited()

    async def test_trial_rejected(
        self, mock_db, organization_id, starter_plan, pro_plan, patched_crud
    ):
        """Trials convert through the payment flow, not a plan change."""
        patched_crud.live.return_value = build_subscription(
            starter_plan, status=SubscriptionStatus.TRIAL
        )

        with pytest.raises(InvalidStateTransitionError):
            await subscription_service.upgrade_or_downgrade(mock_db, organization_id, pro_plan.id)
        patched_crud.invalidate.assert_not_awaited()

    async def test_no_live_subscription(self, mock_db, organization_id, pro_plan, patched_crud):
        """A missing live row is reported as not found."""
        patched_crud.live.return_value = None

        with pytest.raises(SubscriptionNotFoundError):
            await subscription_service.upgrade_or_downgrade(mock_db, organization_id, pro_plan.id)


@pytest.mark.asyncio
class TestChangeBillingCycle:
    """Tests for change_billing_cycle."""

    async def test_monthly_to_yearly(self, mock_db, organization_id, starter_plan, patched_crud):
        """Half a month credited against a full discounted year."""
        current = build_subscription(
            starter_plan, organization_id=organization_id, user_count=2, final_amount="20.00"
        )
        patched_crud.live.return_value = current

        new = await subscription_service.change_billing_cycle(
            mock_db, organization_id, BillingCycle.YEARLY
        )

        assert new.billing_cycle == BillingCycle.YEARLY.value
        assert new.final_amount == Decimal("180.00")
        assert (new.current_period_end - new.current_period_start).days in (365, 366)
        assert current.status == SubscriptionStatus.CANCELLED.value

        invoice_in = patched_crud.create_invoice.await_args.kwargs["obj_in"]
        assert invoice_in.total == Decimal("170.00")
        assert invoice_in.amount_due == Decimal("170.00")

    async def test_same_cycle_rejected(self, mock_db, organization_id, starter_plan, patched_crud):
        """The cycle has to change."""
        patched_crud.live.return_value = build_subscription(starter_plan)

        with pytest.raises(InvalidInputError, match="already on MONTHLY"):
            await subscription_service.change_billing_cycle(
                mock_db, organization_id, BillingCycle.MONTHLY
            )

    async def test_negative_net_charge_not_invoiced(
        self, mock_db, organization_id, starter_plan, patched_crud
    ):
        """Most of a year left is not refunded and nothing is invoiced."""
        patched_crud.live.return_value = build_subscription(
            starter_plan,
            user_count=1,
            cycle=BillingCycle.YEARLY,
            final_amount="90.00",
            days_left=300,
            total_days=365,
        )

        new = await subscription_service.change_billing_cycle(
            mock_db, organization_id, BillingCycle.MONTHLY
        )

        assert new.billing_cycle == BillingCycle.MONTHLY.value
        patched_crud.create_invoice.assert_not_awaited()


@pytest.mark.asyncio
class TestScheduledChanges:
    """Tests for cancellation and scheduled reductions."""

    async def test_cancel_at_period_end(self, mock_db, organization_id, starter_plan, patched_crud):
        """Access continues until the period ends."""
        current = build_subscription(starter_plan, organization_id=organization_id)
        patched_crud.live.return_value = current

        updated = await subscription_service.cancel_subscription(
            mock_db, organization_id, reason="Too expensive"
        )

        assert updated.status == SubscriptionStatus.ACTIVE.value
        assert updated.cancel_at == current.current_period_end
        assert updated.cancel_reason == "Too expensive"

    async def test_cancel_twice_rejected(
        self, mock_db, organization_id, starter_plan, patched_crud
    ):
        """An already scheduled cancellation cannot be scheduled again."""
        current = build_subscription(starter_plan)
        patched_crud.live.return_value = current
        await subscription_service.cancel_subscription(mock_db, organization_id)

        with pytest.raises(InvalidStateTransitionError, match="already scheduled"):
            await subscription_service.cancel_subscription(mock_db, organization_id)

    async def test_seat_reduction(self, mock_db, organization_id, starter_plan, patched_crud):
        """8 -> 5 seats is recorded for the next renewal."""
        current = build_subscription(starter_plan, user_count=8)
        patched_crud.live.return_value = current

        updated = await subscription_service.schedule_seat_reduction(mock_db, organization_id, 5)

        assert updated.user_count == 8
        assert updated.pending_user_count == 5
        assert updated.pending_change_reason == "User count reduction scheduled: 8 → 5"

    @pytest.mark.parametrize("seats", [0, 8, 9])
    async def test_seat_reduction_bounds(
        self, mock_db, organization_id, starter_plan, patched_crud, seats
    ):
        """The new count must be at least 1 and below the current count."""
        patched_crud.live.return_value = build_subscription(starter_plan, user_count=8)

        with pytest.raises(InvalidInputError):
            await subscription_service.schedule_seat_reduction(mock_db, organization_id, seats)

    async def test_schedule_downgrade_rejects_pricier_plan(
        self, mock_db, organization_id, starter_plan, pro_plan, patched_crud
    ):
        """Only cheaper plans can be scheduled."""
        patched_crud.live.return_value = build_subscription(starter_plan)

        with pytest.raises(InvalidInputError, match="not a downgrade"):
            await subscription_service.schedule_plan_downgrade(
                mock_db, organization_id, pro_plan.id
            )


@pytest.mark.asyncio
class TestAdminPaths:
    """Tests for admin overrides."""

    async def test_override_replaces_live_row(
        self, mock_db, organization_id, starter_plan, pro_plan, patched_crud
    ):
        """The live row is cancelled and its remote subscription cancelled too."""
        current = build_subscription(
            starter_plan,
            organization_id=organization_id,
            payment_provider="STRIPE",
            stripe_subscription_id="sub_123",
        )
        patched_crud.live.return_value = current
        gateway = MagicMock()
        gateway.cancel_remote_subscription = AsyncMock()

        with patch(
            "seatwise.billing.subscription_service.get_payment_gateway", return_value=gateway
        ):
            new = await subscription_service.admin_override_upgrade(
                mock_db, organization_id, pro_plan.id, 12, BillingCycle.MONTHLY
            )

        gateway.cancel_remote_subscription.assert_awaited_once_with("sub_123")
        assert current.status == SubscriptionStatus.CANCELLED.value
        assert new.final_amount == Decimal("0.00")
        assert new.user_count == 12
        assert new.volume_discount_percent == Decimal("15")

        invoice_in = patched_crud.create_invoice.await_args.kwargs["obj_in"]
        assert invoice_in.status == InvoiceStatus.PAID
        assert invoice_in.total == Decimal("0")
        assert invoice_in.notes == "Admin override: Pro - 12 users"

    async def test_override_survives_remote_failure(
        self, mock_db, organization_id, starter_plan, pro_plan, patched_crud
    ):
        """Remote cancellation errors are only logged."""
        patched_crud.live.return_value = build_subscription(
            starter_plan, payment_provider="RAZORPAY", razorpay_subscription_id="sub_rzp"
        )
        gateway = MagicMock()
        gateway.cancel_remote_subscription = AsyncMock(side_effect=RuntimeError("boom"))

        with patch(
            "seatwise.billing.subscription_service.get_payment_gateway", return_value=gateway
        ):
            new = await subscription_service.admin_override_upgrade(
                mock_db, organization_id, pro_plan.id, 3, BillingCycle.YEARLY
            )

        assert new.billing_cycle == BillingCycle.YEARLY.value

    async def test_override_without_live_row(
        self, mock_db, organization_id, pro_plan, patched_crud
    ):
        """Organizations without a subscription get a fresh row."""
        patched_crud.live.return_value = None

        new = await subscription_service.admin_override_upgrade(
            mock_db, organization_id, pro_plan.id, 1, BillingCycle.MONTHLY
        )

        assert new.organization_id == organization_id
        patched_crud.update_subscription.assert_not_awaited()

    async def test_update_user_count_reprices(
        self, mock_db, organization_id, starter_plan, pro_plan, patched_crud
    ):
        """Seats are set directly and pending changes dropped."""
        current = build_subscription(
            starter_plan, user_count=4, pending_user_count=2, pending_plan_id=pro_plan.id
        )
        patched_crud.live.return_value = current

        updated = await subscription_service.admin_update_user_count(mock_db, organization_id, 6)

        assert updated.user_count == 6
        assert updated.final_amount == Decimal("54.00")
        assert updated.amount == Decimal("60.00")
        assert updated.volume_discount_percent == Decimal("10")
        assert updated.pending_user_count is None
        assert updated.pending_plan_id is None

    async def test_update_user_count_rejects_zero(self, mock_db, organization_id, patched_crud):
        """At least one seat."""
        with pytest.raises(InvalidInputError):
            await subscription_service.admin_update_user_count(mock_db, organization_id, 0)


@pytest.mark.asyncio
class TestRecalculate:
    """Tests for recalculate_if_needed."""

    async def test_unchanged(self, mock_db, organization_id, starter_plan, patched_crud):
        """Correct pricing is left alone."""
        patched_crud.live.return_value = build_subscription(
            starter_plan, user_count=4, final_amount="40.00"
        )

        assert await subscription_service.recalculate_if_needed(mock_db, organization_id) is None
        patched_crud.update_subscription.assert_not_awaited()

    async def test_stale_pricing(self, mock_db, organization_id, starter_plan, patched_crud):
        """Six seats stored at list price get the volume discount."""
        patched_crud.live.return_value = build_subscription(
            starter_plan, user_count=6, final_amount="60.00"
        )

        updated = await subscription_service.recalculate_if_needed(mock_db, organization_id)

        assert updated.final_amount == Decimal("54.00")
        assert updated.volume_discount_percent == Decimal("10")

    async def test_trial_skipped(self, mock_db, organization_id, starter_plan, patched_crud):
        """Trials are never repriced."""
        patched_crud.live.return_value = build_subscription(
            starter_plan, status=SubscriptionStatus.TRIAL, final_amount="0"
        )

        assert await subscription_service.recalculate_if_needed(mock_db, organization_id) is None


@pytest.mark.asyncio
class TestAutoRenewal:
    """Tests for process_auto_renewal."""

    async def test_applies_pending_downgrade(
        self, mock_db, starter_plan, pro_plan, patched_crud
    ):
        """Pending changes apply, a renewal invoice is issued and the period rolls."""
        subscription = build_subscription(
            pro_plan,
            user_count=8,
            final_amount="144.00",
            pending_plan_id=starter_plan.id,
            pending_user_count=4,
        )
        old_end = subscription.current_period_end
        patched_crud.get_for_update.return_value = subscription

        renewed = await subscription_service.process_auto_renewal(mock_db, subscription.id)

        assert renewed.plan_id == starter_plan.id
        assert renewed.user_count == 4
        assert renewed.final_amount == Decimal("40.00")
        assert renewed.pending_plan_id is None
        assert renewed.current_period_start == old_end
        assert renewed.current_period_end > old_end

        invoice_in = patched_crud.create_invoice.await_args.kwargs["obj_in"]
        assert invoice_in.total == Decimal("40.00")
        assert invoice_in.status == InvoiceStatus.OPEN

    async def test_existing_renewal_invoice_reused(self, mock_db, starter_plan, patched_crud):
        """The sweep's renewal invoice is not duplicated."""
        subscription = build_subscription(starter_plan)
        patched_crud.get_for_update.return_value = subscription

        with patch(
            "seatwise.billing.subscription_service.crud.invoice.has_open_invoice_due",
            AsyncMock(return_value=True),
        ):
            await subscription_service.process_auto_renewal(mock_db, subscription.id)

        patched_crud.create_invoice.assert_not_awaited()

    async def test_scheduled_cancellation_blocks_renewal(
        self, mock_db, starter_plan, patched_crud
    ):
        """Rows scheduled to cancel do not renew."""
        subscription = build_subscription(starter_plan)
        subscription.cancel_at = subscription.current_period_end
        patched_crud.get_for_update.return_value = subscription

        with pytest.raises(InvalidStateTransitionError):
            await subscription_service.process_auto_renewal(mock_db, subscription.id)

    async def test_missing_subscription(self, mock_db, starter_plan, patched_crud):
        """Unknown ids raise."""
        patched_crud.get_for_update.return_value = None

        with pytest.raises(SubscriptionNotFoundError):
            await subscription_service.process_auto_renewal(mock_db, starter_plan.id)
