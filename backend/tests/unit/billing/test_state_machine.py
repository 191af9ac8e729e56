"""Unit tests for subscription lifecycle rules."""

import uuid

import pytest

from seatwise.billing.state_machine import (
    SubscriptionAction,
    can_transition,
    classify_change,
    ensure_action_allowed,
    ensure_transition,
)
from seatwise.core.exceptions import InvalidInputError, InvalidStateTransitionError
from seatwise.schemas.enums import BillingCycle, OperationType, SubscriptionStatus
from tests.fixtures.common import build_subscription


class TestTransitions:
    """Tests for the status transition table."""

    @pytest.mark.parametrize(
        "current,target",
        [
            (SubscriptionStatus.TRIAL, SubscriptionStatus.CANCELLED),
            (SubscriptionStatus.ACTIVE, SubscriptionStatus.CANCELLED),
            (SubscriptionStatus.ACTIVE, SubscriptionStatus.ACTIVE),
            (SubscriptionStatus.PAST_DUE, SubscriptionStatus.ACTIVE),
            (SubscriptionStatus.PAST_DUE, SubscriptionStatus.CANCELLED),
            (SubscriptionStatus.UNPAID, SubscriptionStatus.CANCELLED),
            (SubscriptionStatus.INCOMPLETE, SubscriptionStatus.CANCELLED),
        ],
    )
    def test_allowed(self, current, target):
        """Legal transitions pass."""
        assert can_transition(current, target)
        ensure_transition(current, target)

    @pytest.mark.parametrize(
        "current,target",
        [
            (SubscriptionStatus.CANCELLED, SubscriptionStatus.ACTIVE),
            (SubscriptionStatus.CANCELLED, SubscriptionStatus.CANCELLED),
            (SubscriptionStatus.TRIAL, SubscriptionStatus.ACTIVE),
            (SubscriptionStatus.UNPAID, SubscriptionStatus.ACTIVE),
        ],
    )
    def test_rejected(self, current, target):
        """Illegal transitions raise."""
        assert not can_transition(current, target)
        with pytest.raises(InvalidStateTransitionError):
            ensure_transition(current, target)

    def test_accepts_stored_string_values(self):
        """Rows store statuses as plain strings."""
        assert can_transition("ACTIVE", "CANCELLED")


class TestActions:
    """Tests for ensure_action_allowed."""

    @pytest.mark.parametrize(
        "action",
        [
            SubscriptionAction.CHANGE_PLAN,
            SubscriptionAction.CHANGE_BILLING_CYCLE,
            SubscriptionAction.SCHEDULE_SEAT_REDUCTION,
            SubscriptionAction.SCHEDULE_DOWNGRADE,
        ],
    )
    def test_trial_cannot_change_terms(self, action):
        """Plan and cycle changes are not available during the trial."""
        with pytest.raises(InvalidStateTransitionError) as exc_info:
            ensure_action_allowed(SubscriptionStatus.TRIAL, action)
        assert exc_info.value.current_status == "TRIAL"
        assert str(exc_info.value) == f"Cannot {action.value} while subscription is TRIAL"

    def test_trial_can_cancel(self):
        """Trials can be cancelled."""
        ensure_action_allowed(SubscriptionStatus.TRIAL, SubscriptionAction.CANCEL)

    def test_cancelled_cannot_renew(self):
        """Cancelled rows are terminal."""
        with pytest.raises(InvalidStateTransitionError):
            ensure_action_allowed(SubscriptionStatus.CANCELLED, SubscriptionAction.RENEW)


class TestClassifyChange:
    """Tests for classify_change."""

    def test_no_subscription(self, starter_plan):
        """A first purchase is a trial conversion."""
        result = classify_change(None, starter_plan.id, 3, BillingCycle.MONTHLY)
        assert result.operation_type == OperationType.TRIAL_TO_PAID
        assert result.is_new_purchase

    def test_trial(self, starter_plan):
        """Buying over a trial is a trial conversion whatever the seats."""
        trial = build_subscription(starter_plan, status=SubscriptionStatus.TRIAL, user_count=1)
        result = classify_change(trial, uuid.uuid4(), 1, BillingCycle.YEARLY)
        assert result.operation_type == OperationType.TRIAL_TO_PAID
        assert result.old_user_count == 1

    def test_combined(self, starter_plan, pro_plan):
        """Plan change with more seats."""
        current = build_subscription(starter_plan, user_count=4)
        result = classify_change(current, pro_plan.id, 6, BillingCycle.MONTHLY)
        assert result.operation_type == OperationType.COMBINED
        assert result.plan_changed and result.seats_changed

    def test_plan_only(self, starter_plan, pro_plan):
        """Plan change on the same seats."""
        current = build_subscription(starter_plan, user_count=4)
        result = classify_change(current, pro_plan.id, 4, BillingCycle.MONTHLY)
        assert result.operation_type == OperationType.UPGRADE

    def test_seats_only(self, starter_plan):
        """More seats on the same plan."""
        current = build_subscription(starter_plan, user_count=4)
        result = classify_change(current, starter_plan.id, 8, BillingCycle.MONTHLY)
        assert result.operation_type == OperationType.ADD_USERS
        assert result.new_user_count == 8

    def test_cycle_only(self, starter_plan):
        """A cycle switch is priced as an upgrade."""
        current = build_subscription(starter_plan, user_count=4)
        result = classify_change(current, starter_plan.id, 4, BillingCycle.YEARLY)
        assert result.operation_type == OperationType.UPGRADE
        assert result.cycle_changed and not result.plan_changed

    def test_seat_decrease_rejected(self, starter_plan):
        """8 -> 5 seats must go through a scheduled reduction."""
        current = build_subscription(starter_plan, user_count=8)
        with pytest.raises(InvalidStateTransitionError, match="Schedule a seat reduction"):
            classify_change(current, starter_plan.id, 5, BillingCycle.MONTHLY)

    def test_no_change(self, starter_plan):
        """Identical terms are rejected."""
        current = build_subscription(starter_plan, user_count=4)
        with pytest.raises(InvalidInputError, match="No changes detected"):
            classify_change(current, starter_plan.id, 4, BillingCycle.MONTHLY)

    def test_past_due_cannot_purchase(self, starter_plan, pro_plan):
        """Only trials and active subscriptions can be purchased over."""
        current = build_subscription(starter_plan, status=SubscriptionStatus.PAST_DUE)
        with pytest.raises(InvalidStateTransitionError):
            classify_change(current, pro_plan.id, 4, BillingCycle.MONTHLY)
