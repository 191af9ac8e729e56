"""Subscription lifecycle rules.

Pure business logic: which status transitions are legal, which actions each
status allows, and how a requested plan/seat/cycle change is classified. The
services apply these rules to persisted rows.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional
from uuid import UUID

from seatwise.core.exceptions import InvalidInputError, InvalidStateTransitionError
from seatwise.schemas.enums import BillingCycle, OperationType, SubscriptionStatus

S = SubscriptionStatus

ALLOWED_TRANSITIONS: Dict[SubscriptionStatus, FrozenSet[SubscriptionStatus]] = {
    S.TRIAL: frozenset({S.CANCELLED}),
    S.ACTIVE: frozenset({S.ACTIVE, S.PAST_DUE, S.UNPAID, S.CANCELLED, S.INCOMPLETE}),
    S.PAST_DUE: frozenset({S.ACTIVE, S.UNPAID, S.CANCELLED}),
    S.UNPAID: frozenset({S.CANCELLED}),
    S.INCOMPLETE: frozenset({S.ACTIVE, S.CANCELLED}),
    S.CANCELLED: frozenset(),
}


class SubscriptionAction(str, Enum):
    """User or system actions on a subscription, phrased for error messages."""

    CHANGE_PLAN = "change plan"
    CHANGE_BILLING_CYCLE = "change billing cycle"
    SCHEDULE_SEAT_REDUCTION = "schedule a seat reduction"
    SCHEDULE_DOWNGRADE = "schedule a downgrade"
    CANCEL = "cancel"
    RENEW = "renew"
    RECALCULATE = "recalculate pricing"
    UPDATE_SEATS = "update seats"
    PURCHASE = "purchase a subscription"


ACTION_ALLOWED_STATUSES: Dict[SubscriptionAction, FrozenSet[SubscriptionStatus]] = {
    SubscriptionAction.CHANGE_PLAN: frozenset({S.ACTIVE}),
    SubscriptionAction.CHANGE_BILLING_CYCLE: frozenset({S.ACTIVE}),
    SubscriptionAction.SCHEDULE_SEAT_REDUCTION: frozenset({S.ACTIVE}),
    SubscriptionAction.SCHEDULE_DOWNGRADE: frozenset({S.ACTIVE}),
    SubscriptionAction.CANCEL: frozenset({S.TRIAL, S.ACTIVE, S.PAST_DUE}),
    SubscriptionAction.RENEW: frozenset({S.ACTIVE}),
    SubscriptionAction.RECALCULATE: frozenset({S.ACTIVE, S.PAST_DUE}),
    SubscriptionAction.UPDATE_SEATS: frozenset({S.TRIAL, S.ACTIVE, S.PAST_DUE}),
    SubscriptionAction.PURCHASE: frozenset({S.TRIAL, S.ACTIVE}),
}


def can_transition(current: SubscriptionStatus, target: SubscriptionStatus) -> bool:
    """Whether moving from ``current`` to ``target`` is a legal transition."""
    return SubscriptionStatus(target) in ALLOWED_TRANSITIONS[SubscriptionStatus(current)]


def ensure_transition(
    current: SubscriptionStatus,
    target: SubscriptionStatus,
    action: Optional[str] = None,
) -> None:
    """Raise InvalidStateTransitionError unless ``current -> target`` is legal."""
    if not can_transition(current, target):
        raise InvalidStateTransitionError(
            current_status=SubscriptionStatus(current).value,
            action=action or f"move to {SubscriptionStatus(target).value}",
        )


def ensure_action_allowed(status: SubscriptionStatus, action: SubscriptionAction) -> None:
    """Raise InvalidStateTransitionError if ``action`` is not allowed in ``status``."""
    status = SubscriptionStatus(status)
    if status not in ACTION_ALLOWED_STATUSES[action]:
        raise InvalidStateTransitionError(current_status=status.value, action=action.value)


@dataclass
class ChangeClassification:
    """How a requested purchase relates to the organization's live subscription."""

    operation_type: OperationType
    plan_changed: bool = False
    seats_changed: bool = False
    cycle_changed: bool = False
    old_user_count: Optional[int] = None
    new_user_count: Optional[int] = None

    @property
    def is_new_purchase(self) -> bool:
        """True when there is no paid subscription to credit."""
        return self.operation_type == OperationType.TRIAL_TO_PAID


def classify_change(
    current: Any,
    target_plan_id: UUID,
    target_seats: int,
    target_cycle: BillingCycle,
) -> ChangeClassification:
    """Diff the live subscription against a requested plan, seat count and cycle.

    Args:
        current: Live subscription row, or None
        target_plan_id: Requested plan
        target_seats: Requested seat count
        target_cycle: Requested billing cycle

    Returns:
        ChangeClassification

    Raises:
        InvalidStateTransitionError: If the subscription cannot be purchased over, or
            the request decreases seats (reductions are scheduled for renewal)
        InvalidInputError: If nothing would change
    """
    if current is None or SubscriptionStatus(current.status) == S.TRIAL:
        return ChangeClassification(
            operation_type=OperationType.TRIAL_TO_PAID,
            old_user_count=getattr(current, "user_count", None),
            new_user_count=target_seats,
        )

    status = SubscriptionStatus(current.status)
    if status != S.ACTIVE:
        raise InvalidStateTransitionError(
            current_status=status.value, action=SubscriptionAction.PURCHASE.value
        )

    old_seats = current.user_count or 1
    plan_changed = current.plan_id != target_plan_id
    cycle_changed = BillingCycle(current.billing_cycle) != BillingCycle(target_cycle)

    if target_seats < old_seats:
        raise InvalidStateTransitionError(
            current_status=status.value,
            action=SubscriptionAction.SCHEDULE_SEAT_REDUCTION.value,
            message=(
                f"Cannot reduce seats from {old_seats} to {target_seats} immediately. "
                "Schedule a seat reduction for the next billing cycle instead."
            ),
        )

    seats_increased = target_seats > old_seats
    if plan_changed and seats_increased:
        operation_type = OperationType.COMBINED
    elif plan_changed:
        operation_type = OperationType.UPGRADE
    elif seats_increased:
        operation_type = OperationType.ADD_USERS
    elif cycle_changed:
        operation_type = OperationType.UPGRADE
    else:
        raise InvalidInputError("No changes detected")

    return ChangeClassification(
        operation_type=operation_type,
        plan_changed=plan_changed,
        seats_changed=seats_increased,
        cycle_changed=cycle_changed,
        old_user_count=old_seats,
        new_user_count=target_seats,
    )


def supersede_reason(plan_name: Optional[str], user_count: int) -> str:
    """Cancel reason recorded on a row replaced by a new subscription."""
    return f"Upgraded to new subscription - Plan: {plan_name}, Users: {user_count}"
