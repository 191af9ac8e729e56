"""Mid-cycle proration rules.

Credit and charge computation for plan upgrades, seat additions, combined
plan + seat changes, downgrades and billing-cycle switches. Pure functions: the
caller supplies the remaining and total days of the current period.

| Scenario             | Credit basis                  | Charge basis                        |
|----------------------|-------------------------------|-------------------------------------|
| Seat increase only   | prorated(old actual amount)   | prorated(new full quote)            |
| Seat decrease only   | rejected, scheduled reduction |                                     |
| Plan upgrade only    | prorated(old actual amount)   | prorated(new full quote)            |
| Plan + seat increase | prorated(old actual amount)   | full(new quote), period resets      |
| Plan downgrade       | 0                             | deferred to next cycle              |
| Cycle change only    | prorated(old cycle quote)     | full(new cycle quote), period resets|
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, Optional

from seatwise.billing.pricing import (
    ZERO,
    discounted_total,
    quote,
    round_money,
    to_money,
)
from seatwise.core.datetime_utils import ensure_naive_utc, utc_now_naive
from seatwise.schemas.enums import BillingCycle, OperationType
from seatwise.schemas.pricing import ProrationSnapshot

_ONE_DAY = timedelta(days=1)


def _ceil_days(delta: timedelta) -> int:
    return math.ceil(delta / _ONE_DAY)


def days_remaining(
    period_start: datetime, period_end: datetime, now: Optional[datetime] = None
) -> int:
    """Whole days left in the period, rounded up; 0 once the period has ended."""
    now = ensure_naive_utc(now) if now is not None else utc_now_naive()
    period_end = ensure_naive_utc(period_end)
    if now >= period_end:
        return 0
    return _ceil_days(period_end - now)


def total_days_in_period(period_start: datetime, period_end: datetime) -> int:
    """Length of the period in days, rounded up, never below 1."""
    delta = ensure_naive_utc(period_end) - ensure_naive_utc(period_start)
    return max(1, _ceil_days(delta))


def prorated_amount(full_amount: Any, days_left: int, total_days: int) -> Decimal:
    """``full_amount * days_left / total_days`` rounded to cents; 0 for non-positive operands."""
    full = to_money(full_amount)
    if full <= 0 or days_left <= 0 or total_days <= 0:
        return ZERO
    return round_money(full * days_left / total_days)


@dataclass
class ProrationResult:
    """Credit for the unused part of the old subscription and charge for the new one."""

    days_remaining: int
    total_days_in_period: int
    credit_amount: Decimal
    charge_amount: Decimal
    net_charge: Decimal
    calculation: Dict[str, str] = field(default_factory=dict)

    def to_snapshot(
        self,
        operation_type: Optional[OperationType] = None,
        old_plan: Any = None,
        old_user_count: Optional[int] = None,
        old_billing_cycle: Optional[BillingCycle] = None,
        old_amount_paid: Optional[Decimal] = None,
        calculated_at: Optional[datetime] = None,
    ) -> ProrationSnapshot:
        """Build the persisted audit record of this computation."""
        return ProrationSnapshot(
            operation_type=operation_type,
            credit_amount=self.credit_amount,
            charge_amount=self.charge_amount,
            net_charge=self.net_charge,
            days_remaining=self.days_remaining,
            total_days_in_period=self.total_days_in_period,
            old_plan_id=getattr(old_plan, "id", None),
            old_plan_name=getattr(old_plan, "name", None),
            old_user_count=old_user_count,
            old_billing_cycle=old_billing_cycle,
            old_amount_paid=old_amount_paid,
            calculation=dict(self.calculation),
            calculated_at=calculated_at or utc_now_naive(),
        )


@dataclass
class CycleChangeResult:
    """Outcome of switching between monthly and yearly billing mid-period."""

    days_remaining: int
    total_days_in_period: int
    credit_for_old_cycle: Decimal
    charge_for_new_cycle: Decimal
    net_charge: Decimal
    calculation: Dict[str, str] = field(default_factory=dict)

    def to_snapshot(
        self,
        old_plan: Any = None,
        old_user_count: Optional[int] = None,
        old_billing_cycle: Optional[BillingCycle] = None,
        calculated_at: Optional[datetime] = None,
    ) -> ProrationSnapshot:
        """Build the persisted audit record of this computation."""
        return ProrationSnapshot(
            operation_type=OperationType.UPGRADE,
            credit_amount=self.credit_for_old_cycle,
            charge_amount=self.charge_for_new_cycle,
            net_charge=self.net_charge,
            days_remaining=self.days_remaining,
            total_days_in_period=self.total_days_in_period,
            old_plan_id=getattr(old_plan, "id", None),
            old_plan_name=getattr(old_plan, "name", None),
            old_user_count=old_user_count,
            old_billing_cycle=old_billing_cycle,
            calculation=dict(self.calculation),
            calculated_at=calculated_at or utc_now_naive(),
        )


def _ratio(days_left: int, total_days: int) -> str:
    if total_days <= 0:
        return "0.0000"
    return str((Decimal(days_left) / Decimal(total_days)).quantize(Decimal("0.0001")))


def _old_credit(
    old_plan: Any,
    old_seats: int,
    old_cycle: BillingCycle,
    days_left: int,
    total_days: int,
    old_actual_amount_paid: Optional[Any],
    old_discount_percent: Optional[Any],
) -> tuple:
    actual = to_money(old_actual_amount_paid) if old_actual_amount_paid is not None else ZERO
    if actual > 0:
        basis = round_money(actual)
        label = "Actual Amount Paid"
    else:
        basis = discounted_total(old_plan, old_cycle, old_seats, old_discount_percent)
        label = "Old Plan Price"

    credit = prorated_amount(basis, days_left, total_days)
    trace = (
        f"Credit = ({label}: ${basis}) × "
        f"(Days Remaining: {days_left} / Total Days: {total_days}) = ${credit}"
    )
    return credit, trace


def upgrade_charge(
    old_plan: Any,
    new_plan: Any,
    old_seats: int,
    new_seats: int,
    old_cycle: BillingCycle,
    days_remaining: int,
    total_days: int,
    old_actual_amount_paid: Optional[Any] = None,
    new_cycle: Optional[BillingCycle] = None,
    old_discount_percent: Optional[Any] = None,
) -> ProrationResult:
    """Prorated upgrade: credit the unused old period, charge the rest of the new one.

    Args:
        old_plan: Plan being left
        new_plan: Plan being moved to (may equal ``old_plan`` for seat additions)
        old_seats: Seats on the current subscription
        new_seats: Seats after the change
        old_cycle: Current billing cycle
        days_remaining: Days left in the current period
        total_days: Length of the current period in days
        old_actual_amount_paid: What the customer actually paid for the current period;
            preferred over the old plan's list price when known and positive
        new_cycle: Target billing cycle, defaults to ``old_cycle``
        old_discount_percent: Discount stored on the current subscription, used for
            the list-price fallback instead of looking the tier up again

    Returns:
        ProrationResult; ``net_charge`` may be negative

    Raises:
        PlanPricingNotConfiguredError: If the new plan is not priced for the cycle
    """
    target_cycle = BillingCycle(new_cycle or old_cycle)

    credit, credit_trace = _old_credit(
        old_plan,
        old_seats,
        BillingCycle(old_cycle),
        days_remaining,
        total_days,
        old_actual_amount_paid,
        old_discount_percent,
    )

    new_total = quote(new_plan, new_seats, target_cycle).total_amount
    charge = prorated_amount(new_total, days_remaining, total_days)
    net = charge - credit

    return ProrationResult(
        days_remaining=days_remaining,
        total_days_in_period=total_days,
        credit_amount=credit,
        charge_amount=charge,
        net_charge=net,
        calculation={
            "credit": credit_trace,
            "charge": (
                f"Charge = (New Plan Price: ${new_total}) × "
                f"(Days Remaining: {days_remaining} / Total Days: {total_days}) = ${charge}"
            ),
            "net": f"Net Charge = ${charge} - ${credit} = ${net}",
            "period": f"{days_remaining} of {total_days} days remaining",
            "proration_ratio": _ratio(days_remaining, total_days),
        },
    )


def add_users_charge(
    plan: Any,
    old_seats: int,
    new_seats: int,
    cycle: BillingCycle,
    days_remaining: int,
    total_days: int,
    old_actual_amount_paid: Optional[Any] = None,
    old_discount_percent: Optional[Any] = None,
) -> ProrationResult:
    """Seat increase on the same plan and cycle."""
    return upgrade_charge(
        plan,
        plan,
        old_seats,
        new_seats,
        cycle,
        days_remaining,
        total_days,
        old_actual_amount_paid=old_actual_amount_paid,
        old_discount_percent=old_discount_percent,
    )


def combined_upgrade_charge(
    old_plan: Any,
    new_plan: Any,
    old_seats: int,
    new_seats: int,
    old_cycle: BillingCycle,
    days_remaining: int,
    total_days: int,
    old_actual_amount_paid: Optional[Any] = None,
    new_cycle: Optional[BillingCycle] = None,
    old_discount_percent: Optional[Any] = None,
) -> ProrationResult:
    """Plan change together with a seat increase.

    The unused old period is credited as for an upgrade but the new plan is charged
    for a full period, since the period restarts at the change.
    """
    target_cycle = BillingCycle(new_cycle or old_cycle)

    credit, credit_trace = _old_credit(
        old_plan,
        old_seats,
        BillingCycle(old_cycle),
        days_remaining,
        total_days,
        old_actual_amount_paid,
        old_discount_percent,
    )

    charge = quote(new_plan, new_seats, target_cycle).total_amount
    net = charge - credit

    return ProrationResult(
        days_remaining=days_remaining,
        total_days_in_period=total_days,
        credit_amount=credit,
        charge_amount=charge,
        net_charge=net,
        calculation={
            "credit": credit_trace,
            "charge": (
                f"Charge = (New Plan Price: ${charge}) for a full {target_cycle.value} period"
            ),
            "net": f"Net Charge = ${charge} - ${credit} = ${net}",
            "period": "Billing period restarts at the change",
            "proration_ratio": _ratio(days_remaining, total_days),
        },
    )


def downgrade_credit(
    old_plan: Any, new_plan: Any, seats: int, cycle: BillingCycle
) -> Decimal:
    """Downgrades take effect at renewal, so no credit is ever issued."""
    return ZERO


def billing_cycle_change_charge(
    old_cycle: BillingCycle,
    new_cycle: BillingCycle,
    plan: Any,
    seats: int,
    days_remaining: int,
    total_days: int,
    old_discount_percent: Optional[Any] = None,
) -> CycleChangeResult:
    """Switch billing cycle on the same plan and seats.

    The old cycle's quote is credited pro rata and the new cycle is charged for a
    full period starting now.
    """
    old_cycle = BillingCycle(old_cycle)
    new_cycle = BillingCycle(new_cycle)

    old_total = discounted_total(plan, old_cycle, seats, old_discount_percent)
    credit = prorated_amount(old_total, days_remaining, total_days)
    charge = quote(plan, seats, new_cycle).total_amount
    net = charge - credit

    return CycleChangeResult(
        days_remaining=days_remaining,
        total_days_in_period=total_days,
        credit_for_old_cycle=credit,
        charge_for_new_cycle=charge,
        net_charge=net,
        calculation={
            "credit": (
                f"Credit = ({old_cycle.value} Price: ${old_total}) × "
                f"(Days Remaining: {days_remaining} / Total Days: {total_days}) = ${credit}"
            ),
            "charge": f"Charge = ({new_cycle.value} Price: ${charge}) for a full period",
            "net": f"Net Charge = ${charge} - ${credit} = ${net}",
            "period": "Billing period restarts at the change",
            "proration_ratio": _ratio(days_remaining, total_days),
        },
    )
