"""Per-seat pricing rules.

Pure functions with no I/O: per-seat base price per billing cycle, the volume
discount tiers and the resulting quote. All money is ``Decimal`` rounded half-up
to cents at the edges.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional, Union

from seatwise.core.exceptions import (
    ContactSalesRequiredError,
    InvalidInputError,
    PlanPricingNotConfiguredError,
)
from seatwise.schemas.enums import BillingCycle, Currency
from seatwise.schemas.pricing import PricingOptions, PricingQuote

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

# Yearly billing charges 90% of the yearly list price per seat
YEARLY_PRICE_MULTIPLIER = Decimal("0.9")

# (min seats, max seats, discount percent), inclusive bounds
VOLUME_DISCOUNT_TIERS = (
    (1, 4, 0),
    (5, 10, 10),
    (11, 25, 15),
    (26, 50, 20),
)
MAX_SELF_SERVE_SEATS = 50


@dataclass(frozen=True)
class VolumeDiscount:
    """A self-serve volume discount tier."""

    percent: int


@dataclass(frozen=True)
class ContactSalesRequired:
    """Seat count above the largest self-serve tier."""

    seat_count: int


DiscountTier = Union[VolumeDiscount, ContactSalesRequired]


def to_money(value: Any) -> Decimal:
    """Convert a number, string or None to an unrounded Decimal."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(value: Any) -> Decimal:
    """Round to cents, half-up."""
    return to_money(value).quantize(CENT, rounding=ROUND_HALF_UP)


def per_seat_price(plan: Any, cycle: BillingCycle) -> Decimal:
    """Per-seat price of a plan for a billing cycle, before volume discount.

    Args:
        plan: Anything exposing ``price_per_user_monthly`` and ``price_per_user_yearly``
        cycle: Billing cycle

    Returns:
        The yearly list price x 0.9 for YEARLY, the monthly price for MONTHLY, 0 when unset
    """
    if BillingCycle(cycle) == BillingCycle.YEARLY:
        return to_money(plan.price_per_user_yearly) * YEARLY_PRICE_MULTIPLIER
    return to_money(plan.price_per_user_monthly)


def volume_discount(seat_count: int) -> DiscountTier:
    """Look up the volume discount tier for a seat count."""
    if seat_count < 1:
        return VolumeDiscount(0)
    if seat_count > MAX_SELF_SERVE_SEATS:
        return ContactSalesRequired(seat_count)
    for min_seats, max_seats, percent in VOLUME_DISCOUNT_TIERS:
        if min_seats <= seat_count <= max_seats:
            return VolumeDiscount(percent)
    return VolumeDiscount(0)


def volume_discount_percent(seat_count: int) -> int:
    """Numeric discount percent for a seat count.

    Raises:
        ContactSalesRequiredError: If the seat count is above the self-serve tiers
    """
    tier = volume_discount(seat_count)
    if isinstance(tier, ContactSalesRequired):
        raise ContactSalesRequiredError(seat_count=tier.seat_count)
    return tier.percent


def discounted_unit_price(base_price: Decimal, discount_percent: Any) -> Decimal:
    """Apply a percent discount to a per-seat price without rounding."""
    return to_money(base_price) * (Decimal(100) - to_money(discount_percent)) / Decimal(100)


def discounted_total(
    plan: Any,
    cycle: BillingCycle,
    seat_count: int,
    discount_percent: Optional[Any] = None,
) -> Decimal:
    """Full-period amount for ``seat_count`` seats, after volume discount.

    Unlike ``quote`` this tolerates an unpriced plan (returns 0), which is what a
    credit for a free or trial plan should be. ``discount_percent`` overrides the
    tier lookup, e.g. with the discount stored on an existing subscription.
    """
    if discount_percent is None:
        discount_percent = volume_discount_percent(seat_count)
    unit_price = discounted_unit_price(per_seat_price(plan, cycle), discount_percent)
    return round_money(unit_price * seat_count)


def _contact_sales_quote(plan: Any, seat_count: int, cycle: BillingCycle) -> PricingQuote:
    return PricingQuote(
        plan_id=getattr(plan, "id", None),
        plan_name=getattr(plan, "name", None),
        billing_cycle=cycle,
        user_count=seat_count,
        base_price_per_user=ZERO,
        volume_discount_percent=0,
        discounted_price_per_user=ZERO,
        total_amount=ZERO,
        requires_contact_sales=True,
        currency=Currency.USD,
    )


def quote(plan: Any, seat_count: int, cycle: BillingCycle) -> PricingQuote:
    """Price ``seat_count`` seats of ``plan`` for one billing period.

    Args:
        plan: Plan model or schema
        seat_count: Number of seats
        cycle: Billing cycle

    Returns:
        PricingQuote; a contact-sales quote (all money zero) above the self-serve tiers

    Raises:
        InvalidInputError: If seat_count < 1
        PlanPricingNotConfiguredError: If the plan has no price for the cycle
    """
    if seat_count < 1:
        raise InvalidInputError("User count must be at least 1")

    cycle = BillingCycle(cycle)
    tier = volume_discount(seat_count)
    if isinstance(tier, ContactSalesRequired):
        return _contact_sales_quote(plan, seat_count, cycle)

    base_price = per_seat_price(plan, cycle)
    if base_price <= 0:
        raise PlanPricingNotConfiguredError(getattr(plan, "name", None), cycle.value)

    discounted = discounted_unit_price(base_price, tier.percent)
    return PricingQuote(
        plan_id=getattr(plan, "id", None),
        plan_name=getattr(plan, "name", None),
        billing_cycle=cycle,
        user_count=seat_count,
        base_price_per_user=round_money(base_price),
        volume_discount_percent=tier.percent,
        discounted_price_per_user=round_money(discounted),
        total_amount=round_money(discounted * seat_count),
        requires_contact_sales=False,
        currency=Currency.USD,
    )


def require_self_serve(pricing: PricingQuote) -> PricingQuote:
    """Return the quote, or raise if it can only be fulfilled by sales."""
    if pricing.requires_contact_sales:
        raise ContactSalesRequiredError(seat_count=pricing.user_count)
    return pricing


def quote_both_cycles(plan: Any, seat_count: int) -> PricingOptions:
    """Monthly and yearly quotes for the same seat count, with the yearly savings."""
    monthly = quote(plan, seat_count, BillingCycle.MONTHLY)
    yearly = quote(plan, seat_count, BillingCycle.YEARLY)
    requires_contact_sales = monthly.requires_contact_sales or yearly.requires_contact_sales

    savings = ZERO
    if not requires_contact_sales:
        savings = max(ZERO, round_money(monthly.total_amount * 12 - yearly.total_amount))

    return PricingOptions(
        plan_id=getattr(plan, "id", None),
        plan_name=getattr(plan, "name", None),
        user_count=seat_count,
        monthly=monthly,
        yearly=yearly,
        yearly_savings=savings,
        requires_contact_sales=requires_contact_sales,
    )
