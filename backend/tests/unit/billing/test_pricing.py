"""Unit tests for the per-seat pricing rules."""

from decimal import Decimal

import pytest

from seatwise.billing.pricing import (
    ContactSalesRequired,
    VolumeDiscount,
    discounted_total,
    per_seat_price,
    quote,
    quote_both_cycles,
    require_self_serve,
    round_money,
    volume_discount,
    volume_discount_percent,
)
from seatwise.core.exceptions import (
    ContactSalesRequiredError,
    InvalidInputError,
    PlanPricingNotConfiguredError,
)
from seatwise.schemas.enums import BillingCycle
from tests.fixtures.common import build_plan


class TestVolumeDiscount:
    """Tests for the seat-count discount tiers."""

    @pytest.mark.parametrize(
        "seats,percent",
        [(1, 0), (4, 0), (5, 10), (10, 10), (11, 15), (25, 15), (26, 20), (50, 20)],
    )
    def test_tiers(self, seats, percent):
        """Tier boundaries are inclusive."""
        assert volume_discount_percent(seats) == percent
        assert volume_discount(seats) == VolumeDiscount(percent)

    @pytest.mark.parametrize("seats", [51, 100, 1000])
    def test_above_top_tier_requires_sales(self, seats):
        """Seat counts above 50 are not self-serve."""
        assert volume_discount(seats) == ContactSalesRequired(seats)
        with pytest.raises(ContactSalesRequiredError) as exc_info:
            volume_discount_percent(seats)
        assert exc_info.value.seat_count == seats


class TestPerSeatPrice:
    """Tests for per_seat_price."""

    def test_yearly_is_ninety_percent_of_list(self, starter_plan):
        """The yearly price is discounted 10% off the yearly list price."""
        assert round_money(per_seat_price(starter_plan, BillingCycle.YEARLY)) == Decimal("90.00")

    def test_monthly(self, starter_plan):
        """The monthly price is taken as is."""
        assert per_seat_price(starter_plan, BillingCycle.MONTHLY) == Decimal("10.00")

    def test_unset_price_is_zero(self):
        """A plan without a yearly price costs nothing per seat."""
        plan = build_plan(yearly=None)
        assert per_seat_price(plan, BillingCycle.YEARLY) == Decimal("0")


class TestQuote:
    """Tests for quote."""

    def test_seven_seats_at_twenty(self):
        """7 seats land in the 10% tier."""
        plan = build_plan("Pro", monthly="20.00")
        result = quote(plan, 7, BillingCycle.MONTHLY)

        expected = round_money(per_seat_price(plan, BillingCycle.MONTHLY) * Decimal("0.9") * 7)
        assert result.total_amount == expected == Decimal("126.00")
        assert result.volume_discount_percent == 10

    def test_six_seats_at_fifteen(self):
        """$15 x 6 seats at 10% off."""
        plan = build_plan("Growth", monthly="15.00")
        result = quote(plan, 6, BillingCycle.MONTHLY)

        assert result.base_price_per_user == Decimal("15.00")
        assert result.discounted_price_per_user == Decimal("13.50")
        assert result.total_amount == Decimal("81.00")
        assert result.requires_contact_sales is False

    def test_yearly_quote(self, starter_plan):
        """Yearly quotes use the discounted yearly per-seat price."""
        result = quote(starter_plan, 2, BillingCycle.YEARLY)
        assert result.base_price_per_user == Decimal("90.00")
        assert result.total_amount == Decimal("180.00")

    def test_zero_seats_rejected(self, starter_plan):
        """At least one seat must be quoted."""
        with pytest.raises(InvalidInputError, match="at least 1"):
            quote(starter_plan, 0, BillingCycle.MONTHLY)

    def test_contact_sales_quote(self, starter_plan):
        """Above the top tier the quote carries no money and is flagged."""
        result = quote(starter_plan, 51, BillingCycle.MONTHLY)
        assert result.requires_contact_sales is True
        assert result.total_amount == Decimal("0.00")

        with pytest.raises(ContactSalesRequiredError):
            require_self_serve(result)

    def test_unpriced_plan(self):
        """A plan without a price for the cycle cannot be quoted."""
        plan = build_plan("Free Trial", monthly="0", yearly="0")
        with pytest.raises(PlanPricingNotConfiguredError):
            quote(plan, 1, BillingCycle.MONTHLY)


class TestQuoteBothCycles:
    """Tests for quote_both_cycles."""

    def test_yearly_savings(self, starter_plan):
        """Savings compare twelve monthly totals with the yearly total."""
        options = quote_both_cycles(starter_plan, 3)

        assert options.monthly.total_amount == Decimal("30.00")
        assert options.yearly.total_amount == Decimal("270.00")
        assert options.yearly_savings == Decimal("90.00")
        assert options.requires_contact_sales is False

    def test_contact_sales(self, starter_plan):
        """No savings are computed for contact-sales seat counts."""
        options = quote_both_cycles(starter_plan, 60)
        assert options.requires_contact_sales is True
        assert options.yearly_savings == Decimal("0.00")


class TestDiscountedTotal:
    """Tests for discounted_total."""

    def test_stored_discount_overrides_tier(self, starter_plan):
        """The discount stored on a subscription wins over the tier lookup."""
        assert discounted_total(starter_plan, BillingCycle.MONTHLY, 4, 10) == Decimal("36.00")

    def test_unpriced_plan_is_zero(self):
        """Free plans are worth nothing rather than an error."""
        plan = build_plan("Free Trial", monthly="0", yearly="0")
        assert discounted_total(plan, BillingCycle.MONTHLY, 1) == Decimal("0.00")
