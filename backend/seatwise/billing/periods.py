"""Billing period boundaries."""

from datetime import datetime, timedelta
from typing import Optional

from dateutil.relativedelta import relativedelta

from seatwise.core.config import settings
from seatwise.schemas.enums import BillingCycle


def next_period_end(start: datetime, cycle: BillingCycle) -> datetime:
    """End of a billing period starting at ``start``.

    Calendar-aware: Jan 31 + 1 month is the last day of February.
    """
    if BillingCycle(cycle) == BillingCycle.YEARLY:
        return start + relativedelta(years=1)
    return start + relativedelta(months=1)


def trial_end_for(start: datetime, days: Optional[int] = None) -> datetime:
    """End of a trial starting at ``start``."""
    if days is None:
        days = settings.TRIAL_DURATION_DAYS
    return start + timedelta(days=days)


def renewal_window_end(now: datetime, days: Optional[int] = None) -> datetime:
    """Periods ending before this instant are due for a renewal invoice."""
    if days is None:
        days = settings.RENEWAL_NOTICE_DAYS
    return now + timedelta(days=days)
