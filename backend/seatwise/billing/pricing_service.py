"""Plan pricing lookups backed by the plan store."""

from typing import Optional, Union
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from seatwise import crud
from seatwise.billing import pricing
from seatwise.core.exceptions import PlanNotFoundError
from seatwise.models import Plan
from seatwise.schemas.enums import BillingCycle
from seatwise.schemas.pricing import PricingOptions, PricingQuote


class PricingService:
    """Quotes prices for stored plans."""

    async def get_active_plan(self, db: AsyncSession, plan_id: UUID) -> Plan:
        """Load a plan that can be sold.

        Raises:
            PlanNotFoundError: If the plan does not exist or is inactive
        """
        plan = await crud.plan.get(db, id=plan_id)
        if plan is None or not plan.is_active:
            raise PlanNotFoundError(f"Plan {plan_id} not found")
        return plan

    async def quote_price(
        self,
        db: AsyncSession,
        plan_id: UUID,
        seat_count: int,
        cycle: Optional[BillingCycle] = None,
    ) -> Union[PricingQuote, PricingOptions]:
        """Quote a plan for a seat count.

        Args:
            db: Database session
            plan_id: Plan to price
            seat_count: Number of seats
            cycle: Billing cycle; when omitted both cycles are quoted

        Returns:
            PricingQuote for a single cycle, PricingOptions for both
        """
        plan = await self.get_active_plan(db, plan_id)
        if cycle is None:
            return pricing.quote_both_cycles(plan, seat_count)
        return pricing.quote(plan, seat_count, cycle)


pricing_service = PricingService()
