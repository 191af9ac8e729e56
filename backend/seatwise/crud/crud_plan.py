"""CRUD operations for subscription plans."""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from seatwise.crud._base import CRUDBase
from seatwise.models import Plan
from seatwise.schemas.plan import PlanCreate, PlanUpdate


class CRUDPlan(CRUDBase[Plan, PlanCreate, PlanUpdate]):
    """CRUD operations for subscription plans."""

    async def get_by_name(self, db: AsyncSession, *, name: str) -> Optional[Plan]:
        """Get a plan by its unique name.

        Args:
            db: Database session
            name: Plan name, e.g. "Free Trial"

        Returns:
            Plan or None
        """
        result = await db.execute(select(Plan).where(Plan.name == name))
        return result.scalar_one_or_none()


plan = CRUDPlan(Plan)
