"""CRUD operations for organizations (billing view)."""

from uuid import UUID

from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from seatwise.crud._base import CRUDBase
from seatwise.models import Organization, User


class CRUDOrganization(CRUDBase[Organization, BaseModel, BaseModel]):
    """Organization reads and row locks used by billing."""

    async def count_active_users(self, db: AsyncSession, *, organization_id: UUID) -> int:
        """Count the live (active) users of an organization.

        Args:
            db: Database session
            organization_id: Organization ID

        Returns:
            Number of active users
        """
        query = select(func.count(User.id)).where(
            User.organization_id == organization_id, User.is_active.is_(True)
        )
        result = await db.execute(query)
        return int(result.scalar_one() or 0)


organization = CRUDOrganization(Organization)
