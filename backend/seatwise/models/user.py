"""User model."""

from typing import TYPE_CHECKING

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from seatwise.models._base import OrganizationBase

if TYPE_CHECKING:
    from seatwise.models.organization import Organization


class User(OrganizationBase):
    """User model. Only the active-user count per organization matters for billing."""

    __tablename__ = "user"

    email: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    organization: Mapped["Organization"] = relationship("Organization", back_populates="users")
