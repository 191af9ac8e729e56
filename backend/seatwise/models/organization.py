"""Organization model.

Organizations are created and edited elsewhere; the billing core reads them,
locks them while changing subscriptions and uses their contact details when
creating gateway customers.
"""

from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from seatwise.models._base import Base

if TYPE_CHECKING:
    from seatwise.models.subscription import Subscription
    from seatwise.models.user import User


class Organization(Base):
    """Organization (tenant) model."""

    __tablename__ = "organization"

    name: Mapped[str] = mapped_column(String, nullable=False)
    domain: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    billing_email: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    users: Mapped[List["User"]] = relationship(
        "User", back_populates="organization", cascade="all, delete-orphan", lazy="noload"
    )
    subscriptions: Mapped[List["Subscription"]] = relationship(
        "Subscription", back_populates="organization", lazy="noload"
    )
