"""Organization schemas (read-only view used by billing)."""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class Organization(BaseModel):
    """Organization as seen by the billing core."""

    model_config = {"from_attributes": True}

    id: UUID
    name: str
    domain: Optional[str] = None
    billing_email: Optional[str] = None
    phone: Optional[str] = None

    @property
    def contact_email(self) -> Optional[str]:
        """Email used for gateway customers."""
        return self.billing_email or self.domain
