"""Subscription plan schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class PlanBase(BaseModel):
    """Plan base schema."""

    name: str = Field(..., description="Unique plan name, e.g. 'Starter'")
    description: Optional[str] = Field(None, description="Marketing description")
    price_per_user_monthly: Optional[Decimal] = Field(
        None, ge=0, description="Monthly price per seat"
    )
    price_per_user_yearly: Optional[Decimal] = Field(
        None, ge=0, description="Undiscounted yearly price per seat"
    )
    daily_email_limit: Optional[int] = Field(None, description="Daily email quota")
    max_contacts: Optional[int] = None
    max_campaigns: Optional[int] = None
    max_templates: Optional[int] = None
    max_users: Optional[int] = None
    features: Optional[Dict[str, Any]] = Field(default_factory=dict)
    is_active: bool = True
    is_public: bool = True


class PlanCreate(PlanBase):
    """Plan creation schema."""

    pass


class PlanUpdate(BaseModel):
    """Plan update schema."""

    description: Optional[str] = None
    price_per_user_monthly: Optional[Decimal] = None
    price_per_user_yearly: Optional[Decimal] = None
    daily_email_limit: Optional[int] = None
    is_active: Optional[bool] = None
    is_public: Optional[bool] = None


class PlanInDBBase(PlanBase):
    """Plan schema as stored in the database."""

    model_config = {"from_attributes": True}

    id: UUID
    created_at: datetime
    modified_at: datetime


class Plan(PlanInDBBase):
    """Complete plan representation."""

    pass
