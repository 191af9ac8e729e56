"""Common test fixtures."""

import uuid
from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace
from typing import Any, Optional
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from seatwise import models
from seatwise.crud._base import _column_values
from seatwise.core.datetime_utils import utc_now_naive
from seatwise.schemas.enums import BillingCycle, Currency, SubscriptionStatus


def build_plan(
    name: str = "Starter",
    monthly: Optional[Any] = "10.00",
    yearly: Optional[Any] = "100.00",
    **overrides,
) -> models.Plan:
    """Build a transient plan row."""
    fields = dict(
        id=uuid.uuid4(),
        name=name,
        price_per_user_monthly=Decimal(monthly) if monthly is not None else None,
        price_per_user_yearly=Decimal(yearly) if yearly is not None else None,
        daily_email_limit=500,
        features={},
        is_active=True,
        is_public=True,
    )
    fields.update(overrides)
    return models.Plan(**fields)


def build_subscription(
    plan: models.Plan,
    organization_id: Optional[uuid.UUID] = None,
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
    user_count: int = 4,
    cycle: BillingCycle = BillingCycle.MONTHLY,
    final_amount: Optional[Any] = "40.00",
    days_left: int = 15,
    total_days: int = 30,
    **overrides,
) -> models.Subscription:
    """Build a transient subscription row whose period has ``days_left`` of ``total_days``."""
    now = utc_now_naive()
    start = now - timedelta(days=total_days - days_left)
    fields = dict(
        id=uuid.uuid4(),
        organization_id=organization_id or uuid.uuid4(),
        plan_id=plan.id,
        status=SubscriptionStatus(status).value,
        billing_cycle=BillingCycle(cycle).value,
        currency=Currency.USD.value,
        amount=Decimal(final_amount or 0),
        user_count=user_count,
        volume_discount_percent=Decimal("0"),
        final_amount=Decimal(final_amount) if final_amount is not None else None,
        current_period_start=start,
        current_period_end=start + timedelta(days=total_days),
        created_at=now - timedelta(days=total_days - days_left),
    )
    fields.update(overrides)
    return models.Subscription(**fields)


async def fake_update(db, *, db_obj, obj_in, uow=None):
    """Stand-in for ``CRUDBase.update`` that only sets attributes."""
    if not isinstance(obj_in, dict):
        obj_in = obj_in.model_dump(exclude_unset=True)
    for key, value in _column_values(obj_in).items():
        setattr(db_obj, key, value)
    return db_obj


def fake_create(model):
    """Stand-in for ``CRUDBase.create`` returning a transient row with an id."""

    async def _create(db, *, obj_in, uow=None):
        if not isinstance(obj_in, dict):
            obj_in = obj_in.model_dump()
        now = utc_now_naive()
        return model(
            id=uuid.uuid4(), created_at=now, modified_at=now, **_column_values(obj_in)
        )

    return _create


@pytest.fixture
def mock_db():
    """Mock async session."""
    db = AsyncMock(spec=AsyncSession)
    db.in_transaction = MagicMock(return_value=False)
    return db


@pytest.fixture
def organization_id():
    """Organization id shared by a test's rows."""
    return uuid.uuid4()


@pytest.fixture
def mock_organization(organization_id):
    """Organization row."""
    return models.Organization(
        id=organization_id,
        name="Acme Inc",
        domain="acme.test",
        billing_email="billing@acme.test",
    )


@pytest.fixture
def starter_plan():
    """$10/seat/month plan."""
    return build_plan("Starter", monthly="10.00", yearly="100.00")


@pytest.fixture
def pro_plan():
    """$20/seat/month plan."""
    return build_plan("Pro", monthly="20.00", yearly="200.00")


@pytest.fixture
def patched_crud(mock_organization, starter_plan, pro_plan):
    """Patch the CRUD singletons with in-memory stand-ins.

    ``plans`` maps plan ids to rows returned by ``crud.plan.get``; tests set
    ``live.return_value`` to the organization's live subscription.
    """
    from seatwise import crud

    plans = {starter_plan.id: starter_plan, pro_plan.id: pro_plan}

    async def get_plan(db, id):
        return plans.get(id)

    with (
        patch.object(crud.plan, "get", AsyncMock(side_effect=get_plan)),
        patch.object(
            crud.organization, "get_for_update", AsyncMock(return_value=mock_organization)
        ),
        patch.object(crud.organization, "get", AsyncMock(return_value=mock_organization)),
        patch.object(crud.subscription, "get_live_by_organization", AsyncMock()) as live,
        patch.object(crud.subscription, "get_for_update", AsyncMock()) as get_for_update,
        patch.object(crud.subscription, "count_live", AsyncMock(return_value=0)),
        patch.object(
            crud.subscription,
            "create",
            AsyncMock(side_effect=fake_create(models.Subscription)),
        ) as create_subscription,
        patch.object(
            crud.subscription, "update", AsyncMock(side_effect=fake_update)
        ) as update_subscription,
        patch.object(
            crud.invoice, "create", AsyncMock(side_effect=fake_create(models.Invoice))
        ) as create_invoice,
        patch.object(crud.invoice, "has_open_invoice_due", AsyncMock(return_value=False)),
        patch(
            "seatwise.core.quota_cache.quota_cache.invalidate", AsyncMock(return_value=0)
        ) as invalidate,
    ):
        yield SimpleNamespace(
            plans=plans,
            live=live,
            get_for_update=get_for_update,
            create_subscription=create_subscription,
            update_subscription=update_subscription,
            create_invoice=create_invoice,
            invalidate=invalidate,
        )
