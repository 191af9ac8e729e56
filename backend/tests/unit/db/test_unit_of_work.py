"""Unit tests for the unit of work and the CRUD base's transaction handling."""

from unittest.mock import MagicMock

import pytest

from seatwise import crud
from seatwise.crud._base import _column_values
from seatwise.db.unit_of_work import SERIALIZABLE, UnitOfWork
from seatwise.schemas.enums import BillingCycle, InvoiceStatus


@pytest.mark.asyncio
class TestUnitOfWork:
    """Tests for UnitOfWork."""

    async def test_commits_on_success(self, mock_db):
        """A clean exit commits once."""
        async with UnitOfWork(mock_db) as uow:
            pass

        assert uow.committed is True
        mock_db.commit.assert_awaited_once()
        mock_db.rollback.assert_not_awaited()

    async def test_rolls_back_on_error(self, mock_db):
        """An exception rolls back and propagates."""
        with pytest.raises(ValueError):
            async with UnitOfWork(mock_db):
                raise ValueError("boom")

        mock_db.rollback.assert_awaited_once()
        mock_db.commit.assert_not_awaited()

    async def test_explicit_commit_is_not_repeated(self, mock_db):
        """Committing inside the block is not followed by a second commit."""
        async with UnitOfWork(mock_db) as uow:
            await uow.commit()

        mock_db.commit.assert_awaited_once()

    async def test_rollback_after_commit_is_ignored(self, mock_db):
        """Once committed, rollback does nothing."""
        uow = UnitOfWork(mock_db)
        await uow.commit()
        await uow.rollback()

        mock_db.rollback.assert_not_awaited()

    async def test_isolation_level_is_pinned(self, mock_db):
        """The requested isolation level is set on the connection."""
        async with UnitOfWork(mock_db, isolation_level=SERIALIZABLE):
            pass

        mock_db.connection.assert_awaited_once_with(
            execution_options={"isolation_level": SERIALIZABLE}
        )

    async def test_open_transaction_committed_before_pinning(self, mock_db):
        """Reads made before entering are committed so the level can apply."""
        mock_db.in_transaction = MagicMock(return_value=True)

        async with UnitOfWork(mock_db, isolation_level=SERIALIZABLE):
            assert mock_db.commit.await_count == 1

        assert mock_db.commit.await_count == 2

    async def test_no_isolation_level_leaves_connection_alone(self, mock_db):
        """Without an isolation level no connection options are set."""
        async with UnitOfWork(mock_db):
            pass

        mock_db.connection.assert_not_awaited()


class TestColumnValues:
    """Tests for enum unwrapping."""

    def test_enums_stored_by_value(self):
        """Enum members become their values and other values pass through."""
        values = _column_values(
            {"status": InvoiceStatus.PAID, "billing_cycle": BillingCycle.YEARLY, "notes": "x"}
        )

        assert values == {"status": "PAID", "billing_cycle": "YEARLY", "notes": "x"}


@pytest.mark.asyncio
class TestCrudTransactions:
    """Writes commit on their own unless a unit of work is given."""

    async def test_create_without_uow_commits(self, mock_db):
        """A standalone create commits."""
        plan = await crud.plan.create(mock_db, obj_in={"name": "Team"})

        assert plan.name == "Team"
        mock_db.add.assert_called_once_with(plan)
        mock_db.commit.assert_awaited_once()
        mock_db.flush.assert_not_awaited()

    async def test_create_in_uow_only_flushes(self, mock_db):
        """Inside a unit of work, create flushes and leaves the commit to the unit."""
        uow = UnitOfWork(mock_db)

        await crud.plan.create(mock_db, obj_in={"name": "Team"}, uow=uow)

        mock_db.flush.assert_awaited_once()
        mock_db.commit.assert_not_awaited()

    async def test_update_sets_known_attributes(self, mock_db, starter_plan):
        """Unknown keys are ignored on update."""
        uow = UnitOfWork(mock_db)

        await crud.plan.update(
            mock_db,
            db_obj=starter_plan,
            obj_in={"daily_email_limit": 1000, "unknown": 1},
            uow=uow,
        )

        assert starter_plan.daily_email_limit == 1000
        assert not hasattr(starter_plan, "unknown")
        mock_db.flush.assert_awaited_once()
