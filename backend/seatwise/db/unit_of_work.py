"""Unit of work for database transactions."""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

SERIALIZABLE = "SERIALIZABLE"


class UnitOfWork:
    """Unit of work for database transactions.

    Usage:
    -----
    ```python

    await crud.subscription.create(db, obj_in=obj_in)  # commits automatically

    async with UnitOfWork(db, isolation_level=SERIALIZABLE) as uow:
        org = await crud.organization.get_for_update(db, id=org_id)
        sub = await crud.subscription.create(db, obj_in=obj_in, uow=uow)
        await crud.invoice.create(db, obj_in=invoice_in, uow=uow)

    # The transaction is committed or rolled back as soon as the context manager exits.
    ```

    """

    def __init__(self, session: AsyncSession, isolation_level: Optional[str] = None):
        """Initialize the UnitOfWork with a database session.

        Args:
        ----
            session (AsyncSession): The database session.
            isolation_level (str, optional): Isolation level applied to the session's
                connection before the first statement, e.g. "SERIALIZABLE". Any
                transaction already open on the session is committed first.

        """
        self.session = session
        self.isolation_level = isolation_level
        self._committed = False
        self._rolledback = False

    @property
    def committed(self) -> bool:
        """Check if the transaction has been committed.

        Returns:
        -------
            bool: True if the transaction has been committed, False otherwise.

        """
        return self._committed

    async def commit(self) -> None:
        """Commit the transaction.

        If the transaction has already been committed or rolled back, this method does nothing.
        """
        if not self._committed and not self._rolledback:
            await self.session.commit()
            self._committed = True

    async def rollback(self) -> None:
        """Rollback the transaction.

        If the transaction has already been committed or rolled back, this method does nothing.
        """
        if not self._committed and not self._rolledback:
            await self.session.rollback()
            self._rolledback = True

    async def __aenter__(self) -> "UnitOfWork":
        """Enter the context manager, pinning the isolation level if one was requested.

        Returns:
        -------
            UnitOfWork: The UnitOfWork instance.

        """
        if self.isolation_level:
            # The isolation level only applies to a fresh transaction; close any
            # read-only transaction opened by lookups made before entering.
            if self.session.in_transaction():
                await self.session.commit()
            await self.session.connection(
                execution_options={"isolation_level": self.isolation_level}
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit the context manager.

        Args:
        ----
            exc_type (Type[Exception]): The exception type.
            exc_val (Exception): The exception value.
            exc_tb (TracebackType): The exception traceback.

        """
        if exc_type is not None:
            await self.rollback()
        else:
            await self.commit()
