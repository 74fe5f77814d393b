"""Unit of Work pattern for AdShoot backend.

Provides transaction management with automatic commit/rollback and access to all repositories.
"""

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from adshoot.repositories.credit_ledger import CreditLedgerRepository
from adshoot.repositories.generation_task import GenerationTaskRepository
from adshoot.repositories.photoshoot import PhotoshootRepository
from adshoot.services.synchronization import ResultSynchronizer

logger = structlog.get_logger()


class UnitOfWork:
    """Unit of Work pattern implementation.

    Manages database transactions and provides access to all repositories.
    Task transitions made through uow.tasks are mirrored onto photoshoots
    within the same transaction.

    Example:
        async with await uow_factory() as uow:
            task = await uow.tasks.get_by_id(task_id)
            await uow.tasks.mark_completed(task, url)
            # Automatically commits on successful exit
            # Automatically rolls back on exception
    """

    def __init__(self, session: AsyncSession, starting_credits: int = 10):
        """Initialize UnitOfWork with database session.

        Args:
            session: SQLAlchemy async session for database operations
            starting_credits: Balance granted on a user's first ledger access
        """
        self.session = session
        self.synchronizer = ResultSynchronizer()

        self.tasks = GenerationTaskRepository(session, synchronizer=self.synchronizer)
        self.photoshoots = PhotoshootRepository(session)
        self.credits = CreditLedgerRepository(session, starting_credits=starting_credits)

    async def __aenter__(self):
        """Enter async context manager.

        Returns:
            self: UnitOfWork instance with all repositories available
        """
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Exit async context manager with automatic commit/rollback.

        The session is closed in both cases.

        Returns:
            False: Always re-raise exceptions after rollback
        """
        try:
            if exc_type is None:
                await self.session.commit()
                logger.debug("transaction.committed")
            else:
                await self.session.rollback()
                logger.info("transaction.rolled_back", exc_type=exc_type.__name__)
        finally:
            await self.session.close()

        return False


def create_uow_factory(session_factory: async_sessionmaker[AsyncSession], starting_credits: int = 10):
    """Create a factory function that produces UnitOfWork instances.

    Args:
        session_factory: SQLAlchemy async session factory
        starting_credits: Balance granted on a user's first ledger access

    Returns:
        Callable that creates UnitOfWork instances from new sessions

    Example:
        session_factory = setup_db_session(db_url, pool_size=20)
        uow_factory = create_uow_factory(session_factory)

        async with await uow_factory() as uow:
            balance = await uow.credits.get_balance(user_id)
    """

    async def _create_uow():
        """Create a new UnitOfWork instance with a new session."""
        session = session_factory()
        return UnitOfWork(session, starting_credits=starting_credits)

    return _create_uow
