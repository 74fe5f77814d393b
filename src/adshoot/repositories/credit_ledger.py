"""CreditLedger repository for AdShoot backend.

Provides the atomic credit primitives used by every code path that spends credits.
"""

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from adshoot.core.timezone import utcnow
from adshoot.models.credit_ledger import CreditLedgerEntry


class CreditLedgerRepository:
    """Repository for CreditLedgerEntry entities.

    Balance changes are single conditional UPDATE statements, never a
    read-modify-write across round trips, so concurrent deductions cannot
    double-spend or drive the balance below zero.
    """

    def __init__(self, session: AsyncSession, starting_credits: int = 10):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
            starting_credits: Balance given to a user on first access
        """
        self.session = session
        self.starting_credits = starting_credits

    def _insert(self):
        dialect = self.session.bind.dialect.name if self.session.bind else "postgresql"
        if dialect == "sqlite":
            return sqlite.insert(CreditLedgerEntry)
        return postgresql.insert(CreditLedgerEntry)

    async def ensure_entry(self, user_id: UUID) -> None:
        """Create ledger entry with the starting balance if missing (idempotent).

        Uses INSERT ... ON CONFLICT DO NOTHING so concurrent first accesses
        never create duplicates or reset an existing balance.

        Args:
            user_id: Owning user
        """
        now = utcnow()
        stmt = (
            self._insert()
            .values(
                user_id=user_id,
                credits=self.starting_credits,
                credits_used=0,
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_nothing(index_elements=["user_id"])
        )
        await self.session.execute(stmt)

    async def get_by_user(self, user_id: UUID) -> CreditLedgerEntry | None:
        """Retrieve ledger entry by user id.

        Args:
            user_id: Owning user

        Returns:
            CreditLedgerEntry if found, None otherwise
        """
        result = await self.session.execute(
            select(CreditLedgerEntry)
            .where(CreditLedgerEntry.user_id == user_id)  # type: ignore[arg-type]
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_balance(self, user_id: UUID) -> int:
        """Return current balance, creating the entry on first access.

        Args:
            user_id: Owning user

        Returns:
            Current credit balance
        """
        await self.ensure_entry(user_id)
        result = await self.session.execute(
            select(CreditLedgerEntry.credits).where(CreditLedgerEntry.user_id == user_id)  # type: ignore[arg-type]
        )
        return int(result.scalar_one())

    async def deduct(self, user_id: UUID, amount: int) -> bool:
        """Atomically deduct credits if the balance covers the amount.

        Query explanation:
        - UPDATE credit_ledger SET credits = credits - :amount,
          credits_used = credits_used + :amount
        - WHERE user_id = :user_id AND credits >= :amount
        - Exactly one affected row means success; zero means insufficient
          credits and nothing was changed

        Args:
            user_id: Owning user
            amount: Number of credits to spend (must be positive)

        Returns:
            True if deducted, False if the balance was insufficient

        Raises:
            ValueError: If amount is not positive
        """
        if amount <= 0:
            raise ValueError("amount must be positive")

        await self.ensure_entry(user_id)
        result = await self.session.execute(
            update(CreditLedgerEntry)
            .where(CreditLedgerEntry.user_id == user_id)  # type: ignore[arg-type]
            .where(CreditLedgerEntry.credits >= amount)  # type: ignore[arg-type]
            .values(
                credits=CreditLedgerEntry.credits - amount,
                credits_used=CreditLedgerEntry.credits_used + amount,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1  # type: ignore[attr-defined]

    async def grant(self, user_id: UUID, amount: int) -> int:
        """Atomically add credits to a user's balance.

        Args:
            user_id: Owning user
            amount: Number of credits to add (must be positive)

        Returns:
            Balance after the grant

        Raises:
            ValueError: If amount is not positive
        """
        if amount <= 0:
            raise ValueError("amount must be positive")

        await self.ensure_entry(user_id)
        await self.session.execute(
            update(CreditLedgerEntry)
            .where(CreditLedgerEntry.user_id == user_id)  # type: ignore[arg-type]
            .values(credits=CreditLedgerEntry.credits + amount, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return await self.get_balance(user_id)
