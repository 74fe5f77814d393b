"""Credit ledger service: balance checks, deductions and manual grants."""

from dataclasses import dataclass
from uuid import UUID

import structlog

logger = structlog.get_logger(__name__)


@dataclass
class CreditCheck:
    """Current spendable balance of a user."""

    has_credits: bool
    balance: int


class CreditLedger:
    """Per-user credit operations, each in its own transaction.

    Failed generation tasks are not refunded: credits are deducted once per
    batch at submission and kept whatever the outcome of the tasks.
    """

    def __init__(self, uow_factory):
        """Initialize ledger.

        Args:
            uow_factory: Factory returned by create_uow_factory()
        """
        self.uow_factory = uow_factory

    async def check_credits(self, user_id: UUID) -> CreditCheck:
        """Return the user's balance, creating the ledger entry on first access."""
        async with await self.uow_factory() as uow:
            balance = await uow.credits.get_balance(user_id)
        return CreditCheck(has_credits=balance > 0, balance=balance)

    async def deduct(self, user_id: UUID, amount: int) -> bool:
        """Atomically deduct amount credits.

        Returns:
            True if deducted, False if the balance was insufficient (unchanged)

        Raises:
            ValueError: If amount is not positive
        """
        async with await self.uow_factory() as uow:
            deducted = await uow.credits.deduct(user_id, amount)

        event = "credits.deducted" if deducted else "credits.insufficient"
        logger.info(event, user_id=str(user_id), amount=amount)
        return deducted

    async def grant(self, user_id: UUID, amount: int) -> int:
        """Add amount credits and return the new balance.

        Raises:
            ValueError: If amount is not positive
        """
        async with await self.uow_factory() as uow:
            balance = await uow.credits.grant(user_id, amount)

        logger.info("credits.granted", user_id=str(user_id), amount=amount, balance=balance)
        return balance
