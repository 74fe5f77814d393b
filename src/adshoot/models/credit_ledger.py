"""CreditLedgerEntry entity - per-user generation credit balance."""

from datetime import datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, DateTime
from sqlmodel import Field, SQLModel

from adshoot.core.timezone import utcnow


class CreditLedgerEntry(SQLModel, table=True):
    """CreditLedgerEntry holds the spendable balance and lifetime usage for a user.

    Rows are only mutated through single-statement atomic updates in
    CreditLedgerRepository; the check constraint backs the non-negative invariant.
    """

    __tablename__ = "credit_ledger"  # type: ignore[assignment]
    __table_args__ = (CheckConstraint("credits >= 0", name="ck_credit_ledger_credits_non_negative"),)

    user_id: UUID = Field(primary_key=True)
    credits: int = Field(default=0)
    credits_used: int = Field(default=0)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime())
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime())
