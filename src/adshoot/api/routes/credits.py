"""Credit balance API endpoint."""

from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from adshoot.api.dependencies import get_credit_ledger, get_current_user_id
from adshoot.services.credits import CreditLedger

router = APIRouter(prefix="/api/credits", tags=["credits"])


class CreditsResponse(BaseModel):
    """Response model for balance queries."""

    has_credits: bool = Field(..., description="True if at least one credit is available")
    balance: int = Field(..., description="Spendable credits")


@router.get("", response_model=CreditsResponse)
async def get_credits(
    user_id: UUID = Depends(get_current_user_id),
    ledger: CreditLedger = Depends(get_credit_ledger),
) -> CreditsResponse:
    """Get the caller's credit balance.

    New users receive the starting balance on first access.
    """
    check = await ledger.check_credits(user_id)
    return CreditsResponse(has_credits=check.has_credits, balance=check.balance)
