"""FastAPI dependencies for request context and shared services.

This module provides reusable FastAPI dependencies for:
- Caller identity (user id forwarded by the upstream gateway)
- Access to collaborators created in the application lifespan
"""

from typing import Annotated, Callable
from uuid import UUID

from fastapi import Header, HTTPException, Request, status

from adshoot.core.config import Settings
from adshoot.services.credits import CreditLedger
from adshoot.services.orchestrator import BatchOrchestrator
from adshoot.uow import UnitOfWork


def get_settings(request: Request) -> Settings:
    """Get the settings instance loaded at startup."""
    return request.app.state.settings


def get_current_user_id(x_user_id: Annotated[str | None, Header()] = None) -> UUID:
    """Resolve the calling user from the X-User-Id header.

    Authentication happens upstream; this service trusts the forwarded id.

    Raises:
        HTTPException: 401 if the header is missing or not a UUID
    """
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Id header"
        )
    try:
        return UUID(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid X-User-Id header"
        )


def get_uow_factory(request: Request) -> Callable[[], UnitOfWork]:
    """Get UnitOfWork factory from app state.

    Example:
        >>> @router.get("/endpoint")
        >>> async def endpoint(uow_factory=Depends(get_uow_factory)):
        ...     async with await uow_factory() as uow:
        ...         await uow.credits.get_balance(user_id)
    """
    return request.app.state.uow_factory


def get_orchestrator(request: Request) -> BatchOrchestrator:
    """Get the batch orchestrator from app state."""
    return request.app.state.orchestrator


def get_credit_ledger(request: Request) -> CreditLedger:
    """Get the credit ledger service from app state."""
    return request.app.state.credit_ledger
