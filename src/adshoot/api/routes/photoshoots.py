"""Photoshoot maintenance API endpoint.

- POST /api/photoshoots/{photoshoot_id}/repair - Re-derive a photoshoot from its task
"""

from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from adshoot.api.dependencies import get_current_user_id
from adshoot.core.dependencies import get_uow
from adshoot.services.exceptions import PhotoshootNotFoundError
from adshoot.uow import UnitOfWork

logger = structlog.get_logger()
router = APIRouter(prefix="/api/photoshoots", tags=["photoshoots"])


class RepairResponse(BaseModel):
    """Response model for a repair request."""

    photoshoot_id: UUID
    task_id: UUID | None
    status: str
    changed: bool


@router.post("/{photoshoot_id}/repair", response_model=RepairResponse)
async def repair_photoshoot(
    photoshoot_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    uow: UnitOfWork = Depends(get_uow),
) -> RepairResponse:
    """Copy status, image URL and error from the linked task onto the photoshoot.

    Used when a photoshoot appears stuck although its task finished.

    Raises:
        HTTPException 404: Unknown photoshoot, or photoshoot of another user
    """
    photoshoot = await uow.photoshoots.get_by_id(photoshoot_id)
    if photoshoot is None or photoshoot.user_id != user_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Photoshoot not found")

    try:
        outcome = await uow.synchronizer.repair_photoshoot(uow.session, photoshoot_id)
    except PhotoshootNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Photoshoot not found")

    return RepairResponse(
        photoshoot_id=outcome.photoshoot_id,
        task_id=outcome.task_id,
        status=outcome.status.value,
        changed=outcome.changed,
    )
