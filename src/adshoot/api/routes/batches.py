"""Batch generation API endpoints.

This module implements REST endpoints for batch image generation:
- POST /api/batches - Submit a batch of variants (deducts credits, starts the first task)
- GET /api/batches/{batch_id} - Aggregate progress for polling
- GET /api/batches/{batch_id}/tasks - Per-task status ordered by batch index
- POST /api/tasks/{task_id}/process - Re-trigger processing of a task (idempotent)

All endpoints act on behalf of the user in the X-User-Id header; batches and
tasks of other users are reported as not found.
"""

import base64
import binascii
from datetime import datetime
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from adshoot.api.dependencies import get_current_user_id, get_orchestrator, get_uow_factory
from adshoot.services.exceptions import (
    BatchValidationError,
    InsufficientCreditsError,
    ReferenceUploadError,
    TaskNotFoundError,
)
from adshoot.services.orchestrator import BatchOrchestrator, BatchRequest, ReferenceUpload
from adshoot.services.progress import get_batch_progress

logger = structlog.get_logger()
router = APIRouter(tags=["batches"])


# Request/Response Models


class ReferenceImagePayload(BaseModel):
    """Reference image sent inline with the batch request."""

    filename: str = Field(..., min_length=1, max_length=255)
    content_base64: str = Field(..., description="Base64-encoded image bytes")
    content_type: str = Field(default="image/png")


class SubmitBatchRequest(BaseModel):
    """Request model for submitting a batch of generation variants."""

    prompt: str = Field(..., description="Generation prompt")
    reference_image_urls: list[str] = Field(
        default_factory=list, description="Already-public reference image URLs"
    )
    reference_images: list[ReferenceImagePayload] = Field(
        default_factory=list, description="Reference images to upload before generation"
    )
    variant_count: int = Field(default=1, description="Number of variants (one credit each)")
    size: str = Field(default="auto", description="square, landscape, portrait or auto")
    quality: str = Field(default="high", description="low, medium, high or auto")


class SubmitBatchResponse(BaseModel):
    """Response model for an accepted batch."""

    batch_id: UUID
    task_ids: list[UUID]
    credits_remaining: int


class BatchProgressResponse(BaseModel):
    """Response model for batch progress polling."""

    batch_id: UUID
    total: int
    completed: int
    failed: int
    pending: int
    processing: int
    percentage: float
    is_complete: bool


class TaskDTO(BaseModel):
    """Data Transfer Object for generation task information in API responses."""

    id: UUID
    batch_index: int
    total_in_batch: int
    status: str = Field(..., description="pending, processing, completed or failed")
    result_image_url: str | None = None
    error_message: str | None = None
    created_at: datetime
    updated_at: datetime


class TaskOutcomeResponse(BaseModel):
    """Response model for a processing invocation."""

    task_id: UUID
    batch_id: UUID
    result: str
    status: str
    result_image_url: str | None = None
    error_message: str | None = None
    display_url: str | None = None
    fallback_used: bool = False
    next_task_id: UUID | None = None


# API Endpoints


@router.post(
    "/api/batches", response_model=SubmitBatchResponse, status_code=status.HTTP_202_ACCEPTED
)
async def submit_batch(
    request: SubmitBatchRequest,
    user_id: UUID = Depends(get_current_user_id),
    orchestrator: BatchOrchestrator = Depends(get_orchestrator),
):
    """Submit a batch of image variants for asynchronous generation.

    Returns immediately; progress is observed by polling GET /api/batches/{batch_id}.

    Raises:
        HTTPException 400: Invalid prompt, variant count, size, quality or reference image
        HTTPException 502: A reference image could not be stored

    Responses:
        402: {"error": "Insufficient credits", "message": "...", "credits": <balance>}

    Example:
        POST /api/batches
        {
            "prompt": "red sneaker on white background",
            "variant_count": 3,
            "size": "square"
        }

        Response 202:
        {
            "batch_id": "5a0c...",
            "task_ids": ["...", "...", "..."],
            "credits_remaining": 7
        }
    """
    try:
        uploads = [
            ReferenceUpload(
                filename=image.filename,
                data=base64.b64decode(image.content_base64, validate=True),
                content_type=image.content_type,
            )
            for image in request.reference_images
        ]
    except (binascii.Error, ValueError):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Reference image content must be valid base64",
        )

    batch_request = BatchRequest(
        prompt=request.prompt,
        reference_image_urls=request.reference_image_urls,
        reference_uploads=uploads,
        variant_count=request.variant_count,
        size=request.size,
        quality=request.quality,
    )

    try:
        submission = await orchestrator.submit_batch(user_id, batch_request)
    except BatchValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except InsufficientCreditsError as e:
        return JSONResponse(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            content={"error": "Insufficient credits", "message": str(e), "credits": e.balance},
        )
    except ReferenceUploadError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))

    return SubmitBatchResponse(
        batch_id=submission.batch_id,
        task_ids=submission.task_ids,
        credits_remaining=submission.credits_remaining,
    )


async def _require_owned_batch(uow, batch_id: UUID, user_id: UUID) -> None:
    owner = await uow.tasks.get_owner(batch_id)
    if owner is None or owner != user_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Batch not found")


@router.get("/api/batches/{batch_id}", response_model=BatchProgressResponse)
async def get_batch(
    batch_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    uow_factory=Depends(get_uow_factory),
) -> BatchProgressResponse:
    """Get aggregate task counts of a batch.

    Raises:
        HTTPException 404: Unknown batch, or batch of another user
    """
    async with await uow_factory() as uow:
        await _require_owned_batch(uow, batch_id, user_id)
        progress = await get_batch_progress(uow, batch_id)

    return BatchProgressResponse(**progress.to_dict())


@router.get("/api/batches/{batch_id}/tasks", response_model=list[TaskDTO])
async def list_batch_tasks(
    batch_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    uow_factory=Depends(get_uow_factory),
) -> list[TaskDTO]:
    """List the tasks of a batch ordered by batch index.

    Raises:
        HTTPException 404: Unknown batch, or batch of another user
    """
    async with await uow_factory() as uow:
        await _require_owned_batch(uow, batch_id, user_id)
        tasks = await uow.tasks.get_by_batch(batch_id)

    return [
        TaskDTO(
            id=task.id,
            batch_index=task.batch_index,
            total_in_batch=task.total_in_batch,
            status=task.status.value,
            result_image_url=task.result_image_url,
            error_message=task.error_message,
            created_at=task.created_at,
            updated_at=task.updated_at,
        )
        for task in tasks
    ]


@router.post("/api/tasks/{task_id}/process", response_model=TaskOutcomeResponse)
async def process_task(
    task_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    uow_factory=Depends(get_uow_factory),
    orchestrator: BatchOrchestrator = Depends(get_orchestrator),
) -> TaskOutcomeResponse:
    """Process a task now, or report its state if it is already handled.

    Safe to call any number of times: a terminal task is never regenerated
    and a task claimed by another invocation is skipped.

    Raises:
        HTTPException 404: Unknown task, or task of another user
    """
    async with await uow_factory() as uow:
        task = await uow.tasks.get_by_id(task_id)
    if task is None or task.user_id != user_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")

    try:
        outcome = await orchestrator.process_task(task_id)
    except TaskNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")

    logger.info("task.process_requested", task_id=str(task_id), result=outcome.result.value)
    return TaskOutcomeResponse(
        task_id=outcome.task_id,
        batch_id=outcome.batch_id,
        result=outcome.result.value,
        status=outcome.status.value,
        result_image_url=outcome.result_image_url,
        error_message=outcome.error_message,
        display_url=outcome.display_url,
        fallback_used=outcome.fallback_used,
        next_task_id=outcome.next_task_id,
    )
