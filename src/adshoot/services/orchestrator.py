"""Batch orchestrator: submission, per-task processing and chaining.

A submitted batch of K variants becomes K generation tasks that run one at a
time in batch_index order. Each task, once terminal, pushes the next pending
task of its batch onto the work queue.

Transactions are short: claim, generate (no transaction held), finalize,
chain. Task transitions go through GenerationTaskRepository, whose guarded
updates make duplicated or out-of-order invocations harmless.
"""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from uuid import UUID, uuid4

import httpx
import structlog

from adshoot.core.config import Settings
from adshoot.models.generation_task import (
    GenerationTask,
    ImageQuality,
    ImageSize,
    InvalidStateTransition,
    TaskStatus,
)
from adshoot.models.photoshoot import Photoshoot
from adshoot.services.exceptions import (
    BatchValidationError,
    GenerationTimeoutError,
    InsufficientCreditsError,
    MalformedResponseError,
    ReferenceUploadError,
    ServiceError,
    TaskNotFoundError,
)
from adshoot.services.image_generation.base import GenerationRequest, ImageGenerator
from adshoot.services.image_generation.prompt_validator import validate_prompt
from adshoot.services.reference_images import download_references
from adshoot.services.retry import with_retry
from adshoot.services.storage.base import AssetStore, generated_path, reference_path
from adshoot.workers.task_queue import TaskQueue

logger = structlog.get_logger(__name__)


@dataclass
class ReferenceUpload:
    """Reference image supplied as raw bytes with the request."""

    filename: str
    data: bytes
    content_type: str = "image/png"


@dataclass
class BatchRequest:
    prompt: str
    reference_image_urls: list[str] = field(default_factory=list)
    reference_uploads: list[ReferenceUpload] = field(default_factory=list)
    variant_count: int = 1
    size: ImageSize | str = ImageSize.AUTO
    quality: ImageQuality | str = ImageQuality.HIGH


@dataclass
class BatchSubmission:
    batch_id: UUID
    task_ids: list[UUID]
    credits_remaining: int


class ProcessResult(str, Enum):
    """What a process_task invocation did."""

    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"  # another invocation holds the task
    ALREADY_TERMINAL = "already_terminal"


@dataclass
class TaskOutcome:
    task_id: UUID
    batch_id: UUID
    result: ProcessResult
    status: TaskStatus  # task status after this invocation
    result_image_url: str | None = None
    error_message: str | None = None
    display_url: str | None = None  # result URL, or the fallback placeholder for failed tasks
    fallback_used: bool = False
    next_task_id: UUID | None = None


class BatchOrchestrator:
    """Coordinates credits, storage, the image generator and task records."""

    def __init__(
        self,
        uow_factory,
        asset_store: AssetStore,
        image_generator: ImageGenerator,
        task_queue: TaskQueue,
        settings: Settings,
    ):
        """Initialize orchestrator.

        Args:
            uow_factory: Factory returned by create_uow_factory()
            asset_store: Store for reference and generated images
            image_generator: External image generation provider
            task_queue: Queue consumed by the generation workers
            settings: Limits, timeouts and retry configuration
        """
        self.uow_factory = uow_factory
        self.asset_store = asset_store
        self.image_generator = image_generator
        self.task_queue = task_queue
        self.settings = settings

    @staticmethod
    def _is_fetchable_url(url) -> bool:
        if not isinstance(url, str):
            return False
        try:
            parsed = httpx.URL(url)
        except httpx.InvalidURL:
            return False
        return parsed.scheme in ("http", "https") and bool(parsed.host)

    def _validate(self, request: BatchRequest) -> tuple[str, ImageSize, ImageQuality]:
        try:
            prompt = validate_prompt(request.prompt, max_length=self.settings.max_prompt_length)
        except ValueError as e:
            raise BatchValidationError(str(e)) from e

        if not 1 <= request.variant_count <= self.settings.max_variants:
            raise BatchValidationError(
                f"variant_count must be between 1 and {self.settings.max_variants} "
                f"(got {request.variant_count})"
            )

        try:
            size = ImageSize(request.size)
        except ValueError as e:
            raise BatchValidationError(f"Invalid size: {request.size}") from e
        try:
            quality = ImageQuality(request.quality)
        except ValueError as e:
            raise BatchValidationError(f"Invalid quality: {request.quality}") from e

        for url in request.reference_image_urls:
            if not self._is_fetchable_url(url):
                raise BatchValidationError(f"Invalid reference image URL: {url!r}")

        return prompt, size, quality

    async def _upload_references(self, user_id: UUID, uploads: list[ReferenceUpload]) -> list[str]:
        urls = []
        for upload in uploads:
            path = reference_path(str(user_id), upload.filename, uuid4().hex[:12])
            try:
                url = await with_retry(
                    self.asset_store.upload,
                    path,
                    upload.data,
                    upload.content_type,
                    attempts=self.settings.storage_retry_attempts,
                    base_delay=self.settings.storage_retry_base_delay,
                    operation="storage.upload",
                )
            except ServiceError as e:
                logger.error(
                    "batch.reference_upload_failed",
                    user_id=str(user_id),
                    filename=upload.filename,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise ReferenceUploadError(
                    f"Failed to upload reference image {upload.filename}: {e}"
                ) from e
            urls.append(url)
        return urls

    async def submit_batch(self, user_id: UUID, request: BatchRequest) -> BatchSubmission:
        """Accept a batch of variants and start its first task.

        Workflow:
        1. Validate the request (nothing touched on failure)
        2. Check the balance covers variant_count credits
        3. Upload local reference images, collecting public URLs
        4. In one transaction: insert K pending tasks with one placeholder
           photoshoot each, then deduct K credits atomically (rolls back
           everything if a concurrent submission spent the credits)
        5. Enqueue the first task and return immediately

        Args:
            user_id: Submitting user
            request: Prompt, references, variant count and output options

        Returns:
            BatchSubmission with the new batch id, its task ids and the balance left

        Raises:
            BatchValidationError: Invalid prompt, variant count, size or quality
            InsufficientCreditsError: Balance below variant_count
            ReferenceUploadError: A reference image could not be stored
        """
        prompt, size, quality = self._validate(request)
        variant_count = request.variant_count

        async with await self.uow_factory() as uow:
            balance = await uow.credits.get_balance(user_id)
        if balance < variant_count:
            logger.info(
                "batch.rejected.insufficient_credits",
                user_id=str(user_id),
                required=variant_count,
                balance=balance,
            )
            raise InsufficientCreditsError(required=variant_count, balance=balance)

        reference_urls = list(request.reference_image_urls)
        reference_urls += await self._upload_references(user_id, request.reference_uploads)

        batch_id = uuid4()
        tasks = [
            GenerationTask(
                batch_id=batch_id,
                batch_index=index,
                total_in_batch=variant_count,
                user_id=user_id,
                prompt=prompt,
                reference_image_urls=reference_urls,
                size=size.value,
                quality=quality.value,
            )
            for index in range(variant_count)
        ]

        async with await self.uow_factory() as uow:
            await uow.tasks.add_batch(tasks)
            await uow.photoshoots.add_all(
                [
                    Photoshoot(
                        task_id=task.id,
                        batch_id=batch_id,
                        batch_index=task.batch_index,
                        user_id=user_id,
                        prompt=prompt,
                        reference_image_urls=reference_urls,
                    )
                    for task in tasks
                ]
            )

            if not await uow.credits.deduct(user_id, variant_count):
                balance = await uow.credits.get_balance(user_id)
                logger.warning(
                    "batch.rejected.deduction_failed",
                    user_id=str(user_id),
                    required=variant_count,
                    balance=balance,
                )
                raise InsufficientCreditsError(required=variant_count, balance=balance)

            credits_remaining = await uow.credits.get_balance(user_id)

        logger.info(
            "batch.submitted",
            batch_id=str(batch_id),
            user_id=str(user_id),
            variant_count=variant_count,
            reference_count=len(reference_urls),
            credits_remaining=credits_remaining,
        )

        await self.start_next_task(batch_id)

        return BatchSubmission(
            batch_id=batch_id,
            task_ids=[task.id for task in tasks],
            credits_remaining=credits_remaining,
        )

    async def _generate_and_store(self, task: GenerationTask) -> str:
        references = await download_references(
            self.asset_store, task.reference_image_urls, task_id=str(task.id)
        )
        request = GenerationRequest(
            prompt=task.prompt,
            reference_images=references,
            variant_count=1,
            size=ImageSize(task.size),
            quality=ImageQuality(task.quality),
        )

        timeout = self.settings.generation_timeout_seconds
        try:
            images = await asyncio.wait_for(
                with_retry(
                    self.image_generator.generate,
                    request,
                    attempts=self.settings.generation_retry_attempts,
                    base_delay=self.settings.generation_retry_base_delay,
                    operation="task.generation",
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            raise GenerationTimeoutError(
                f"Image generation timed out after {timeout:g} seconds"
            ) from e

        if not images:
            raise MalformedResponseError("Image generator returned no images")

        return await with_retry(
            self.asset_store.upload,
            generated_path(str(task.user_id), str(task.id)),
            images[0].data,
            images[0].content_type,
            attempts=self.settings.storage_retry_attempts,
            base_delay=self.settings.storage_retry_base_delay,
            operation="storage.upload",
        )

    async def process_task(self, task_id: UUID) -> TaskOutcome:
        """Generate the image for one task and record the result.

        Workflow:
        1. Load the task; a terminal task is left untouched (its batch is
           still chained)
        2. Claim it (pending → processing); losing the claim means another
           invocation owns it, so return without chaining
        3. Download references, call the generator within the timeout
           (transient errors retried) and upload the image (no transaction held)
        4. Mark completed or failed; the repository mirrors the result onto
           the linked photoshoot(s)
        5. Push the next pending task of the batch

        Args:
            task_id: Task to process

        Returns:
            TaskOutcome describing what happened

        Raises:
            TaskNotFoundError: If the task does not exist
        """
        start_time = time.time()

        async with await self.uow_factory() as uow:
            task = await uow.tasks.get_by_id(task_id)
            if task is None:
                raise TaskNotFoundError(f"Generation task {task_id} not found")

            if task.status.is_terminal:
                claimed = False
            else:
                try:
                    await uow.tasks.mark_processing(task)
                    claimed = True
                except InvalidStateTransition:
                    claimed = False

        if task.status.is_terminal:
            logger.info("task.already_terminal", task_id=str(task_id), status=task.status.value)
            next_task_id = await self.start_next_task(task.batch_id)
            return self._outcome(task, ProcessResult.ALREADY_TERMINAL, next_task_id)

        if not claimed:
            logger.info("task.claim_lost", task_id=str(task_id), status=task.status.value)
            return self._outcome(task, ProcessResult.SKIPPED, None)

        logger.info(
            "task.generation.started",
            task_id=str(task_id),
            batch_id=str(task.batch_id),
            batch_index=task.batch_index,
            total_in_batch=task.total_in_batch,
        )

        image_url = None
        error_message = None
        try:
            image_url = await self._generate_and_store(task)
        except ServiceError as e:
            error_message = str(e)
            logger.warning(
                "task.generation.failed",
                task_id=str(task_id),
                error_type=type(e).__name__,
                error_message=error_message,
            )
        except Exception as e:
            error_message = f"Unexpected error: {e}"
            logger.error(
                "task.generation.failed",
                task_id=str(task_id),
                error_type=type(e).__name__,
                error_message=str(e),
                exc_info=True,
            )

        result = ProcessResult.COMPLETED if image_url else ProcessResult.FAILED
        async with await self.uow_factory() as uow:
            task = await uow.tasks.get_by_id(task_id)
            if task is None:
                raise TaskNotFoundError(f"Generation task {task_id} not found")
            try:
                if image_url:
                    await uow.tasks.mark_completed(task, image_url)
                    await self._ensure_photoshoot(uow, task)
                else:
                    await uow.tasks.mark_failed(task, error_message or "Unknown error")
            except InvalidStateTransition:
                # A concurrent writer finalized the task first; its state stands
                logger.warning(
                    "task.finalize.rejected",
                    task_id=str(task_id),
                    current_status=task.status.value,
                    attempted=result.value,
                )
                result = (
                    ProcessResult.COMPLETED
                    if task.status == TaskStatus.COMPLETED
                    else ProcessResult.FAILED
                )

        if task.status == TaskStatus.COMPLETED:
            logger.info(
                "task.generation.succeeded",
                task_id=str(task_id),
                image_url=task.result_image_url,
                duration_seconds=time.time() - start_time,
            )

        next_task_id = await self.start_next_task(task.batch_id)
        return self._outcome(task, result, next_task_id)

    async def _ensure_photoshoot(self, uow, task: GenerationTask) -> None:
        # Tasks created before placeholders existed have no linked row
        if await uow.photoshoots.find_linked(task):
            return
        await uow.photoshoots.add(
            Photoshoot(
                task_id=task.id,
                variation_group_id=task.batch_id,
                variation_index=task.batch_index,
                user_id=task.user_id,
                prompt=task.prompt,
                reference_image_urls=task.reference_image_urls,
                status=task.status,
                result_image_url=task.result_image_url,
            )
        )
        logger.info("photoshoot.created", task_id=str(task.id))

    def _outcome(
        self, task: GenerationTask, result: ProcessResult, next_task_id: UUID | None
    ) -> TaskOutcome:
        fallback = self.settings.fallback_image_url
        fallback_used = task.status == TaskStatus.FAILED and bool(fallback)
        return TaskOutcome(
            task_id=task.id,
            batch_id=task.batch_id,
            result=result,
            status=task.status,
            result_image_url=task.result_image_url,
            error_message=task.error_message,
            display_url=fallback if fallback_used else task.result_image_url,
            fallback_used=fallback_used,
            next_task_id=next_task_id,
        )

    async def start_next_task(self, batch_id: UUID) -> UUID | None:
        """Enqueue the lowest-index pending task of a batch.

        Does nothing while a task of the batch is processing, or when no
        pending task is left. Safe to call repeatedly.

        Args:
            batch_id: Batch to advance

        Returns:
            Enqueued task id, or None
        """
        async with await self.uow_factory() as uow:
            if await uow.tasks.has_processing(batch_id):
                logger.debug("batch.chain.busy", batch_id=str(batch_id))
                return None
            next_task = await uow.tasks.get_next_pending(batch_id)

        if next_task is None:
            logger.debug("batch.chain.finished", batch_id=str(batch_id))
            return None

        await self.task_queue.put(next_task.id)
        logger.info(
            "batch.chain.next_task",
            batch_id=str(batch_id),
            task_id=str(next_task.id),
            batch_index=next_task.batch_index,
        )
        return next_task.id

    async def requeue_pending_batches(self) -> int:
        """Enqueue the head task of every batch with pending, unclaimed work.

        Called at startup because queue contents do not survive a restart.

        Returns:
            Number of batches re-queued
        """
        async with await self.uow_factory() as uow:
            batch_ids = await uow.tasks.get_batches_ready_to_resume()

        requeued = 0
        for batch_id in batch_ids:
            if await self.start_next_task(batch_id) is not None:
                requeued += 1

        if requeued:
            logger.info("batch.requeued", batches=requeued)
        return requeued
