"""GenerationTask repository for AdShoot backend.

Provides data access methods for GenerationTask entities. Status transitions
are guarded conditional updates and fire the photoshoot synchronizer.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from adshoot.core.timezone import utcnow
from adshoot.models.generation_task import (
    ALLOWED_TRANSITIONS,
    GenerationTask,
    InvalidStateTransition,
    TaskStatus,
)

if TYPE_CHECKING:
    from adshoot.services.synchronization import ResultSynchronizer

logger = structlog.get_logger(__name__)


class GenerationTaskRepository:
    """Repository for GenerationTask entities.

    Every status change goes through _transition(), which issues
    UPDATE ... WHERE status IN (<allowed sources>) so that a terminal task can
    never be moved again, even by a duplicated invocation holding a stale copy.
    """

    def __init__(self, session: AsyncSession, synchronizer: "ResultSynchronizer | None" = None):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
            synchronizer: Mirrors task changes onto linked photoshoots (optional)
        """
        self.session = session
        self.synchronizer = synchronizer

    async def add_batch(self, tasks: list[GenerationTask]) -> list[GenerationTask]:
        """Persist all tasks of a batch in a single flush.

        Args:
            tasks: Task entities sharing one batch_id

        Returns:
            Persisted tasks
        """
        self.session.add_all(tasks)
        await self.session.flush()
        return tasks

    async def get_by_id(self, task_id: UUID) -> GenerationTask | None:
        """Retrieve task by UUID, always reloading database state.

        Args:
            task_id: Task's unique identifier

        Returns:
            GenerationTask if found, None otherwise
        """
        result = await self.session.execute(
            select(GenerationTask)
            .where(GenerationTask.id == task_id)  # type: ignore[arg-type]
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_slot(self, batch_id: UUID, batch_index: int) -> GenerationTask | None:
        """Retrieve task by its (batch_id, batch_index) slot."""
        result = await self.session.execute(
            select(GenerationTask).where(
                GenerationTask.batch_id == batch_id,  # type: ignore[arg-type]
                GenerationTask.batch_index == batch_index,  # type: ignore[arg-type]
            )
        )
        return result.scalar_one_or_none()

    async def get_by_batch(self, batch_id: UUID) -> list[GenerationTask]:
        """Retrieve all tasks of a batch ordered by batch_index.

        Args:
            batch_id: Batch identifier

        Returns:
            Tasks ordered by batch_index (ascending)
        """
        result = await self.session.execute(
            select(GenerationTask)
            .where(GenerationTask.batch_id == batch_id)  # type: ignore[arg-type]
            .order_by(GenerationTask.batch_index.asc())  # type: ignore[attr-defined]
        )
        return list(result.scalars().all())

    async def get_next_pending(self, batch_id: UUID) -> GenerationTask | None:
        """Retrieve the lowest-index pending task of a batch.

        Args:
            batch_id: Batch identifier

        Returns:
            Next pending task, or None when the batch has no pending work
        """
        result = await self.session.execute(
            select(GenerationTask)
            .where(GenerationTask.batch_id == batch_id)  # type: ignore[arg-type]
            .where(GenerationTask.status == TaskStatus.PENDING)  # type: ignore[arg-type]
            .order_by(GenerationTask.batch_index.asc())  # type: ignore[attr-defined]
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def has_processing(self, batch_id: UUID) -> bool:
        """Return True if any task of the batch is currently processing."""
        result = await self.session.execute(
            select(func.count(GenerationTask.id))  # type: ignore[arg-type]
            .where(GenerationTask.batch_id == batch_id)  # type: ignore[arg-type]
            .where(GenerationTask.status == TaskStatus.PROCESSING)  # type: ignore[arg-type]
        )
        return (result.scalar() or 0) > 0

    async def count_by_status(self, batch_id: UUID) -> dict[TaskStatus, int]:
        """Count tasks of a batch grouped by status.

        Args:
            batch_id: Batch identifier

        Returns:
            Mapping of every TaskStatus to its count (zero when absent)
        """
        result = await self.session.execute(
            select(GenerationTask.status, func.count(GenerationTask.id))  # type: ignore[arg-type]
            .where(GenerationTask.batch_id == batch_id)  # type: ignore[arg-type]
            .group_by(GenerationTask.status)
        )
        counts = {status: 0 for status in TaskStatus}
        for status, count in result.all():
            counts[TaskStatus(status)] = int(count)
        return counts

    async def get_owner(self, batch_id: UUID) -> UUID | None:
        """Return the user id owning a batch, or None if the batch is unknown."""
        result = await self.session.execute(
            select(GenerationTask.user_id)
            .where(GenerationTask.batch_id == batch_id)  # type: ignore[arg-type]
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_stalled(
        self, status: TaskStatus, cutoff: datetime, limit: int = 100
    ) -> list[GenerationTask]:
        """Retrieve non-terminal tasks not updated since cutoff.

        Args:
            status: PENDING or PROCESSING
            cutoff: Tasks with updated_at older than this are considered stalled
            limit: Maximum number of tasks to return

        Returns:
            Stalled tasks ordered by updated_at (oldest first)
        """
        result = await self.session.execute(
            select(GenerationTask)
            .where(GenerationTask.status == status)  # type: ignore[arg-type]
            .where(GenerationTask.updated_at < cutoff)  # type: ignore[arg-type]
            .order_by(GenerationTask.updated_at.asc())  # type: ignore[attr-defined]
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_batches_ready_to_resume(self, limit: int = 1000) -> list[UUID]:
        """Retrieve batches with pending tasks and no task currently processing.

        Query explanation:
        - batches having at least one pending task
        - excluding batches that have a processing task (their chain is alive)

        Args:
            limit: Maximum number of batch ids to return

        Returns:
            Batch ids ordered by oldest pending task first
        """
        processing = (
            select(GenerationTask.batch_id)
            .where(GenerationTask.status == TaskStatus.PROCESSING)  # type: ignore[arg-type]
        )
        result = await self.session.execute(
            select(GenerationTask.batch_id)
            .where(GenerationTask.status == TaskStatus.PENDING)  # type: ignore[arg-type]
            .where(GenerationTask.batch_id.not_in(processing))  # type: ignore[attr-defined]
            .group_by(GenerationTask.batch_id)
            .order_by(func.min(GenerationTask.created_at).asc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def mark_processing(self, task: GenerationTask) -> None:
        """Claim a pending task for processing.

        Raises:
            InvalidStateTransition: If the task is no longer pending (already
                claimed by another invocation, or terminal)
        """
        await self._transition(task, TaskStatus.PROCESSING)

    async def mark_completed(self, task: GenerationTask, result_image_url: str) -> None:
        """Mark task completed with its stored image URL.

        Raises:
            ValueError: If result_image_url is empty
            InvalidStateTransition: If the task is already terminal
        """
        if not result_image_url:
            raise ValueError("result_image_url cannot be empty")
        await self._transition(
            task, TaskStatus.COMPLETED, result_image_url=result_image_url, error_message=None
        )

    async def mark_failed(self, task: GenerationTask, error_message: str) -> None:
        """Mark task failed with an error message (truncated to 1000 characters).

        Raises:
            InvalidStateTransition: If the task is already terminal
        """
        await self._transition(
            task, TaskStatus.FAILED, error_message=(error_message or "Unknown error")[:1000]
        )

    async def _transition(self, task: GenerationTask, target: TaskStatus, **values: Any) -> None:
        task.check_transition(target)
        previous_status = task.status
        previous_url = task.result_image_url

        result = await self.session.execute(
            update(GenerationTask)
            .where(GenerationTask.id == task.id)  # type: ignore[arg-type]
            .where(GenerationTask.status.in_(ALLOWED_TRANSITIONS[target]))  # type: ignore[attr-defined]
            .values(status=target, updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        await self.session.refresh(task)

        if result.rowcount != 1:  # type: ignore[attr-defined]
            logger.warning(
                "task.transition.rejected",
                task_id=str(task.id),
                current_status=task.status.value,
                target_status=target.value,
            )
            raise InvalidStateTransition(
                f"Cannot mark {target.value} from {task.status.value} (task {task.id})."
            )

        if self.synchronizer is not None:
            await self.synchronizer.on_task_updated(
                self.session, task, previous_status, previous_url
            )
