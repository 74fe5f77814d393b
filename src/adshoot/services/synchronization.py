"""Mirror generation task state onto the user-facing photoshoot rows.

ResultSynchronizer is invoked by GenerationTaskRepository after every
successful task transition, so writers of generation_tasks never touch the
photoshoots table themselves. It also provides the manual repair and the
one-time task_id backfill used by the admin CLI.
"""

from dataclasses import dataclass
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from adshoot.core.timezone import utcnow
from adshoot.models.generation_task import GenerationTask, TaskStatus
from adshoot.models.photoshoot import Photoshoot
from adshoot.repositories.generation_task import GenerationTaskRepository
from adshoot.repositories.photoshoot import PhotoshootRepository
from adshoot.services.exceptions import PhotoshootNotFoundError

logger = structlog.get_logger(__name__)


@dataclass
class RepairOutcome:
    """Result of re-deriving one photoshoot from its task."""

    photoshoot_id: UUID
    task_id: UUID | None  # None when no task links to the photoshoot
    status: TaskStatus
    changed: bool


def apply_task_state(photoshoot: Photoshoot, task: GenerationTask) -> bool:
    """Copy task state onto a photoshoot in memory.

    Status is always copied. Result URL and error message are copied only when
    the task value is set and differs; an unset task value never clears the
    photoshoot. task_id is backfilled for rows found through a legacy scheme.

    Args:
        photoshoot: Row to update
        task: Authoritative task state

    Returns:
        True if any field changed
    """
    changed = False

    if photoshoot.task_id is None:
        photoshoot.task_id = task.id
        changed = True

    if photoshoot.status != task.status:
        photoshoot.status = task.status
        changed = True

    if task.result_image_url and photoshoot.result_image_url != task.result_image_url:
        photoshoot.result_image_url = task.result_image_url
        changed = True

    if task.error_message and photoshoot.error_message != task.error_message:
        photoshoot.error_message = task.error_message
        changed = True

    if changed:
        photoshoot.updated_at = utcnow()
    return changed


class ResultSynchronizer:
    """Keeps photoshoots consistent with generation_tasks."""

    async def on_task_updated(
        self,
        session: AsyncSession,
        task: GenerationTask,
        previous_status: TaskStatus,
        previous_result_url: str | None,
    ) -> int:
        """Propagate a task write to every linked photoshoot.

        Runs inside a SAVEPOINT so a failure here never aborts the task write
        that triggered it. Errors are logged and swallowed.

        Args:
            session: Session holding the task write
            task: Task after the write
            previous_status: Status before the write
            previous_result_url: Result URL before the write

        Returns:
            Number of photoshoots changed
        """
        if task.status == previous_status and task.result_image_url == previous_result_url:
            return 0

        try:
            async with session.begin_nested():
                photoshoots = await PhotoshootRepository(session).find_linked(task)
                changed = sum(1 for p in photoshoots if apply_task_state(p, task))
                await session.flush()
        except Exception as e:
            logger.error(
                "sync.failed",
                task_id=str(task.id),
                batch_id=str(task.batch_id),
                error=str(e),
                error_type=type(e).__name__,
            )
            return 0

        if changed:
            logger.info(
                "sync.photoshoots_updated",
                task_id=str(task.id),
                status=task.status.value,
                photoshoots_updated=changed,
            )
        return changed

    async def resolve_task(self, session: AsyncSession, photoshoot: Photoshoot) -> GenerationTask | None:
        """Find the task a photoshoot belongs to.

        Resolution order: task_id, then (batch_id, batch_index), then
        (variation_group_id, variation_index).
        """
        tasks = GenerationTaskRepository(session)

        if photoshoot.task_id is not None:
            return await tasks.get_by_id(photoshoot.task_id)
        if photoshoot.batch_id is not None and photoshoot.batch_index is not None:
            task = await tasks.get_by_slot(photoshoot.batch_id, photoshoot.batch_index)
            if task is not None:
                return task
        if photoshoot.variation_group_id is not None and photoshoot.variation_index is not None:
            return await tasks.get_by_slot(photoshoot.variation_group_id, photoshoot.variation_index)
        return None

    async def repair_photoshoot(self, session: AsyncSession, photoshoot_id: UUID) -> RepairOutcome:
        """Re-derive a photoshoot's status, URL and error from its task.

        Args:
            session: Session to operate in (caller commits)
            photoshoot_id: Photoshoot to repair

        Returns:
            RepairOutcome describing what was found and whether anything changed

        Raises:
            PhotoshootNotFoundError: If the photoshoot does not exist
        """
        photoshoot = await PhotoshootRepository(session).get_by_id(photoshoot_id)
        if photoshoot is None:
            raise PhotoshootNotFoundError(f"Photoshoot {photoshoot_id} not found")

        task = await self.resolve_task(session, photoshoot)
        if task is None:
            logger.warning("sync.repair.no_task", photoshoot_id=str(photoshoot_id))
            return RepairOutcome(
                photoshoot_id=photoshoot.id, task_id=None, status=photoshoot.status, changed=False
            )

        changed = apply_task_state(photoshoot, task)
        await session.flush()

        logger.info(
            "sync.repair.completed",
            photoshoot_id=str(photoshoot_id),
            task_id=str(task.id),
            status=photoshoot.status.value,
            changed=changed,
        )
        return RepairOutcome(
            photoshoot_id=photoshoot.id, task_id=task.id, status=photoshoot.status, changed=changed
        )

    async def backfill_links(self, session: AsyncSession, limit: int = 500) -> int:
        """Set task_id on legacy photoshoots and reconcile their state.

        Args:
            session: Session to operate in (caller commits)
            limit: Maximum number of rows to examine

        Returns:
            Number of photoshoots linked
        """
        linked = 0
        for photoshoot in await PhotoshootRepository(session).get_unlinked(limit=limit):
            task = await self.resolve_task(session, photoshoot)
            if task is None:
                continue
            apply_task_state(photoshoot, task)
            linked += 1

        await session.flush()
        logger.info("sync.backfill.completed", photoshoots_linked=linked)
        return linked
