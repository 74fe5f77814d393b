"""Stalled task monitor.

Periodically fails tasks stuck in 'processing' (worker crash, lost
invocation) and re-queues batches whose pending tasks are no longer moving.
"""

import asyncio
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

import structlog

from adshoot.core.config import Settings
from adshoot.core.timezone import utcnow
from adshoot.models.generation_task import InvalidStateTransition, TaskStatus

if TYPE_CHECKING:
    from adshoot.services.orchestrator import BatchOrchestrator

logger = structlog.get_logger(__name__)


@dataclass
class MonitorReport:
    """Result of one monitor pass."""

    tasks_checked: int
    tasks_failed: int
    tasks_restarted: int


async def check_stalled_tasks(
    uow_factory, orchestrator: "BatchOrchestrator", timeout_minutes: int = 15
) -> MonitorReport:
    """Fail timed-out processing tasks and restart stuck batches.

    Workflow:
    1. Mark tasks processing for longer than timeout_minutes as failed (the
       repository mirrors the failure onto their photoshoots)
    2. Chain the batches of those tasks
    3. Re-queue batches whose pending tasks are older than the cutoff

    Args:
        uow_factory: Factory returned by create_uow_factory()
        orchestrator: Used to chain batches
        timeout_minutes: Processing time after which a task is considered lost

    Returns:
        MonitorReport with counts for this pass
    """
    cutoff = utcnow() - timedelta(minutes=timeout_minutes)
    failed_batches: set = set()
    tasks_failed = 0

    async with await uow_factory() as uow:
        stalled = await uow.tasks.get_stalled(TaskStatus.PROCESSING, cutoff)
        for task in stalled:
            try:
                await uow.tasks.mark_failed(
                    task, f"Task timed out after {timeout_minutes} minutes of processing"
                )
            except InvalidStateTransition:
                continue
            tasks_failed += 1
            failed_batches.add(task.batch_id)
            logger.warning(
                "monitor.task_timed_out",
                task_id=str(task.id),
                batch_id=str(task.batch_id),
                timeout_minutes=timeout_minutes,
            )

        waiting = await uow.tasks.get_stalled(TaskStatus.PENDING, cutoff)

    tasks_restarted = 0
    for batch_id in failed_batches | {task.batch_id for task in waiting}:
        if await orchestrator.start_next_task(batch_id) is not None:
            tasks_restarted += 1

    report = MonitorReport(
        tasks_checked=len(stalled) + len(waiting),
        tasks_failed=tasks_failed,
        tasks_restarted=tasks_restarted,
    )
    if report.tasks_failed or report.tasks_restarted:
        logger.info(
            "monitor.pass_completed",
            tasks_checked=report.tasks_checked,
            tasks_failed=report.tasks_failed,
            tasks_restarted=report.tasks_restarted,
        )
    return report


async def run_stalled_task_monitor(
    uow_factory, orchestrator: "BatchOrchestrator", settings: Settings
) -> None:
    """Main monitor loop.

    Runs check_stalled_tasks() every MONITOR_INTERVAL_SECONDS until cancelled.

    Args:
        uow_factory: Factory returned by create_uow_factory()
        orchestrator: Used to chain batches
        settings: Interval and timeout configuration
    """
    logger.info(
        "worker.started",
        worker="stalled_task_monitor",
        interval_seconds=settings.monitor_interval_seconds,
        timeout_minutes=settings.stalled_task_timeout_minutes,
    )

    try:
        while True:
            try:
                await check_stalled_tasks(
                    uow_factory, orchestrator, settings.stalled_task_timeout_minutes
                )
                await asyncio.sleep(settings.monitor_interval_seconds)

            except asyncio.CancelledError:
                raise

            except Exception as e:
                logger.error(
                    "worker.error",
                    worker="stalled_task_monitor",
                    error_type=type(e).__name__,
                    error_message=str(e),
                    exc_info=True,
                )
                await asyncio.sleep(5)

    except asyncio.CancelledError:
        logger.info("worker.stopped", worker="stalled_task_monitor")
        raise
