"""Generation worker pool consuming the task queue.

Each consumer takes one task id at a time and runs
BatchOrchestrator.process_task. Tasks of one batch never run concurrently
because a batch only ever has one id in flight; different batches run in
parallel up to the pool size.
"""

import asyncio
from typing import TYPE_CHECKING

import structlog

from adshoot.services.exceptions import TaskNotFoundError
from adshoot.workers.task_queue import TaskQueue

if TYPE_CHECKING:
    from adshoot.services.orchestrator import BatchOrchestrator

logger = structlog.get_logger(__name__)


async def consume_tasks(queue: TaskQueue, orchestrator: "BatchOrchestrator", worker_id: int) -> None:
    """Process task ids from the queue until cancelled.

    Errors from a single task are logged and never stop the consumer.

    Args:
        queue: Source of task ids
        orchestrator: Processes each task
        worker_id: Consumer number for log context
    """
    while True:
        task_id = await queue.get()
        try:
            outcome = await orchestrator.process_task(task_id)
            logger.debug(
                "worker.task_processed",
                worker_id=worker_id,
                task_id=str(task_id),
                result=outcome.result.value,
            )
        except asyncio.CancelledError:
            raise
        except TaskNotFoundError:
            logger.warning("worker.task_not_found", worker_id=worker_id, task_id=str(task_id))
        except Exception as e:
            logger.error(
                "worker.error",
                worker_id=worker_id,
                task_id=str(task_id),
                error_type=type(e).__name__,
                error_message=str(e),
                exc_info=True,
            )
        finally:
            queue.task_done()


async def run_generation_worker(
    queue: TaskQueue, orchestrator: "BatchOrchestrator", concurrency: int = 4
) -> None:
    """Main worker loop: run `concurrency` consumers until cancelled.

    Args:
        queue: Source of task ids
        orchestrator: Processes each task
        concurrency: Number of tasks processed in parallel
    """
    logger.info("worker.started", worker="generation", concurrency=concurrency)

    consumers = [
        asyncio.create_task(consume_tasks(queue, orchestrator, worker_id))
        for worker_id in range(concurrency)
    ]
    try:
        await asyncio.gather(*consumers)
    except asyncio.CancelledError:
        logger.info("worker.stopped", worker="generation")
        raise
    finally:
        for consumer in consumers:
            consumer.cancel()
        await asyncio.gather(*consumers, return_exceptions=True)
