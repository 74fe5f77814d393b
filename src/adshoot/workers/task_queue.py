"""Work queue feeding generation tasks to the worker pool."""

import asyncio
from typing import Protocol
from uuid import UUID

import structlog

logger = structlog.get_logger(__name__)


class TaskQueue(Protocol):
    """Queue of generation task ids awaiting processing.

    "Start the next task of a batch" is a put(); worker coroutines get() ids
    and call task_done() once processing returns.
    """

    async def put(self, task_id: UUID) -> bool: ...

    async def get(self) -> UUID: ...

    def task_done(self) -> None: ...


class InMemoryTaskQueue:
    """asyncio.Queue-backed TaskQueue for a single process.

    An id already waiting in the queue is not enqueued twice. Contents are lost
    on restart; pending batches are re-queued from the database at startup.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[UUID] = asyncio.Queue()
        self._queued: set[UUID] = set()

    async def put(self, task_id: UUID) -> bool:
        """Enqueue task_id.

        Returns:
            True if enqueued, False if it was already waiting
        """
        if task_id in self._queued:
            logger.debug("queue.duplicate_skipped", task_id=str(task_id))
            return False
        self._queued.add(task_id)
        self._queue.put_nowait(task_id)
        return True

    async def get(self) -> UUID:
        task_id = await self._queue.get()
        self._queued.discard(task_id)
        return task_id

    def task_done(self) -> None:
        self._queue.task_done()

    def qsize(self) -> int:
        return self._queue.qsize()

    def empty(self) -> bool:
        return self._queue.empty()

    async def join(self) -> None:
        """Block until every enqueued id has been marked done."""
        await self._queue.join()
