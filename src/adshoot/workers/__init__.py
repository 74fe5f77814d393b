"""Background workers for async processing tasks."""

from adshoot.workers.generation_worker import run_generation_worker
from adshoot.workers.stalled_task_monitor import run_stalled_task_monitor
from adshoot.workers.task_queue import InMemoryTaskQueue, TaskQueue

__all__ = [
    "InMemoryTaskQueue",
    "TaskQueue",
    "run_generation_worker",
    "run_stalled_task_monitor",
]
