"""Aggregate batch progress for status queries."""

from dataclasses import asdict, dataclass
from typing import Any
from uuid import UUID

from adshoot.models.generation_task import TaskStatus


@dataclass
class BatchProgress:
    """Task counts of one batch."""

    batch_id: UUID
    total: int
    completed: int
    failed: int
    pending: int
    processing: int

    @property
    def finished(self) -> int:
        return self.completed + self.failed

    @property
    def percentage(self) -> float:
        """Share of terminal tasks, 0-100 (0 for an empty batch)."""
        if self.total == 0:
            return 0.0
        return self.finished / self.total * 100

    @property
    def is_complete(self) -> bool:
        return self.total > 0 and self.finished == self.total

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["batch_id"] = str(self.batch_id)
        data["percentage"] = round(self.percentage, 2)
        data["is_complete"] = self.is_complete
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BatchProgress":
        return cls(
            batch_id=UUID(str(data["batch_id"])),
            total=int(data["total"]),
            completed=int(data["completed"]),
            failed=int(data["failed"]),
            pending=int(data["pending"]),
            processing=int(data["processing"]),
        )


async def get_batch_progress(uow, batch_id: UUID) -> BatchProgress:
    """Count a batch's tasks by status (read-only).

    Args:
        uow: Open UnitOfWork
        batch_id: Batch to summarize

    Returns:
        BatchProgress (all zeros for an unknown batch)
    """
    counts = await uow.tasks.count_by_status(batch_id)
    return BatchProgress(
        batch_id=batch_id,
        total=sum(counts.values()),
        completed=counts[TaskStatus.COMPLETED],
        failed=counts[TaskStatus.FAILED],
        pending=counts[TaskStatus.PENDING],
        processing=counts[TaskStatus.PROCESSING],
    )
