"""GenerationTask entity - one requested image variant within a batch."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, DateTime, UniqueConstraint
from sqlmodel import Field, SQLModel

from adshoot.core.timezone import utcnow


class TaskStatus(str, Enum):
    """Generation task lifecycle status."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED)


class ImageSize(str, Enum):
    """Requested output layout."""

    SQUARE = "square"
    LANDSCAPE = "landscape"
    PORTRAIT = "portrait"
    AUTO = "auto"


class ImageQuality(str, Enum):
    """Requested output quality."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    AUTO = "auto"


# Allowed source states for each target state
ALLOWED_TRANSITIONS: dict[TaskStatus, tuple[TaskStatus, ...]] = {
    TaskStatus.PROCESSING: (TaskStatus.PENDING,),
    TaskStatus.COMPLETED: (TaskStatus.PENDING, TaskStatus.PROCESSING),
    TaskStatus.FAILED: (TaskStatus.PENDING, TaskStatus.PROCESSING),
}


class InvalidStateTransition(Exception):
    """Raised when attempting an invalid task state transition."""

    pass


class GenerationTask(SQLModel, table=True):
    """GenerationTask is the unit of progress tracking for one image variant."""

    __tablename__ = "generation_tasks"  # type: ignore[assignment]
    __table_args__ = (UniqueConstraint("batch_id", "batch_index", name="uq_generation_tasks_batch_slot"),)

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    batch_id: UUID = Field(index=True)
    batch_index: int = Field(ge=0)
    total_in_batch: int = Field(ge=1)
    user_id: UUID = Field(index=True)
    prompt: str
    reference_image_urls: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    size: str = Field(default=ImageSize.AUTO.value, max_length=20)
    quality: str = Field(default=ImageQuality.HIGH.value, max_length=20)
    status: TaskStatus = Field(default=TaskStatus.PENDING, index=True)
    result_image_url: Optional[str] = Field(default=None)
    error_message: Optional[str] = Field(default=None, max_length=1000)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime())
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(), index=True)

    def check_transition(self, target: TaskStatus) -> None:
        """Validate a transition from the current status to target.

        Args:
            target: Desired status

        Raises:
            InvalidStateTransition: If the current status is terminal or not an
                allowed source for target
        """
        if self.status.is_terminal:
            raise InvalidStateTransition(
                f"Cannot mark {target.value} from terminal state {self.status.value}."
            )
        allowed = ALLOWED_TRANSITIONS.get(target, ())
        if self.status not in allowed:
            raise InvalidStateTransition(
                f"Cannot mark {target.value} from {self.status.value}. "
                f"Task must be in {' or '.join(s.value for s in allowed) or 'no'} state."
            )
