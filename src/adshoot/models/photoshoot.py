"""Photoshoot entity - user-facing generated artifact mirrored from a task."""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, DateTime, Index
from sqlmodel import Field, SQLModel

from adshoot.core.timezone import utcnow
from adshoot.models.generation_task import TaskStatus


class Photoshoot(SQLModel, table=True):
    """Photoshoot is the result record shown to the user for one task.

    Linked to its task by the canonical task_id, or by one of two legacy
    schemes: (batch_id, batch_index) or (variation_group_id, variation_index).
    """

    __tablename__ = "photoshoots"  # type: ignore[assignment]
    __table_args__ = (
        Index("ix_photoshoots_batch_slot", "batch_id", "batch_index"),
        Index("ix_photoshoots_variation_slot", "variation_group_id", "variation_index"),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    task_id: Optional[UUID] = Field(default=None, foreign_key="generation_tasks.id", index=True)
    batch_id: Optional[UUID] = Field(default=None)
    batch_index: Optional[int] = Field(default=None)
    variation_group_id: Optional[UUID] = Field(default=None)
    variation_index: Optional[int] = Field(default=None)
    user_id: UUID = Field(index=True)
    prompt: str
    reference_image_urls: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    status: TaskStatus = Field(default=TaskStatus.PENDING, index=True)
    result_image_url: Optional[str] = Field(default=None)
    error_message: Optional[str] = Field(default=None, max_length=1000)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime())
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime())
