"""SQLModel database entities.

All models are imported here to ensure they're registered with SQLModel metadata
for Alembic autogenerate support.
"""

from adshoot.models.credit_ledger import CreditLedgerEntry
from adshoot.models.generation_task import (
    GenerationTask,
    ImageQuality,
    ImageSize,
    InvalidStateTransition,
    TaskStatus,
)
from adshoot.models.photoshoot import Photoshoot

__all__ = [
    "CreditLedgerEntry",
    "GenerationTask",
    "ImageQuality",
    "ImageSize",
    "InvalidStateTransition",
    "Photoshoot",
    "TaskStatus",
]
