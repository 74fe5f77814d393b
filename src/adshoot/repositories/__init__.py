"""Repository layer for AdShoot backend.

Provides data access abstractions for all domain entities.
Each repository is self-contained and takes the session it operates on.
"""

from adshoot.repositories.credit_ledger import CreditLedgerRepository
from adshoot.repositories.generation_task import GenerationTaskRepository
from adshoot.repositories.photoshoot import PhotoshootRepository

__all__ = [
    "CreditLedgerRepository",
    "GenerationTaskRepository",
    "PhotoshootRepository",
]
