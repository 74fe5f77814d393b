"""Photoshoot repository for AdShoot backend.

Provides data access methods for Photoshoot entities, including lookup across
the canonical and legacy task linkage schemes.
"""

from uuid import UUID

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from adshoot.models.generation_task import GenerationTask
from adshoot.models.photoshoot import Photoshoot


class PhotoshootRepository:
    """Repository for Photoshoot entities."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def add(self, photoshoot: Photoshoot) -> Photoshoot:
        """Persist new photoshoot to database.

        Args:
            photoshoot: Photoshoot entity to persist

        Returns:
            Persisted photoshoot with generated ID
        """
        self.session.add(photoshoot)
        await self.session.flush()
        return photoshoot

    async def add_all(self, photoshoots: list[Photoshoot]) -> list[Photoshoot]:
        """Persist several photoshoots in a single flush."""
        self.session.add_all(photoshoots)
        await self.session.flush()
        return photoshoots

    async def get_by_id(self, photoshoot_id: UUID) -> Photoshoot | None:
        """Retrieve photoshoot by UUID.

        Args:
            photoshoot_id: Photoshoot's unique identifier

        Returns:
            Photoshoot if found, None otherwise
        """
        result = await self.session.execute(
            select(Photoshoot)
            .where(Photoshoot.id == photoshoot_id)  # type: ignore[arg-type]
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def find_linked(self, task: GenerationTask) -> list[Photoshoot]:
        """Retrieve every photoshoot linked to a task.

        A photoshoot is linked when:
        - task_id equals the task id, or
        - task_id is unset and (batch_id, batch_index) matches the task slot, or
        - task_id is unset and (variation_group_id, variation_index) matches the
          task slot (the variation group id is the batch id)

        Rows already linked to another task through task_id are never matched
        by the legacy schemes.

        Args:
            task: Task whose photoshoots to find

        Returns:
            Linked photoshoots ordered by creation time
        """
        legacy_match = or_(
            and_(
                Photoshoot.batch_id == task.batch_id,  # type: ignore[arg-type]
                Photoshoot.batch_index == task.batch_index,  # type: ignore[arg-type]
            ),
            and_(
                Photoshoot.variation_group_id == task.batch_id,  # type: ignore[arg-type]
                Photoshoot.variation_index == task.batch_index,  # type: ignore[arg-type]
            ),
        )
        result = await self.session.execute(
            select(Photoshoot)
            .where(
                or_(
                    Photoshoot.task_id == task.id,  # type: ignore[arg-type]
                    and_(Photoshoot.task_id.is_(None), legacy_match),  # type: ignore[union-attr]
                )
            )
            .order_by(Photoshoot.created_at.asc())  # type: ignore[attr-defined]
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def get_by_batch(self, batch_id: UUID) -> list[Photoshoot]:
        """Retrieve photoshoots of a batch under either legacy scheme."""
        result = await self.session.execute(
            select(Photoshoot)
            .where(
                or_(
                    Photoshoot.batch_id == batch_id,  # type: ignore[arg-type]
                    Photoshoot.variation_group_id == batch_id,  # type: ignore[arg-type]
                )
            )
            .order_by(Photoshoot.created_at.asc())  # type: ignore[attr-defined]
        )
        return list(result.scalars().all())

    async def get_unlinked(self, limit: int = 500) -> list[Photoshoot]:
        """Retrieve legacy photoshoots that have no task_id yet.

        Only rows carrying at least one legacy slot are returned; rows with no
        linkage information at all cannot be resolved.

        Args:
            limit: Maximum number of rows to return

        Returns:
            Unlinked photoshoots ordered by creation time (oldest first)
        """
        result = await self.session.execute(
            select(Photoshoot)
            .where(Photoshoot.task_id.is_(None))  # type: ignore[union-attr]
            .where(
                or_(
                    Photoshoot.batch_id.is_not(None),  # type: ignore[union-attr]
                    Photoshoot.variation_group_id.is_not(None),  # type: ignore[union-attr]
                )
            )
            .order_by(Photoshoot.created_at.asc())  # type: ignore[attr-defined]
            .limit(limit)
        )
        return list(result.scalars().all())
