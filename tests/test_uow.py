"""Unit of Work pattern tests.

Tests focus on transaction management:
- Successful commits persist changes
- Exceptions trigger rollback
- Multiple repository operations are atomic
"""

from datetime import timedelta
from uuid import uuid4

import pytest
from sqlalchemy import DateTime

from adshoot.core.timezone import utcnow
from adshoot.models.credit_ledger import CreditLedgerEntry
from adshoot.models.generation_task import GenerationTask, TaskStatus
from adshoot.models.photoshoot import Photoshoot
from adshoot.repositories import (
    CreditLedgerRepository,
    GenerationTaskRepository,
    PhotoshootRepository,
)
from adshoot.services.synchronization import ResultSynchronizer


def make_task(batch_id=None, batch_index=0, user_id=None) -> GenerationTask:
    return GenerationTask(
        batch_id=batch_id or uuid4(),
        batch_index=batch_index,
        total_in_batch=1,
        user_id=user_id or uuid4(),
        prompt="studio shot of a leather wallet",
    )


@pytest.mark.asyncio
async def test_uow_commits_on_successful_exit(uow_factory):
    """Changes made within the context persist after the context exits."""
    task = make_task()

    async with await uow_factory() as uow:
        await uow.tasks.add_batch([task])

    async with await uow_factory() as uow:
        found = await uow.tasks.get_by_id(task.id)
        assert found is not None
        assert found.status == TaskStatus.PENDING


@pytest.mark.asyncio
async def test_uow_rollback_on_exception(uow_factory):
    """If an exception is raised within the context:
    1. Changes are rolled back
    2. The exception propagates (not swallowed)
    """
    task = make_task()

    with pytest.raises(ValueError, match="Simulated error"):
        async with await uow_factory() as uow:
            await uow.tasks.add_batch([task])
            raise ValueError("Simulated error")

    async with await uow_factory() as uow:
        assert await uow.tasks.get_by_id(task.id) is None


@pytest.mark.asyncio
async def test_uow_provides_all_repositories(uow_factory):
    async with await uow_factory() as uow:
        assert isinstance(uow.tasks, GenerationTaskRepository)
        assert isinstance(uow.photoshoots, PhotoshootRepository)
        assert isinstance(uow.credits, CreditLedgerRepository)
        assert isinstance(uow.synchronizer, ResultSynchronizer)
        assert uow.tasks.synchronizer is uow.synchronizer


@pytest.mark.asyncio
async def test_uow_atomic_multi_repository_operation(uow_factory):
    """Tasks, photoshoots and the credit deduction roll back together."""
    user_id = uuid4()
    task = make_task(user_id=user_id)

    with pytest.raises(RuntimeError):
        async with await uow_factory() as uow:
            await uow.tasks.add_batch([task])
            await uow.photoshoots.add(
                Photoshoot(task_id=task.id, user_id=user_id, prompt=task.prompt)
            )
            assert await uow.credits.deduct(user_id, 1)
            raise RuntimeError("abort")

    async with await uow_factory() as uow:
        assert await uow.tasks.get_by_id(task.id) is None
        assert await uow.photoshoots.find_linked(task) == []
        # Ledger entry creation was rolled back too; first access starts fresh
        assert await uow.credits.get_balance(user_id) == 10


@pytest.mark.parametrize("model", [GenerationTask, Photoshoot, CreditLedgerEntry])
def test_timestamp_columns_store_naive_utc(model):
    """Timestamp columns are plain DateTime so naive utcnow() values bind."""
    for name in ("created_at", "updated_at"):
        column_type = model.__table__.c[name].type
        assert type(column_type) is DateTime
        assert column_type.timezone is False


@pytest.mark.asyncio
async def test_timestamps_round_trip_as_naive_utc(uow_factory):
    task = make_task()

    async with await uow_factory() as uow:
        await uow.tasks.add_batch([task])
        assert await uow.credits.deduct(task.user_id, 1)

    async with await uow_factory() as uow:
        await uow.tasks.mark_processing(await uow.tasks.get_by_id(task.id))

    async with await uow_factory() as uow:
        stored = await uow.tasks.get_by_id(task.id)
        entry = await uow.credits.get_by_user(task.user_id)

    assert stored.status == TaskStatus.PROCESSING
    assert stored.created_at.tzinfo is None
    assert stored.updated_at.tzinfo is None
    assert entry.updated_at.tzinfo is None
    assert utcnow() - stored.updated_at < timedelta(minutes=1)
