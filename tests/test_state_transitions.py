"""State transition tests for GenerationTask.

Tests focus on validating the task lifecycle state machine:
- Valid transitions between states
- Terminal states are never left, even by a writer holding a stale copy
- Failed state is reachable from any non-terminal state
"""

from uuid import uuid4

import pytest

from adshoot.models.generation_task import GenerationTask, InvalidStateTransition, TaskStatus


def make_task(**overrides) -> GenerationTask:
    values = dict(
        batch_id=uuid4(),
        batch_index=0,
        total_in_batch=1,
        user_id=uuid4(),
        prompt="red sneaker on white background",
    )
    values.update(overrides)
    return GenerationTask(**values)


@pytest.mark.parametrize(
    ("source", "target"),
    [
        (TaskStatus.PENDING, TaskStatus.PROCESSING),
        (TaskStatus.PENDING, TaskStatus.COMPLETED),
        (TaskStatus.PENDING, TaskStatus.FAILED),
        (TaskStatus.PROCESSING, TaskStatus.COMPLETED),
        (TaskStatus.PROCESSING, TaskStatus.FAILED),
    ],
)
def test_allowed_transitions(source, target):
    make_task(status=source).check_transition(target)


@pytest.mark.parametrize("source", [TaskStatus.COMPLETED, TaskStatus.FAILED])
@pytest.mark.parametrize("target", list(TaskStatus))
def test_terminal_states_are_final(source, target):
    task = make_task(status=source)

    with pytest.raises(InvalidStateTransition, match="terminal state"):
        task.check_transition(target)


def test_processing_cannot_be_claimed_again():
    task = make_task(status=TaskStatus.PROCESSING)

    with pytest.raises(InvalidStateTransition, match="Cannot mark processing from processing"):
        task.check_transition(TaskStatus.PROCESSING)


def test_is_terminal():
    assert TaskStatus.COMPLETED.is_terminal
    assert TaskStatus.FAILED.is_terminal
    assert not TaskStatus.PENDING.is_terminal
    assert not TaskStatus.PROCESSING.is_terminal


@pytest.mark.asyncio
async def test_repository_happy_path(uow_factory):
    """pending → processing → completed through the guarded repository updates."""
    task = make_task()
    async with await uow_factory() as uow:
        await uow.tasks.add_batch([task])

    async with await uow_factory() as uow:
        task = await uow.tasks.get_by_id(task.id)
        await uow.tasks.mark_processing(task)
        assert task.status == TaskStatus.PROCESSING

    async with await uow_factory() as uow:
        task = await uow.tasks.get_by_id(task.id)
        await uow.tasks.mark_completed(task, "https://cdn.test/u/generated/t.png")

    async with await uow_factory() as uow:
        stored = await uow.tasks.get_by_id(task.id)
        assert stored.status == TaskStatus.COMPLETED
        assert stored.result_image_url == "https://cdn.test/u/generated/t.png"
        assert stored.error_message is None
        assert stored.updated_at >= stored.created_at


@pytest.mark.asyncio
async def test_stale_writer_cannot_fail_completed_task(uow_factory):
    """A late failure from a duplicated invocation leaves the completed task intact.

    The writer holds a copy loaded while the task was still processing; the
    conditional UPDATE matches no row and the transition is rejected.
    """
    task = make_task(status=TaskStatus.PROCESSING)
    async with await uow_factory() as uow:
        await uow.tasks.add_batch([task])

    async with await uow_factory() as uow:
        stale = await uow.tasks.get_by_id(task.id)
    assert stale.status == TaskStatus.PROCESSING

    async with await uow_factory() as uow:
        current = await uow.tasks.get_by_id(task.id)
        await uow.tasks.mark_completed(current, "https://cdn.test/done.png")

    with pytest.raises(InvalidStateTransition):
        async with await uow_factory() as uow:
            uow.session.add(stale)
            await uow.tasks.mark_failed(stale, "late failure")

    async with await uow_factory() as uow:
        stored = await uow.tasks.get_by_id(task.id)
        assert stored.status == TaskStatus.COMPLETED
        assert stored.result_image_url == "https://cdn.test/done.png"
        assert stored.error_message is None


@pytest.mark.asyncio
async def test_second_claim_is_rejected(uow_factory):
    task = make_task()
    async with await uow_factory() as uow:
        await uow.tasks.add_batch([task])

    async with await uow_factory() as uow:
        first = await uow.tasks.get_by_id(task.id)
    async with await uow_factory() as uow:
        second = await uow.tasks.get_by_id(task.id)

    async with await uow_factory() as uow:
        uow.session.add(first)
        await uow.tasks.mark_processing(first)

    with pytest.raises(InvalidStateTransition):
        async with await uow_factory() as uow:
            uow.session.add(second)
            await uow.tasks.mark_processing(second)


@pytest.mark.asyncio
async def test_mark_failed_truncates_and_defaults_message(uow_factory):
    long_task = make_task(batch_index=0)
    empty_task = make_task(batch_id=long_task.batch_id, batch_index=1)
    async with await uow_factory() as uow:
        await uow.tasks.add_batch([long_task, empty_task])

    async with await uow_factory() as uow:
        await uow.tasks.mark_failed(await uow.tasks.get_by_id(long_task.id), "x" * 5000)
        await uow.tasks.mark_failed(await uow.tasks.get_by_id(empty_task.id), "")

    async with await uow_factory() as uow:
        assert len((await uow.tasks.get_by_id(long_task.id)).error_message) == 1000
        assert (await uow.tasks.get_by_id(empty_task.id)).error_message == "Unknown error"


@pytest.mark.asyncio
async def test_mark_completed_requires_url(uow_factory):
    task = make_task()
    async with await uow_factory() as uow:
        await uow.tasks.add_batch([task])

    with pytest.raises(ValueError, match="result_image_url"):
        async with await uow_factory() as uow:
            await uow.tasks.mark_completed(await uow.tasks.get_by_id(task.id), "")
