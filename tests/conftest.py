"""pytest fixtures for AdShoot backend tests.

Provides:
- utc_timezone: Autouse fixture enforcing UTC timezone
- postgres_url: Session-scoped testcontainer PostgreSQL instance (opt-in with
  ADSHOOT_TEST_POSTGRES=1); SQLite in a temporary directory otherwise
- engine / session / uow_factory: Function-scoped database access with empty tables
- settings, image_generator, asset_store, task_queue, orchestrator: Batch
  pipeline wired to in-memory fakes
"""

import asyncio
import os
import subprocess
import sys
from pathlib import Path
from typing import AsyncGenerator

os.environ.setdefault("APP_ENV", "test")

import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import SQLModel

import adshoot.models  # noqa: F401
from adshoot.core.config import Settings
from adshoot.core.database import create_engine
from adshoot.services.exceptions import StorageValidationError
from adshoot.services.image_generation.base import GeneratedImage, GenerationRequest
from adshoot.services.orchestrator import BatchOrchestrator
from adshoot.uow import create_uow_factory
from adshoot.workers.task_queue import InMemoryTaskQueue

BACKEND_ROOT = Path(__file__).resolve().parent.parent
USE_POSTGRES = os.environ.get("ADSHOOT_TEST_POSTGRES") == "1"

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-image-data"


@pytest.fixture(scope="session", autouse=True)
def utc_timezone():
    """Enforce UTC timezone for all tests.

    Autouse fixture ensures TZ=UTC is set before any test runs.
    This prevents timezone-dependent behavior and ensures reproducible tests.
    """
    os.environ["TZ"] = "UTC"
    yield


@pytest.fixture(scope="session")
def postgres_url():
    """Provide session-scoped PostgreSQL container with migrations applied.

    Only started when ADSHOOT_TEST_POSTGRES=1; yields None otherwise.
    Migrations are applied using subprocess to avoid asyncio event loop conflicts.
    """
    if not USE_POSTGRES:
        yield None
        return

    from testcontainers.postgres import PostgresContainer

    with PostgresContainer(
        image="postgres:17",
        username="test",
        password="test",
        dbname="test_adshoot",
    ) as container:
        db_url = container.get_connection_url(driver="psycopg")

        env = os.environ.copy()
        env["DATABASE_URL"] = db_url
        subprocess.run(
            [sys.executable, "-m", "alembic", "upgrade", "head"],
            check=True,
            capture_output=True,
            text=True,
            env=env,
            cwd=BACKEND_ROOT,
        )

        yield db_url


@pytest_asyncio.fixture(scope="function")
async def engine(postgres_url, tmp_path):
    """Provide a function-scoped engine over empty tables."""
    if postgres_url:
        engine = create_engine(postgres_url, pool_size=5)
        yield engine

        # Order matters: delete from dependent tables first
        async with engine.begin() as conn:
            await conn.execute(text("DELETE FROM photoshoots"))
            await conn.execute(text("DELETE FROM generation_tasks"))
            await conn.execute(text("DELETE FROM credit_ledger"))
        await engine.dispose()
        return

    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'adshoot-test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Provide a raw session; uncommitted changes are rolled back afterwards."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def uow_factory(session_factory):
    """Provide function-scoped UnitOfWork factory (10 starting credits)."""
    return create_uow_factory(session_factory, starting_credits=10)


@pytest.fixture
def settings() -> Settings:
    """Settings for the pipeline under test: no retry delay, no fallback image."""
    return Settings(
        _env_file=None,  # type: ignore[call-arg]
        APP_ENV="test",
        DATABASE_URL="sqlite+aiosqlite:///:memory:",
        STARTING_CREDITS=10,
        MAX_VARIANTS=5,
        GENERATION_TIMEOUT_SECONDS=240,
        FALLBACK_IMAGE_URL="",
        STORAGE_BACKEND="local",
        STORAGE_RETRY_ATTEMPTS=3,
        STORAGE_RETRY_BASE_DELAY=0,
        GENERATION_RETRY_ATTEMPTS=2,
        GENERATION_RETRY_BASE_DELAY=0,
    )


class FakeImageGenerator:
    """ImageGenerator returning canned PNG bytes.

    `behaviors` is consumed one entry per call: None succeeds, an exception
    instance is raised, "hang" sleeps far beyond any test timeout. Calls past
    the end of the list succeed. `before_generate` is awaited on every call.
    """

    name = "fake"

    def __init__(self):
        self.behaviors: list = []
        self.requests: list[GenerationRequest] = []
        self.before_generate = None

    async def generate(self, request: GenerationRequest) -> list[GeneratedImage]:
        call_index = len(self.requests)
        self.requests.append(request)

        if self.before_generate is not None:
            await self.before_generate(request)

        behavior = self.behaviors[call_index] if call_index < len(self.behaviors) else None
        if behavior == "hang":
            await asyncio.sleep(30)
        elif isinstance(behavior, Exception):
            raise behavior

        return [
            GeneratedImage(
                data=PNG_BYTES + str(call_index).encode(),
                content_type="image/png",
                provider=self.name,
                model="fake-1",
            )
        ]


class FakeAssetStore:
    """In-memory AssetStore.

    `upload_failures` holds exceptions raised by successive upload calls
    before uploads start succeeding. `on_upload` is awaited before each
    successful upload.
    """

    base_url = "https://cdn.test"

    def __init__(self):
        self.objects: dict[str, bytes] = {}
        self.upload_failures: list[Exception] = []
        self.upload_attempts = 0
        self.on_upload = None

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/{path}"

    async def upload(self, path: str, data: bytes, content_type: str = "image/png") -> str:
        self.upload_attempts += 1
        if self.upload_failures:
            raise self.upload_failures.pop(0)
        if self.on_upload is not None:
            await self.on_upload(path)
        self.objects[path] = data
        return self.public_url(path)

    async def download(self, url: str) -> bytes:
        prefix = f"{self.base_url}/"
        path = url[len(prefix):] if url.startswith(prefix) else None
        if path is None or path not in self.objects:
            raise StorageValidationError(f"Object not found: {url}")
        return self.objects[path]


@pytest.fixture
def image_generator() -> FakeImageGenerator:
    return FakeImageGenerator()


@pytest.fixture
def asset_store() -> FakeAssetStore:
    return FakeAssetStore()


@pytest.fixture
def task_queue() -> InMemoryTaskQueue:
    return InMemoryTaskQueue()


@pytest.fixture
def orchestrator(uow_factory, asset_store, image_generator, task_queue, settings):
    """Provide a BatchOrchestrator wired to the fakes and the test database."""
    return BatchOrchestrator(
        uow_factory=uow_factory,
        asset_store=asset_store,
        image_generator=image_generator,
        task_queue=task_queue,
        settings=settings,
    )


@pytest.fixture
def drain(task_queue, orchestrator):
    """Provide a coroutine function processing queued task ids until the queue is empty.

    Chained tasks are enqueued while draining, so a whole batch runs.
    """

    async def _drain() -> list:
        outcomes = []
        while not task_queue.empty():
            task_id = await task_queue.get()
            try:
                outcomes.append(await orchestrator.process_task(task_id))
            finally:
                task_queue.task_done()
        return outcomes

    return _drain
