"""FastAPI application factory."""

# Import timezone enforcement (sets TZ=UTC)
import asyncio
from contextlib import asynccontextmanager
from functools import partial
from pathlib import Path

import structlog
from fastapi import FastAPI, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from sqlalchemy import text

from adshoot.api.routes import batches, credits, photoshoots
from adshoot.core import timezone  # noqa: F401
from adshoot.core.config import Settings, configure_logging
from adshoot.core.database import setup_db_session
from adshoot.core.dependencies import build_asset_store, build_image_generator
from adshoot.services.credits import CreditLedger
from adshoot.services.orchestrator import BatchOrchestrator
from adshoot.uow import create_uow_factory
from adshoot.workers.generation_worker import run_generation_worker
from adshoot.workers.stalled_task_monitor import run_stalled_task_monitor
from adshoot.workers.task_queue import InMemoryTaskQueue

logger = structlog.get_logger()


def create_resilient_worker(worker_factory, worker_name: str, shutdown_event: asyncio.Event):
    """Create a worker with automatic restart on failure.

    Args:
        worker_factory: Zero-argument callable returning the worker coroutine
        worker_name: Human-readable worker name for logging
        shutdown_event: Event to signal graceful shutdown

    Returns:
        Initial task handle (will be auto-recreated on crash)
    """
    RESTART_DELAY = 1  # Fixed 1 second delay between restarts

    def on_worker_done(task: asyncio.Task):
        if shutdown_event.is_set():
            logger.info("worker.shutdown_complete", worker=worker_name)
            return

        if task.cancelled():
            logger.info("worker.cancelled", worker=worker_name)
            return

        exc = task.exception()
        if exc:
            logger.error(
                "worker.crashed",
                worker=worker_name,
                error=str(exc),
                error_type=type(exc).__name__,
                retry_in_seconds=RESTART_DELAY,
                exc_info=exc,
            )
        else:
            # Workers loop forever; returning at all is unexpected
            logger.warning(
                "worker.stopped_unexpectedly",
                worker=worker_name,
                retry_in_seconds=RESTART_DELAY,
            )

        async def restart_worker():
            await asyncio.sleep(RESTART_DELAY)

            if shutdown_event.is_set():
                return

            logger.info("worker.restarting", worker=worker_name)
            new_task = asyncio.create_task(worker_factory())
            new_task.add_done_callback(on_worker_done)

        asyncio.create_task(restart_worker())

    task = asyncio.create_task(worker_factory())
    task.add_done_callback(on_worker_done)
    return task


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager.

    Handles startup and shutdown tasks:
    - Startup: Build database, storage, generator and queue collaborators,
      re-queue batches left pending by a previous run, start workers
    - Shutdown: Stop workers

    Workers automatically restart on failure.
    """
    settings: Settings = app.state.settings

    configure_logging(settings)

    if settings.storage_backend == "local":
        Path(settings.local_storage_dir).mkdir(parents=True, exist_ok=True)

    session_factory = setup_db_session(settings.database_url, settings.db_pool_size)
    uow_factory = create_uow_factory(session_factory, starting_credits=settings.starting_credits)

    task_queue = InMemoryTaskQueue()
    orchestrator = BatchOrchestrator(
        uow_factory=uow_factory,
        asset_store=build_asset_store(settings),
        image_generator=build_image_generator(settings),
        task_queue=task_queue,
        settings=settings,
    )

    # Store in app.state for access in routes
    app.state.session_factory = session_factory
    app.state.uow_factory = uow_factory
    app.state.task_queue = task_queue
    app.state.orchestrator = orchestrator
    app.state.credit_ledger = CreditLedger(uow_factory)

    # Queue contents are in-memory; resume batches interrupted by a restart
    try:
        await orchestrator.requeue_pending_batches()
    except Exception as e:
        logger.error(
            "startup.requeue_failed",
            error=str(e),
            error_type=type(e).__name__,
            message="Pending batches were not re-queued; the stalled task monitor will retry",
        )

    shutdown_event = asyncio.Event()

    generation_worker_task = create_resilient_worker(
        partial(run_generation_worker, task_queue, orchestrator, settings.worker_concurrency),
        "generation",
        shutdown_event,
    )
    monitor_task = create_resilient_worker(
        partial(run_stalled_task_monitor, uow_factory, orchestrator, settings),
        "stalled_task_monitor",
        shutdown_event,
    )

    logger.info("application.startup", db_url=settings.database_url.split("@")[-1])

    yield

    logger.info("application.shutdown")
    shutdown_event.set()

    generation_worker_task.cancel()
    monitor_task.cancel()

    # Wait for cancellation to complete (ignore CancelledError)
    await asyncio.gather(generation_worker_task, monitor_task, return_exceptions=True)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        settings: Application settings (loaded from the environment if omitted)

    Returns:
        Configured FastAPI application instance
    """
    settings = settings or Settings()  # type: ignore[call-arg]

    app = FastAPI(
        title="AdShoot Backend API",
        description="Batch product photoshoot generation",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(batches.router)
    app.include_router(credits.router)
    app.include_router(photoshoots.router)

    if settings.storage_backend == "local":
        # Directory is created at startup
        app.mount(
            "/assets",
            StaticFiles(directory=settings.local_storage_dir, check_dir=False),
            name="assets",
        )

    @app.get("/health")
    async def health_check(response: Response):
        """Health check endpoint with database connectivity test.

        Returns:
            200: {"status": "healthy"} if database connection succeeds
            503: {"status": "unhealthy", "error": {...}} if database connection fails
        """
        try:
            async with app.state.session_factory() as session:
                result = await session.execute(text("SELECT 1"))
                result.scalar()

            logger.debug("health_check.success")
            return {"status": "healthy"}

        except Exception as e:
            logger.error(
                "health_check.failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
            return {
                "status": "unhealthy",
                "error": {
                    "type": type(e).__name__,
                    "message": str(e),
                },
            }

    return app


# Create app instance for uvicorn
app = create_app()
