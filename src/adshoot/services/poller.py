"""Client-side batch poller.

Polls batch progress at a fixed interval until every task is terminal or a
wall-clock timeout passes. Giving up only stops watching; the batch keeps
running on the server.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable
from uuid import UUID

import httpx
import structlog

from adshoot.services.progress import BatchProgress

logger = structlog.get_logger(__name__)

ProgressFetcher = Callable[[UUID], Awaitable[BatchProgress]]


@dataclass
class PollResult:
    progress: BatchProgress | None  # last successfully fetched progress
    timed_out: bool
    polls: int


class HttpProgressFetcher:
    """Fetches batch progress from the HTTP API."""

    def __init__(self, base_url: str, user_id: UUID | str, client: httpx.AsyncClient | None = None):
        """Initialize fetcher.

        Args:
            base_url: API root (e.g. http://localhost:8000)
            user_id: Sent as X-User-Id
            client: Optional shared client (tests pass one bound to the ASGI app)
        """
        self.base_url = base_url.rstrip("/")
        self.headers = {"X-User-Id": str(user_id)}
        self.client = client

    async def __call__(self, batch_id: UUID) -> BatchProgress:
        url = f"{self.base_url}/api/batches/{batch_id}"
        if self.client is not None:
            response = await self.client.get(url, headers=self.headers)
        else:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.get(url, headers=self.headers)
        response.raise_for_status()
        return BatchProgress.from_dict(response.json())


class BatchPoller:
    """Waits for a batch to finish by polling its progress."""

    def __init__(
        self,
        fetch_progress: ProgressFetcher,
        interval_seconds: float = 3.0,
        timeout_seconds: float = 600.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.fetch_progress = fetch_progress
        self.interval_seconds = interval_seconds
        self.timeout_seconds = timeout_seconds
        self._sleep = sleep
        self._clock = clock

    async def wait_for_batch(
        self,
        batch_id: UUID,
        on_progress: Callable[[BatchProgress], None] | None = None,
    ) -> PollResult:
        """Poll until the batch is complete or the timeout elapses.

        Fetch errors are logged and polling continues.

        Args:
            batch_id: Batch to watch
            on_progress: Called with every successfully fetched progress

        Returns:
            PollResult with the last progress seen
        """
        deadline = self._clock() + self.timeout_seconds
        progress: BatchProgress | None = None
        polls = 0

        while True:
            polls += 1
            try:
                progress = await self.fetch_progress(batch_id)
            except (httpx.HTTPError, ValueError, KeyError) as e:
                logger.warning(
                    "poller.fetch_failed",
                    batch_id=str(batch_id),
                    poll=polls,
                    error=str(e),
                    error_type=type(e).__name__,
                )
            else:
                if on_progress is not None:
                    on_progress(progress)
                if progress.is_complete:
                    logger.info(
                        "poller.batch_complete",
                        batch_id=str(batch_id),
                        completed=progress.completed,
                        failed=progress.failed,
                        polls=polls,
                    )
                    return PollResult(progress=progress, timed_out=False, polls=polls)

            if self._clock() + self.interval_seconds > deadline:
                logger.info("poller.timed_out", batch_id=str(batch_id), polls=polls)
                return PollResult(progress=progress, timed_out=True, polls=polls)

            await self._sleep(self.interval_seconds)
