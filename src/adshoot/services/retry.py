"""Bounded retry with exponential backoff for transient service errors."""

from typing import Any, Awaitable, Callable, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from adshoot.services.exceptions import TransientError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def _log_retry(operation: str) -> Callable[[RetryCallState], None]:
    def before_sleep(retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            f"{operation}.retry",
            attempt_number=retry_state.attempt_number,
            retry_in_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
            error=str(exc),
            error_type=type(exc).__name__,
        )

    return before_sleep


async def with_retry(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    attempts: int = 3,
    base_delay: float = 1.0,
    operation: str = "storage",
    **kwargs: Any,
) -> T:
    """Call func, retrying TransientError with exponential backoff.

    Delay before retry n is base_delay * 2^(n-1). PermanentError and any other
    exception propagate immediately; the last TransientError is re-raised once
    attempts are exhausted.

    Args:
        func: Coroutine function to call
        *args: Positional arguments for func
        attempts: Maximum number of calls (including the first)
        base_delay: Delay before the first retry in seconds
        operation: Log event prefix
        **kwargs: Keyword arguments for func

    Returns:
        Result of the first successful call
    """
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=base_delay, min=base_delay),
        retry=retry_if_exception_type(TransientError),
        before_sleep=_log_retry(operation),
        reraise=True,
    ):
        with attempt:
            return await func(*args, **kwargs)
    raise AssertionError("unreachable")
