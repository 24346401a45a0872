"""Retry with exponential backoff for transient request failures."""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

import httpx

from services.data_access.app.core.errors import ApiRequestError
from shared.utils.logging import get_logger
from shared.utils.metrics import RETRY_COUNT

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """Retry/backoff configuration."""

    max_retries: int = 3
    base_delay: float = 1.0  # Seconds, doubled per retry
    max_delay: float = 10.0

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number `attempt` (1-based)."""
        return min((2**attempt) * self.base_delay, self.max_delay)


def is_transient(error: BaseException) -> bool:
    """Check whether a failure is worth retrying.

    Transient means no response was received, or the server answered 5xx.
    Every 4xx is terminal.
    """
    if isinstance(error, ApiRequestError):
        return error.transient
    if isinstance(error, httpx.HTTPStatusError):
        return 500 <= error.response.status_code < 600
    return isinstance(error, httpx.TransportError)


class RetryExecutor:
    """Runs an async call, retrying transient failures with backoff.

    The attempt counter is local to each run() call.
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.policy = policy or RetryPolicy()
        self._sleep = sleep

    async def run(
        self,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        operation: str = "request",
        **kwargs: Any,
    ) -> T:
        """Execute func, retrying on transient failures.

        Args:
            func: Async function to call
            *args: Positional arguments
            operation: Label for logs and metrics
            **kwargs: Keyword arguments

        Returns:
            Function result

        Raises:
            Exception: The last failure, or the first terminal one
        """
        attempt = 0
        while True:
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                if not is_transient(e) or attempt >= self.policy.max_retries:
                    if attempt:
                        logger.warning(
                            "retries_exhausted" if is_transient(e) else "retry_aborted",
                            operation=operation,
                            attempts=attempt + 1,
                            error=str(e),
                        )
                    raise
                attempt += 1
                delay = self.policy.delay_for(attempt)
                logger.info(
                    "retrying_request",
                    operation=operation,
                    attempt=attempt,
                    delay=delay,
                    error=str(e),
                )
                RETRY_COUNT.labels(operation=operation).inc()
                await self._sleep(delay)
