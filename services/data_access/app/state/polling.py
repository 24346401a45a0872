"""Polling of long-running server jobs until they reach a terminal status."""

import asyncio
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable

from services.data_access.app.core.errors import extract_error_message
from services.data_access.app.state.request import ApiRequest
from shared.utils.logging import get_logger

logger = get_logger(__name__)

FAILURE_MESSAGE = "Report generation failed"
TIMEOUT_MESSAGE = "Report generation timeout"


class PollingStatus(str, Enum):
    """Polling session states."""

    IDLE = "idle"
    POLLING = "polling"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


TERMINAL_STATUSES = frozenset({PollingStatus.COMPLETED, PollingStatus.FAILED, PollingStatus.TIMED_OUT})


class InvalidPollingTransitionError(Exception):
    """Raised when a polling session is moved along an invalid transition."""

    def __init__(self, current: PollingStatus, target: PollingStatus):
        self.current = current
        self.target = target
        super().__init__(f"Invalid polling transition from {current.value} to {target.value}")


@dataclass
class PollingSession:
    """Progress of one polling run."""

    resource_id: str | None
    interval: float
    max_attempts: int
    attempts: int = 0
    status: PollingStatus = PollingStatus.IDLE


class PollingCoordinator:
    """Repeatedly fetches a resource until its status is terminal.

    Valid transitions:
    - idle -> polling (start)
    - polling -> completed | failed | timed_out
    - polling -> idle (stop)
    - any terminal status -> polling (restart)
    """

    VALID_TRANSITIONS: set[tuple[PollingStatus, PollingStatus]] = {
        (PollingStatus.IDLE, PollingStatus.POLLING),
        (PollingStatus.POLLING, PollingStatus.COMPLETED),
        (PollingStatus.POLLING, PollingStatus.FAILED),
        (PollingStatus.POLLING, PollingStatus.TIMED_OUT),
        (PollingStatus.POLLING, PollingStatus.IDLE),
        (PollingStatus.COMPLETED, PollingStatus.POLLING),
        (PollingStatus.FAILED, PollingStatus.POLLING),
        (PollingStatus.TIMED_OUT, PollingStatus.POLLING),
    }

    def __init__(
        self,
        request: ApiRequest,
        resource_id: str | None = None,
        interval: float = 2.0,
        max_attempts: int = 150,
        on_complete: Callable[[Any], Any] | None = None,
        on_error: Callable[[str], Any] | None = None,
        success_statuses: Iterable[str] = ("completed",),
        failure_statuses: Iterable[str] = ("failed", "cancelled"),
        status_field: str = "status",
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """Initialize polling coordinator.

        Args:
            request: Request fetching the resource each cycle
            resource_id: Identifier of the polled resource (for logs)
            interval: Seconds between fetches
            max_attempts: Fetches before giving up
            on_complete: Called once with the resource on success
            on_error: Called once with a message on failure or timeout
            success_statuses: Resource statuses meaning success
            failure_statuses: Resource statuses meaning failure
            status_field: Resource key holding its status
            sleep: Async sleep used between fetches
        """
        self.request = request
        self.session = PollingSession(resource_id=resource_id, interval=interval, max_attempts=max_attempts)
        self.on_complete = on_complete
        self.on_error = on_error
        self.success_statuses = frozenset(s.lower() for s in success_statuses)
        self.failure_statuses = frozenset(s.lower() for s in failure_statuses)
        self.status_field = status_field
        self._sleep = sleep
        self._task: asyncio.Task | None = None

    @property
    def status(self) -> PollingStatus:
        return self.session.status

    @property
    def is_polling(self) -> bool:
        return self.session.status == PollingStatus.POLLING

    @property
    def is_finished(self) -> bool:
        return self.session.status in TERMINAL_STATUSES

    @property
    def progress(self) -> float:
        """Estimated progress percentage; capped at 95 until completion."""
        if self.session.status == PollingStatus.COMPLETED:
            return 100.0
        if self.session.max_attempts <= 0:
            return 0.0
        return min(self.session.attempts / self.session.max_attempts * 100, 95.0)

    def _transition(self, target: PollingStatus) -> None:
        current = self.session.status
        if (current, target) not in self.VALID_TRANSITIONS:
            raise InvalidPollingTransitionError(current, target)
        self.session.status = target
        logger.debug(
            "polling_transition",
            resource_id=self.session.resource_id,
            from_status=current.value,
            to_status=target.value,
        )

    def start(self) -> None:
        """Start polling. Calling start while already polling does nothing."""
        if self.is_polling:
            return
        self._transition(PollingStatus.POLLING)
        self.session.attempts = 0
        self._task = asyncio.ensure_future(self._poll())
        logger.info(
            "polling_started",
            resource_id=self.session.resource_id,
            interval=self.session.interval,
            max_attempts=self.session.max_attempts,
        )

    def stop(self) -> None:
        """Stop polling and cancel the pending timer."""
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
        if self.is_polling:
            self._transition(PollingStatus.IDLE)
            logger.info("polling_stopped", resource_id=self.session.resource_id, attempts=self.session.attempts)

    async def wait(self) -> PollingStatus:
        """Wait for the current polling run to end."""
        task = self._task
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass
        return self.session.status

    def _resource_status(self, resource: Any) -> str | None:
        if isinstance(resource, Mapping):
            value = resource.get(self.status_field)
            if isinstance(value, str):
                return value.lower()
        return None

    def _failure_message(self, resource: Any) -> str:
        if isinstance(resource, Mapping):
            for key in ("errorMessage", "error_message", "error"):
                value = resource.get(key)
                if isinstance(value, str) and value:
                    return value
        return FAILURE_MESSAGE

    def _finish(self, status: PollingStatus) -> None:
        self._transition(status)
        self._task = None
        logger.info(
            "polling_finished",
            resource_id=self.session.resource_id,
            status=status.value,
            attempts=self.session.attempts,
        )

    async def _poll(self) -> None:
        session = self.session
        try:
            while True:
                state = await self.request.refresh()
                session.attempts += 1

                # a failed fetch counts as a cycle; keep polling
                status = self._resource_status(state.data) if not state.is_error else None
                if status in self.success_statuses:
                    self._finish(PollingStatus.COMPLETED)
                    if self.on_complete is not None:
                        self.on_complete(state.data)
                    return
                if status in self.failure_statuses:
                    self._finish(PollingStatus.FAILED)
                    if self.on_error is not None:
                        self.on_error(self._failure_message(state.data))
                    return
                if session.attempts >= session.max_attempts:
                    self._finish(PollingStatus.TIMED_OUT)
                    if self.on_error is not None:
                        self.on_error(TIMEOUT_MESSAGE)
                    return

                await self._sleep(session.interval)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("polling_error", resource_id=session.resource_id, error=str(e))
            if session.status == PollingStatus.POLLING:
                self._finish(PollingStatus.FAILED)
            if self.on_error is not None:
                self.on_error(extract_error_message(e))
