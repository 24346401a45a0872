"""Sequential batch execution with progress tracking."""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from services.data_access.app.core.errors import extract_error_message
from shared.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class BatchResult:
    """Outcome of a batch run."""

    results: list[Any] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    total_count: int = 0

    @property
    def success_count(self) -> int:
        return self.total_count - len(self.errors)

    @property
    def success(self) -> bool:
        return not self.errors


class BatchRunner:
    """Runs operations one after another, collecting results and errors."""

    def __init__(self, on_progress: Callable[[float], Any] | None = None):
        self.on_progress = on_progress
        self.progress = 0.0
        self.running = False

    async def run(self, operations: list[Callable[[], Awaitable[Any]]]) -> BatchResult:
        """Execute each operation; failures yield None and an error message."""
        batch = BatchResult(total_count=len(operations))
        self.running = True
        self.progress = 0.0
        try:
            for index, operation in enumerate(operations, start=1):
                try:
                    batch.results.append(await operation())
                except Exception as e:
                    message = extract_error_message(e)
                    logger.warning("batch_operation_failed", index=index - 1, error=message)
                    batch.results.append(None)
                    batch.errors.append(message)
                self.progress = index / len(operations) * 100
                if self.on_progress is not None:
                    self.on_progress(self.progress)
        finally:
            self.running = False

        logger.info(
            "batch_completed",
            total=batch.total_count,
            succeeded=batch.success_count,
            failed=len(batch.errors),
        )
        return batch
