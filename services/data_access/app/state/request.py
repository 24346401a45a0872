"""Request state machine exposing data/loading/error for a single API call."""

import asyncio
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Generic, TypeVar

import httpx

from services.data_access.app.cache.manager import CacheManager, CacheStatus
from services.data_access.app.core.errors import extract_error_message
from services.data_access.app.core.normalizer import ResponseKind, decode_body, normalize
from services.data_access.app.core.transformer import FieldTransformer
from shared.schemas.api_responses import PageInfo
from shared.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

MAX_RETRY_DELAY = 10.0

Listener = Callable[["RequestState"], Any]


@dataclass
class RequestState(Generic[T]):
    """Snapshot of a request as seen by a view."""

    data: T | None = None
    loading: bool = False
    error: str | None = None
    field_errors: dict[str, str] = field(default_factory=dict)
    pagination: PageInfo | None = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @property
    def is_success(self) -> bool:
        return self.data is not None and self.error is None


class GenerationCounter:
    """Monotonic per-key counter used to drop superseded results.

    Share one instance between requests that publish under the same key.
    """

    def __init__(self) -> None:
        self._latest: dict[str, int] = {}

    def next(self, key: str) -> int:
        generation = self._latest.get(key, 0) + 1
        self._latest[key] = generation
        return generation

    def latest(self, key: str) -> int:
        return self._latest.get(key, 0)

    def is_latest(self, key: str, generation: int) -> bool:
        return self._latest.get(key, 0) == generation


class ApiRequest(Generic[T]):
    """Drives one API call through loading, success and error states.

    Successful payloads are normalized, transformed to the client naming
    convention and written through the cache. A failure keeps the last good
    data, except on the very first execution where data is None.
    """

    def __init__(
        self,
        fetch: Callable[[], Awaitable[Any]],
        *,
        cache: CacheManager | None = None,
        cache_key: str | None = None,
        cache_ttl: float = 0.0,
        stale_time: float | None = None,
        transformer: FieldTransformer | None = None,
        retry_count: int = 0,
        refresh_interval: float = 0.0,
        on_success: Callable[[Any], Any] | None = None,
        on_error: Callable[[str], Any] | None = None,
        generations: GenerationCounter | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """Initialize request.

        Args:
            fetch: Performs the call; returns an httpx.Response or a decoded body
            cache: Shared cache manager
            cache_key: Key for caching and for superseding in-flight results
            cache_ttl: Seconds a cached result stays servable (0 disables caching)
            stale_time: Seconds a cached result is served without revalidation
            transformer: Rewrites payload keys to the client convention
            retry_count: Re-executions scheduled after a thrown failure
            refresh_interval: Seconds between automatic refreshes (0 disables)
            on_success: Called with the payload after a successful fetch
            on_error: Called with the error message after a failed fetch
            generations: Shared generation counter
            sleep: Async sleep used for timers
        """
        self._fetch = fetch
        self.cache = cache
        self.cache_key = cache_key
        self.cache_ttl = cache_ttl
        self.stale_time = stale_time
        self.transformer = transformer
        self.retry_count = retry_count
        self.refresh_interval = refresh_interval
        self.on_success = on_success
        self.on_error = on_error
        self._generations = generations or GenerationCounter()
        self._sleep = sleep

        self.state: RequestState[T] = RequestState()
        self.retry_attempts = 0
        self._settled = False
        self._listeners: list[Listener] = []
        self._tasks: set[asyncio.Task] = set()
        self._refresh_task: asyncio.Task | None = None

    @property
    def key(self) -> str:
        return self.cache_key or f"request_{id(self)}"

    @property
    def _cache_enabled(self) -> bool:
        return self.cache is not None and self.cache_key is not None and self.cache_ttl > 0

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a state listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self, **changes: Any) -> None:
        self.state = replace(self.state, **changes)
        for listener in list(self._listeners):
            listener(self.state)

    def _spawn(self, coro: Awaitable[Any]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _call(self) -> Any:
        return await self._fetch()

    def _shape(self, payload: Any, kind: ResponseKind) -> Any:
        return payload

    async def execute(self) -> RequestState[T]:
        """Run the request, serving from cache when possible.

        Returns:
            The state after this execution settles (or after a cached publish)
        """
        if self._cache_enabled:
            lookup = self.cache.lookup(self.cache_key)
            if lookup.status == CacheStatus.FRESH:
                logger.debug("request_cache_fresh", key=self.cache_key)
                self._publish_cached(lookup.entry.data)
                return self.state
            if lookup.status == CacheStatus.STALE:
                logger.debug("request_cache_stale", key=self.cache_key)
                self._publish_cached(lookup.entry.data)
                self._spawn(self._run())
                return self.state

        await self._run()
        return self.state

    async def retry(self) -> RequestState[T]:
        """Reset the retry counter and execute again."""
        self.retry_attempts = 0
        return await self.execute()

    async def refresh(self) -> RequestState[T]:
        """Invalidate the cached result and execute again."""
        if self.cache is not None and self.cache_key is not None:
            self.cache.invalidate(self.cache_key)
        return await self.execute()

    def reset(self) -> None:
        """Return to the initial state, dropping timers and in-flight results."""
        self._cancel_tasks()
        self._generations.next(self.key)
        self.retry_attempts = 0
        self._settled = False
        self._publish(data=None, loading=False, error=None, field_errors={}, pagination=None)

    async def close(self) -> None:
        """Tear down: cancel every owned task and wait for them to finish."""
        tasks = self._cancel_tasks()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._listeners.clear()

    async def wait_for_background(self) -> None:
        """Wait for background revalidation and scheduled retries."""
        while True:
            pending = [
                task for task in self._tasks if task is not self._refresh_task and not task.done()
            ]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def _cancel_tasks(self) -> list[asyncio.Task]:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        self._tasks.clear()
        self._refresh_task = None
        return tasks

    def _publish_cached(self, record: Any) -> None:
        payload = record.get("payload") if isinstance(record, dict) else record
        pagination = None
        if isinstance(record, dict) and record.get("pagination"):
            pagination = PageInfo.model_validate(record["pagination"])
        self._settled = True
        self._publish(data=payload, pagination=pagination, error=None, field_errors={})
        self._start_auto_refresh()

    async def _run(self) -> None:
        key = self.key
        generation = self._generations.next(key)
        self._publish(loading=True, error=None, field_errors={})

        try:
            body = await self._call()
            if isinstance(body, httpx.Response):
                body = decode_body(body)
        except Exception as e:
            self._fail(generation, extract_error_message(e), getattr(e, "field_errors", None), thrown=True)
            return

        result = normalize(body)
        if result.error is not None:
            self._fail(generation, result.error, result.field_errors, thrown=False)
            return

        if not self._generations.is_latest(key, generation):
            logger.debug("request_result_superseded", key=key, generation=generation)
            return

        payload = result.payload
        if self.transformer is not None and result.kind != ResponseKind.BLOB:
            payload = self.transformer.to_client(payload)
        payload = self._shape(payload, result.kind)

        if self._cache_enabled and result.kind != ResponseKind.BLOB:
            self.cache.set(
                self.cache_key,
                {
                    "payload": payload,
                    "pagination": result.pagination.model_dump() if result.pagination else None,
                },
                ttl=self.cache_ttl,
                stale_time=self.stale_time,
            )

        self._settled = True
        self.retry_attempts = 0
        self._publish(
            data=payload,
            pagination=result.pagination,
            loading=False,
            error=None,
            field_errors={},
        )
        if self.on_success is not None:
            self.on_success(payload)
        self._start_auto_refresh()

    def _fail(
        self,
        generation: int,
        message: str,
        field_errors: dict[str, str] | None,
        thrown: bool,
    ) -> None:
        if not self._generations.is_latest(self.key, generation):
            logger.debug("request_error_superseded", key=self.key, generation=generation)
            return

        logger.warning("request_failed", key=self.key, error=message)
        data = self.state.data if self._settled else None
        self._settled = True
        self._publish(
            data=data,
            loading=False,
            error=message,
            field_errors=dict(field_errors or {}),
        )
        if self.on_error is not None:
            self.on_error(message)

        if thrown and self.retry_attempts < self.retry_count:
            self.retry_attempts += 1
            delay = min(2**self.retry_attempts, MAX_RETRY_DELAY)
            logger.info("request_retry_scheduled", key=self.key, attempt=self.retry_attempts, delay=delay)
            self._spawn(self._delayed_execute(delay))

    async def _delayed_execute(self, delay: float) -> None:
        await self._sleep(delay)
        await self.execute()

    def _start_auto_refresh(self) -> None:
        if self.refresh_interval <= 0 or self.state.data is None:
            return
        if self._refresh_task is not None and not self._refresh_task.done():
            return
        self._refresh_task = self._spawn(self._auto_refresh_loop())

    async def _auto_refresh_loop(self) -> None:
        while True:
            await self._sleep(self.refresh_interval)
            logger.debug("request_auto_refresh", key=self.key)
            await self.refresh()


class PaginatedApiRequest(ApiRequest[list]):
    """List request that also publishes page metadata.

    The fetch callable receives the page number to load.
    """

    def __init__(self, fetch: Callable[[int], Awaitable[Any]], *, page: int = 1, **kwargs: Any):
        super().__init__(fetch, **kwargs)
        self.page = page
        self._base_key = self.cache_key

    @property
    def key(self) -> str:
        return self._base_key or f"request_{id(self)}"

    async def _call(self) -> Any:
        return await self._fetch(self.page)

    def _shape(self, payload: Any, kind: ResponseKind) -> Any:
        # list endpoints that answer with a single entity
        if payload is None:
            return []
        if isinstance(payload, (list, tuple)):
            return list(payload)
        return [payload]

    def _page_cache_key(self) -> str | None:
        return f"{self._base_key}_page_{self.page}" if self._base_key else None

    async def execute(self) -> RequestState[list]:
        self.cache_key = self._page_cache_key()
        return await super().execute()

    async def refresh(self) -> RequestState[list]:
        self.cache_key = self._page_cache_key()
        return await super().refresh()

    async def go_to_page(self, page: int) -> RequestState[list]:
        """Load a specific page."""
        self.page = max(page, 1)
        return await self.execute()

    async def next_page(self) -> RequestState[list]:
        """Load the next page if there is one."""
        pagination = self.state.pagination
        if pagination is None or not pagination.has_next_page:
            return self.state
        return await self.go_to_page(self.page + 1)

    async def prev_page(self) -> RequestState[list]:
        """Load the previous page if there is one."""
        if self.page <= 1:
            return self.state
        return await self.go_to_page(self.page - 1)
