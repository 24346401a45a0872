"""Report endpoints, including generation polling and downloads."""

from datetime import date, datetime
from typing import Any, Callable

from services.data_access.app.cache.manager import CacheManager
from services.data_access.app.core.errors import ValidationError
from services.data_access.app.core.normalizer import NormalizedResponse
from services.data_access.app.endpoints import (
    REPORT_DETAIL,
    REPORT_DOWNLOAD,
    REPORT_GENERATE,
    REPORT_KINDS,
    REPORT_REGENERATE,
    REPORT_STATUS,
    REPORTS,
    generate_cache_key,
    get_cache_ttl,
)
from services.data_access.app.http.client import ApiClient
from services.data_access.app.resources.base import ResourceAPI
from services.data_access.app.state.polling import PollingCoordinator
from services.data_access.app.state.request import ApiRequest, PaginatedApiRequest
from shared.schemas.api_responses import BlobPayload
from shared.utils.logging import get_logger

logger = get_logger(__name__)


def _parse_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
        except ValueError:
            return None
    return None


def validate_report_request(kind: str, payload: dict[str, Any]) -> None:
    """Reject report requests the server would refuse.

    Raises:
        ValidationError: Keyed by the offending field
    """
    errors: dict[str, str] = {}
    if kind not in REPORT_KINDS:
        errors["kind"] = f"Unknown report type '{kind}'"

    raw_start = payload.get("startDate", payload.get("start_date"))
    raw_end = payload.get("endDate", payload.get("end_date"))
    start, end = _parse_date(raw_start), _parse_date(raw_end)
    if raw_start and start is None:
        errors["startDate"] = "Invalid date"
    if raw_end and end is None:
        errors["endDate"] = "Invalid date"
    if start and end and start > end:
        errors["endDate"] = "End date must be on or after start date"

    if errors:
        raise ValidationError(errors)


class ReportsAPI(ResourceAPI):
    """Report listing, generation, status and download."""

    def __init__(self, client: ApiClient, cache: CacheManager | None = None):
        super().__init__(client)
        self.cache = cache

    async def list(self, params: dict[str, Any] | None = None) -> NormalizedResponse:
        """List reports; the result carries the payload and its pagination."""
        response = await self.client.get(REPORTS, params=params)
        result = self._normalize(response)
        result.payload = self.client.transformer.to_client(result.payload)
        return result

    async def get(self, report_id: str) -> dict[str, Any]:
        response = await self.client.get(REPORT_DETAIL.format(report_id=report_id))
        return self._unwrap(response)

    async def status(self, report_id: str) -> dict[str, Any]:
        response = await self.client.get(REPORT_STATUS.format(report_id=report_id))
        return self._unwrap(response)

    async def generate(self, kind: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Request generation of a report.

        Args:
            kind: One of the supported report types
            payload: Report parameters in the client convention

        Returns:
            The created report, usually with status 'generating'

        Raises:
            ValidationError: If the request is invalid before sending
        """
        validate_report_request(kind, payload)
        response = await self.client.post(REPORT_GENERATE.format(kind=kind), json=payload)
        report = self._unwrap(response)
        self._invalidate_lists()
        logger.info("report_generation_requested", kind=kind)
        return report

    async def regenerate(self, report_id: str) -> dict[str, Any]:
        response = await self.client.post(REPORT_REGENERATE.format(report_id=report_id))
        self._invalidate_lists()
        return self._unwrap(response)

    async def delete(self, report_id: str) -> None:
        await self.client.delete(REPORT_DETAIL.format(report_id=report_id))
        self._invalidate_lists()

    async def download(self, report_id: str) -> BlobPayload:
        """Download a generated report file."""
        return await self.client.download(REPORT_DOWNLOAD.format(report_id=report_id))

    def _invalidate_lists(self) -> None:
        if self.cache is not None:
            self.cache.invalidate_prefix(generate_cache_key(REPORTS))

    def list_request(self, params: dict[str, Any] | None = None, **kwargs: Any) -> PaginatedApiRequest:
        """Build a paginated request over the report list."""
        params = dict(params or {})

        async def fetch(page: int) -> Any:
            return await self.client.get(REPORTS, params={**params, "page": page})

        return PaginatedApiRequest(
            fetch,
            cache=self.cache,
            cache_key=generate_cache_key(REPORTS, params),
            cache_ttl=get_cache_ttl(REPORTS) if self.cache is not None else 0.0,
            transformer=self.client.transformer,
            **kwargs,
        )

    def report_request(self, report_id: str, **kwargs: Any) -> ApiRequest:
        """Build a request for a single report."""
        path = REPORT_DETAIL.format(report_id=report_id)

        async def fetch() -> Any:
            return await self.client.get(path)

        kwargs.setdefault("cache_key", generate_cache_key(path))
        return ApiRequest(fetch, transformer=self.client.transformer, **kwargs)

    def report_polling(
        self,
        report_id: str,
        on_complete: Callable[[Any], Any] | None = None,
        on_error: Callable[[str], Any] | None = None,
        interval: float | None = None,
        max_attempts: int | None = None,
    ) -> PollingCoordinator:
        """Build a coordinator polling a report until generation ends."""
        settings = self.client.settings
        return PollingCoordinator(
            self.report_request(report_id),
            resource_id=report_id,
            interval=settings.poll_interval if interval is None else interval,
            max_attempts=settings.poll_max_attempts if max_attempts is None else max_attempts,
            on_complete=on_complete,
            on_error=on_error,
        )
