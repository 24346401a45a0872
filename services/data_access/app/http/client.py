"""Async HTTP client for the upstream API."""

import time
import uuid
from typing import Any

import httpx

from services.data_access.app.auth.session import SessionManager
from services.data_access.app.config import Settings, get_settings
from services.data_access.app.core.errors import (
    ApiNetworkError,
    ApiRequestError,
    ApiStatusError,
    AuthenticationError,
    extract_body_message,
    extract_field_errors,
)
from services.data_access.app.core.normalizer import decode_body
from services.data_access.app.core.transformer import FieldTransformer, clean_params
from services.data_access.app.endpoints import AUTH_REFRESH, HEALTH
from services.data_access.app.http.retry import RetryExecutor, RetryPolicy
from shared.schemas.api_responses import BlobPayload
from shared.utils.logging import get_logger, get_request_id
from shared.utils.metrics import REQUEST_COUNT, REQUEST_LATENCY

logger = get_logger(__name__)


def _safe_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text or None


class ApiClient:
    """Client for the upstream JSON API.

    Attaches the session's bearer token, rewrites outgoing field names to
    the server convention and retries transient failures. Response bodies
    are returned undecoded; normalization happens in the request layer.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        session: SessionManager | None = None,
        transformer: FieldTransformer | None = None,
        retry: RetryExecutor | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize API client.

        Args:
            settings: Client settings (defaults to environment)
            session: Session whose credential is attached to requests
            transformer: Field-name transformer for outgoing data
            retry: Retry executor for transient failures
            transport: httpx transport override
        """
        self.settings = settings or get_settings()
        self.session = session
        self.transformer = transformer or FieldTransformer(
            client=self.settings.client_convention,
            server=self.settings.server_convention,
            preserve_keys=self.settings.transform_preserve_keys,
        )
        self.retry = retry or RetryExecutor(
            RetryPolicy(
                max_retries=self.settings.max_retries,
                base_delay=self.settings.retry_base_delay,
                max_delay=self.settings.retry_max_delay,
            )
        )
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.settings.base_url,
                timeout=httpx.Timeout(self.settings.request_timeout),
                transport=self._transport,
                follow_redirects=True,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def _build_headers(self, token: str | None, extra: dict[str, str] | None) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.settings.send_request_id:
            headers["X-Request-ID"] = get_request_id() or str(uuid.uuid4())
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if extra:
            headers.update(extra)
        return headers

    async def _bearer_token(self) -> str | None:
        if self.session is None:
            return None
        if self.settings.auto_refresh_tokens and self.session.needs_refresh:
            await self.refresh_session()
        return self.session.get_valid_token()

    async def _send(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None,
        json: Any,
        headers: dict[str, str],
    ) -> httpx.Response:
        client = await self.get_client()
        try:
            response = await client.request(method, path, params=params, json=json, headers=headers)
        except httpx.TimeoutException as e:
            raise ApiNetworkError(f"Request timed out: {method} {path}") from e
        except httpx.TransportError as e:
            raise ApiNetworkError(f"Network error: unable to reach the server ({e})") from e

        if response.status_code >= 400:
            raise self._status_error(response)
        return response

    def _status_error(self, response: httpx.Response) -> ApiRequestError:
        body = _safe_json(response)
        message = extract_body_message(body) or f"Request failed with status {response.status_code}"
        if response.status_code == 401:
            return AuthenticationError(message, body=body)
        return ApiStatusError(
            message,
            status_code=response.status_code,
            body=body,
            field_errors=extract_field_errors(body),
        )

    async def request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
        headers: dict[str, str] | None = None,
        authenticated: bool = True,
    ) -> httpx.Response:
        """Send a request with auth, field transforms and retries.

        Args:
            method: HTTP method
            path: URL path relative to the base URL
            params: Query parameters in the client convention
            json: JSON body in the client convention
            headers: Extra request headers
            authenticated: Attach the session's bearer token

        Returns:
            HTTP response with a success status

        Raises:
            ApiRequestError: On network failure or an error status
        """
        method = method.upper()
        params = clean_params(params)
        if not self.settings.should_skip_transformation(path):
            params = self.transformer.to_server(params)
            json = self.transformer.to_server(json)

        token = await self._bearer_token() if authenticated else None
        request_headers = self._build_headers(token, headers)

        start_time = time.perf_counter()
        outcome = "error"
        try:
            response = await self.retry.run(
                self._send,
                method,
                path,
                params or None,
                json,
                request_headers,
                operation=f"{method} {path}",
            )
            outcome = "success"
            return response
        except AuthenticationError:
            outcome = "unauthorized"
            logger.warning("request_unauthorized", method=method, path=path)
            if self.session is not None:
                self.session.handle_auth_failure()
            raise
        except ApiRequestError as e:
            if e.status_code == 403:
                outcome = "forbidden"
                logger.warning("request_forbidden", method=method, path=path)
            else:
                logger.warning(
                    "request_failed",
                    method=method,
                    path=path,
                    status=e.status_code,
                    error=e.message,
                )
            raise
        finally:
            duration = time.perf_counter() - start_time
            REQUEST_COUNT.labels(method=method, endpoint=path, outcome=outcome).inc()
            REQUEST_LATENCY.labels(method=method, endpoint=path).observe(duration)
            logger.debug("api_request", method=method, path=path, outcome=outcome, duration=duration)

    async def get(self, path: str, params: dict[str, Any] | None = None, **kwargs: Any) -> httpx.Response:
        """Make GET request."""
        return await self.request("GET", path, params=params, **kwargs)

    async def post(self, path: str, json: Any = None, **kwargs: Any) -> httpx.Response:
        """Make POST request."""
        return await self.request("POST", path, json=json, **kwargs)

    async def put(self, path: str, json: Any = None, **kwargs: Any) -> httpx.Response:
        """Make PUT request."""
        return await self.request("PUT", path, json=json, **kwargs)

    async def patch(self, path: str, json: Any = None, **kwargs: Any) -> httpx.Response:
        """Make PATCH request."""
        return await self.request("PATCH", path, json=json, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> httpx.Response:
        """Make DELETE request."""
        return await self.request("DELETE", path, **kwargs)

    async def download(self, path: str, params: dict[str, Any] | None = None) -> BlobPayload:
        """Fetch a binary resource.

        Returns:
            BlobPayload with content type and filename from the headers
        """
        response = await self.request("GET", path, params=params, headers={"Accept": "*/*"})
        blob = decode_body(response, binary=True)
        logger.info("download_completed", path=path, size=blob.size, filename=blob.filename)
        return blob

    async def _exchange_refresh_token(self, refresh_token: str) -> Any:
        response = await self._send(
            "POST",
            AUTH_REFRESH,
            None,
            {"refresh_token": refresh_token},
            self._build_headers(None, None),
        )
        return _safe_json(response)

    async def refresh_session(self) -> bool:
        """Refresh the session's credential; concurrent callers share one refresh."""
        if self.session is None:
            return False
        return await self.session.refresh(self._exchange_refresh_token)

    async def test_connection(self) -> dict[str, Any]:
        """Probe the health endpoint.

        Returns:
            Dict with success, response_time (seconds) and error
        """
        start_time = time.perf_counter()
        try:
            await self.request("GET", HEALTH, authenticated=False)
        except ApiRequestError as e:
            return {
                "success": False,
                "response_time": time.perf_counter() - start_time,
                "error": e.message,
            }
        return {"success": True, "response_time": time.perf_counter() - start_time, "error": None}
