"""Common plumbing for resource facades."""

from typing import Any

import httpx

from services.data_access.app.core.errors import ApiStatusError
from services.data_access.app.core.normalizer import NormalizedResponse, decode_body, normalize
from services.data_access.app.http.client import ApiClient


class ResourceAPI:
    """Base class for typed access to one upstream resource."""

    def __init__(self, client: ApiClient):
        self.client = client

    def _normalize(self, response: httpx.Response) -> NormalizedResponse:
        """Normalize a response, raising when the server reported failure."""
        result = normalize(decode_body(response))
        if result.error is not None:
            raise ApiStatusError(
                result.error,
                status_code=response.status_code,
                field_errors=result.field_errors,
            )
        return result

    def _unwrap(self, response: httpx.Response) -> Any:
        """Get the payload of a response in the client naming convention."""
        return self.client.transformer.to_client(self._normalize(response).payload)
