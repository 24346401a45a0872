"""HTTP transport with retries."""

from services.data_access.app.http.client import ApiClient
from services.data_access.app.http.retry import RetryExecutor, RetryPolicy, is_transient

__all__ = [
    "ApiClient",
    "RetryExecutor",
    "RetryPolicy",
    "is_transient",
]
