"""Error types and user-facing error messages."""

from typing import Any

GENERIC_ERROR_MESSAGE = "An unexpected error occurred"


class DataAccessError(Exception):
    """Base error for the data-access layer."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ApiRequestError(DataAccessError):
    """A request to the upstream API failed."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body: Any = None,
        field_errors: dict[str, str] | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        self.field_errors = field_errors or {}

    @property
    def transient(self) -> bool:
        """True when retrying may succeed: no response, or a server error."""
        return self.status_code is None or 500 <= self.status_code < 600


class ApiNetworkError(ApiRequestError):
    """No response was received (connection failure or timeout)."""

    def __init__(self, message: str):
        super().__init__(message, status_code=None)


class ApiStatusError(ApiRequestError):
    """The server answered with an error status."""


class AuthenticationError(ApiRequestError):
    """Authentication is missing, rejected, or the auth response is unusable."""

    def __init__(self, message: str, status_code: int | None = 401, body: Any = None):
        super().__init__(message, status_code=status_code, body=body)


class ValidationError(DataAccessError):
    """Input failed validation, keyed by field."""

    def __init__(self, field_errors: dict[str, str], message: str | None = None):
        self.field_errors = field_errors
        super().__init__(message or format_field_errors(field_errors))


class CredentialError(DataAccessError):
    """A credential was rejected before storage."""


def format_field_errors(field_errors: dict[str, str]) -> str:
    """Join a field-keyed error map into one message."""
    return ", ".join(f"{field}: {message}" for field, message in field_errors.items())


def extract_field_errors(body: Any) -> dict[str, str]:
    """Pull a field-keyed error map from an error body.

    Accepts `validation_errors`/`errors` either as a list of
    `{field, message}` objects or as a mapping of field to message(s).
    """
    if not isinstance(body, dict):
        return {}
    raw = body.get("validation_errors") or body.get("validationErrors") or body.get("errors")
    errors: dict[str, str] = {}
    if isinstance(raw, list):
        for item in raw:
            if isinstance(item, dict) and item.get("field"):
                errors[str(item["field"])] = str(item.get("message", "is invalid"))
    elif isinstance(raw, dict):
        for field, value in raw.items():
            if isinstance(value, (list, tuple)):
                value = ", ".join(str(v) for v in value)
            errors[str(field)] = str(value)
    return errors


def extract_body_message(body: Any) -> str | None:
    """Find the most specific human-readable message in an error body."""
    if not isinstance(body, dict):
        return None
    for key in ("message", "error", "detail"):
        value = body.get(key)
        if isinstance(value, str) and value.strip():
            return value
    field_errors = extract_field_errors(body)
    if field_errors:
        return format_field_errors(field_errors)
    return None


def extract_error_message(error: BaseException | None) -> str:
    """Turn any failure into a message safe to show to a user."""
    if error is None:
        return GENERIC_ERROR_MESSAGE
    if isinstance(error, DataAccessError):
        return error.message or GENERIC_ERROR_MESSAGE
    return str(error) or GENERIC_ERROR_MESSAGE
