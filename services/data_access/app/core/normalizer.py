"""Response normalization into one payload + pagination + error contract."""

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import httpx
from pydantic import ValidationError as PydanticValidationError

from services.data_access.app.core.errors import extract_field_errors
from services.data_access.app.core.pagination import has_pagination_fields, parse_pagination
from shared.schemas.api_responses import BlobPayload, PageInfo, ResponseEnvelope
from shared.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_ERROR_MESSAGE = "Request failed"
NO_DATA_MESSAGE = "No response data received"
INVALID_JSON_MESSAGE = "Invalid JSON response"

_FILENAME_RE = re.compile(r"""filename[^;=\n]*=((['"]).*?\2|[^;\n]*)""")


class ResponseKind(str, Enum):
    """Tagged shapes a response body can take."""

    BLOB = "blob"
    ENVELOPE = "envelope"
    RAW_LIST = "raw_list"
    RAW_OBJECT = "raw_object"
    UNRECOGNIZED = "unrecognized"
    EMPTY = "empty"


@dataclass(frozen=True)
class Classified:
    """A response body tagged with its shape."""

    kind: ResponseKind
    body: Any


@dataclass(frozen=True)
class MalformedBody:
    """A body that does not decode as its content type claims."""

    content_type: str
    reason: str


@dataclass
class NormalizedResponse:
    """Uniform result of normalizing any server response."""

    payload: Any = None
    pagination: PageInfo | None = None
    error: str | None = None
    field_errors: dict[str, str] = field(default_factory=dict)
    kind: ResponseKind = ResponseKind.EMPTY
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None


def classify(body: Any) -> Classified:
    """Tag a decoded body with its response shape.

    Order matters: binary content is never examined, an object carrying a
    boolean `success` flag is an envelope, then bare lists and objects.
    """
    if isinstance(body, (BlobPayload, bytes, bytearray, memoryview)):
        return Classified(ResponseKind.BLOB, body)
    if body is None:
        return Classified(ResponseKind.EMPTY, body)
    if isinstance(body, Mapping):
        success = body.get("success")
        if isinstance(success, bool) and ("data" in body or success is False):
            return Classified(ResponseKind.ENVELOPE, body)
        return Classified(ResponseKind.RAW_OBJECT, body)
    if isinstance(body, (list, tuple)):
        return Classified(ResponseKind.RAW_LIST, body)
    return Classified(ResponseKind.UNRECOGNIZED, body)


def _is_paginated_wrapper(data: Any) -> bool:
    """True for `{data: [...], pagination...}`; an entity with a `data` member is not one."""
    if not isinstance(data, Mapping) or "data" not in data:
        return False
    return (
        isinstance(data["data"], list)
        or isinstance(data.get("pagination"), Mapping)
        or has_pagination_fields(data)
    )


def _normalize_envelope(body: Mapping[str, Any]) -> NormalizedResponse:
    if body["success"] is False:
        message = body.get("message") or body.get("error")
        if not isinstance(message, str) or not message.strip():
            message = DEFAULT_ERROR_MESSAGE
        return NormalizedResponse(
            payload=None,
            error=message,
            field_errors=extract_field_errors(body),
            kind=ResponseKind.ENVELOPE,
        )

    data = body.get("data")
    if _is_paginated_wrapper(data):
        # paginated wrapper: {success, data: {data: [...], pagination: {...}}}
        payload = data["data"]
        pagination = None
        if isinstance(payload, list):
            if isinstance(data.get("pagination"), Mapping):
                pagination = parse_pagination(data["pagination"])
            elif has_pagination_fields(data):
                pagination = parse_pagination(data)
            elif isinstance(body.get("pagination"), Mapping):
                pagination = parse_pagination(body["pagination"])
        return NormalizedResponse(payload=payload, pagination=pagination, kind=ResponseKind.ENVELOPE)

    pagination = None
    if isinstance(data, list) and isinstance(body.get("pagination"), Mapping):
        pagination = parse_pagination(body["pagination"])
    return NormalizedResponse(payload=data, pagination=pagination, kind=ResponseKind.ENVELOPE)


def normalize(body: Any) -> NormalizedResponse:
    """Normalize any response body into payload, pagination and error.

    Never raises: malformed input produces an error result.

    Args:
        body: Decoded response body (JSON value, bytes or BlobPayload)

    Returns:
        NormalizedResponse describing the body
    """
    try:
        classified = classify(body)
        kind = classified.kind

        if kind == ResponseKind.BLOB:
            return NormalizedResponse(payload=body, kind=kind)
        if kind == ResponseKind.EMPTY:
            return NormalizedResponse(error=NO_DATA_MESSAGE, kind=kind)
        if kind == ResponseKind.ENVELOPE:
            return _normalize_envelope(body)
        if kind in (ResponseKind.RAW_LIST, ResponseKind.RAW_OBJECT):
            warning = f"Response is not enveloped: {kind.value}"
            logger.warning("response_not_enveloped", kind=kind.value)
            payload = list(body) if kind == ResponseKind.RAW_LIST else body
            return NormalizedResponse(payload=payload, kind=kind, warnings=[warning])
        if isinstance(body, MalformedBody):
            logger.warning("response_body_malformed", content_type=body.content_type, reason=body.reason)
            return NormalizedResponse(error=INVALID_JSON_MESSAGE, kind=kind, warnings=[body.reason])

        warning = f"Unrecognized response shape: {type(body).__name__}"
        logger.warning("response_shape_unrecognized", body_type=type(body).__name__)
        return NormalizedResponse(payload=body, kind=kind, warnings=[warning])
    except Exception as e:
        logger.error("response_normalization_failed", error=str(e))
        return NormalizedResponse(
            error=f"Response processing failed: {e}",
            kind=ResponseKind.UNRECOGNIZED,
        )


def as_list(result: NormalizedResponse) -> list[Any]:
    """Coerce a normalized payload to a list for list endpoints.

    A single entity becomes a one-element list; no payload is an empty list.
    """
    payload = result.payload
    if payload is None:
        return []
    if isinstance(payload, list):
        return payload
    if isinstance(payload, tuple):
        return list(payload)
    return [payload]


def parse_content_disposition(header: str | None) -> str | None:
    """Extract the filename from a Content-Disposition header."""
    if not header:
        return None
    match = _FILENAME_RE.search(header)
    if not match:
        return None
    filename = match.group(1).strip().strip("'\"")
    return filename or None


def decode_body(response: httpx.Response, binary: bool = False) -> Any:
    """Decode an HTTP response body for normalization.

    Args:
        response: Completed httpx response
        binary: Force a BlobPayload regardless of content type

    Returns:
        Parsed JSON, text, None for an empty body, a BlobPayload, or a
        MalformedBody when JSON content does not parse
    """
    content_type = response.headers.get("content-type", "")
    if binary:
        return BlobPayload(
            content=response.content,
            content_type=content_type or "application/octet-stream",
            filename=parse_content_disposition(response.headers.get("content-disposition")),
        )
    if not response.content:
        return None
    if "json" in content_type:
        try:
            return response.json()
        except ValueError as e:
            return MalformedBody(content_type=content_type, reason=str(e))
    if content_type.startswith("text/"):
        return response.text
    return BlobPayload(
        content=response.content,
        content_type=content_type or "application/octet-stream",
        filename=parse_content_disposition(response.headers.get("content-disposition")),
    )


def validate_response_structure(body: Any) -> dict[str, Any]:
    """Describe a response body's structure for diagnostics.

    Returns:
        Dict with is_valid, response_type, issues and suggestions
    """
    issues: list[str] = []
    suggestions: list[str] = []
    classified = classify(body)

    if classified.kind == ResponseKind.EMPTY:
        issues.append("Response body is empty")
    elif classified.kind == ResponseKind.UNRECOGNIZED:
        issues.append(f"Unexpected body type: {type(body).__name__}")
        suggestions.append("Return a JSON object or array")
    elif classified.kind == ResponseKind.RAW_OBJECT:
        if "success" in body and not isinstance(body["success"], bool):
            issues.append("'success' flag is not a boolean")
        suggestions.append("Wrap the payload in a {success, data} envelope")
    elif classified.kind == ResponseKind.ENVELOPE:
        try:
            ResponseEnvelope.model_validate(body)
        except PydanticValidationError as e:
            issues.extend(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors())
        data = body.get("data")
        if body["success"] is True and data is None:
            issues.append("Envelope reports success without data")
        if isinstance(data, list) and "pagination" not in body:
            suggestions.append("Include pagination metadata for list responses")

    return {
        "is_valid": not issues,
        "response_type": classified.kind.value,
        "issues": issues,
        "suggestions": suggestions,
    }
