"""Shared Pydantic schemas for the data-access client."""

from shared.schemas.api_responses import BlobPayload, PageInfo, ResponseEnvelope

__all__ = [
    "BlobPayload",
    "PageInfo",
    "ResponseEnvelope",
]
