"""Wire-level response shapes shared across the data-access client."""

from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class PageInfo(BaseModel):
    """Pagination metadata in the client's naming convention.

    The navigation flags are always derived from the page counters, never
    taken from the server.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    current_page: int = Field(default=1, ge=0)
    per_page: int = Field(default=20, ge=0)
    total_pages: int = Field(default=0, ge=0)
    total_count: int = Field(default=0, ge=0)

    @computed_field(alias="hasNextPage")  # type: ignore[prop-decorator]
    @property
    def has_next_page(self) -> bool:
        return self.current_page < self.total_pages

    @computed_field(alias="hasPrevPage")  # type: ignore[prop-decorator]
    @property
    def has_prev_page(self) -> bool:
        return self.current_page > 1


class ResponseEnvelope(BaseModel, Generic[T]):
    """Standard `{success, data, pagination, message}` server envelope."""

    model_config = ConfigDict(extra="allow")

    success: bool
    data: Optional[T] = None
    pagination: Optional[dict[str, Any]] = None
    message: Optional[str] = None


class BlobPayload(BaseModel):
    """Binary download with the metadata read from its response headers."""

    content: bytes
    content_type: str = "application/octet-stream"
    filename: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.content)
