"""Pagination metadata parsing across server naming variants."""

import math
from collections.abc import Mapping
from typing import Any

from shared.schemas.api_responses import PageInfo

CURRENT_PAGE_KEYS = ("current_page", "currentPage", "page")
PER_PAGE_KEYS = ("per_page", "perPage", "limit", "pageSize", "page_size", "items_per_page", "itemsPerPage")
TOTAL_COUNT_KEYS = ("total_count", "totalCount", "total_items", "totalItems", "total")
TOTAL_PAGES_KEYS = ("total_pages", "totalPages", "last_page", "lastPage")

PAGINATION_KEYS = frozenset(CURRENT_PAGE_KEYS + PER_PAGE_KEYS + TOTAL_COUNT_KEYS + TOTAL_PAGES_KEYS)

DEFAULT_PAGE = 1
DEFAULT_PER_PAGE = 20


def _to_count(value: Any) -> int | None:
    """Coerce a counter to a non-negative int, or None when unusable."""
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return None
    return number if number >= 0 else None


def _first(raw: Mapping[str, Any], keys: tuple[str, ...]) -> int | None:
    for key in keys:
        if key in raw:
            number = _to_count(raw[key])
            if number is not None:
                return number
    return None


def has_pagination_fields(raw: Any) -> bool:
    """Check whether a mapping carries any pagination-shaped field."""
    return isinstance(raw, Mapping) and any(key in raw for key in PAGINATION_KEYS)


def parse_pagination(raw: Any) -> PageInfo | None:
    """Build PageInfo from whichever alias variants the server used.

    Missing counters fall back to page 1, 20 per page and a total of 0.
    When the server omits the page count it is derived from the totals.

    Args:
        raw: Pagination mapping as sent by the server

    Returns:
        PageInfo, or None if raw is not a mapping
    """
    if not isinstance(raw, Mapping):
        return None

    current_page = _first(raw, CURRENT_PAGE_KEYS)
    per_page = _first(raw, PER_PAGE_KEYS)
    total_count = _first(raw, TOTAL_COUNT_KEYS)
    total_pages = _first(raw, TOTAL_PAGES_KEYS)

    current_page = current_page if current_page else DEFAULT_PAGE
    per_page = per_page if per_page else DEFAULT_PER_PAGE
    total_count = total_count or 0
    if total_pages is None:
        total_pages = math.ceil(total_count / per_page)

    return PageInfo(
        current_page=current_page,
        per_page=per_page,
        total_pages=total_pages,
        total_count=total_count,
    )
