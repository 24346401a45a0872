"""Shared utilities for the data-access client."""

from shared.utils.logging import configure_logging, get_logger, get_request_id, set_request_id
from shared.utils.metrics import create_counter, create_histogram

__all__ = [
    "configure_logging",
    "get_logger",
    "get_request_id",
    "set_request_id",
    "create_counter",
    "create_histogram",
]
