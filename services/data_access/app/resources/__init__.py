"""Typed facades over upstream resources."""

from services.data_access.app.resources.auth import AuthAPI
from services.data_access.app.resources.reports import ReportsAPI, validate_report_request

__all__ = [
    "AuthAPI",
    "ReportsAPI",
    "validate_report_request",
]
