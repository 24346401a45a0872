"""Upstream endpoint table, per-endpoint cache TTLs and cache keys."""

import base64
import json
import re
from typing import Any

from services.data_access.app.core.transformer import clean_params

AUTH_LOGIN = "/api/auth/login"
AUTH_REGISTER = "/api/auth/register"
AUTH_REFRESH = "/api/auth/refresh"
AUTH_LOGOUT = "/api/auth/logout"
AUTH_PROFILE = "/api/auth/profile"

REPORTS = "/api/reports"
REPORT_DETAIL = "/api/reports/{report_id}"
REPORT_STATUS = "/api/reports/{report_id}/status"
REPORT_DOWNLOAD = "/api/reports/{report_id}/download"
REPORT_REGENERATE = "/api/reports/{report_id}/regenerate"
REPORT_GENERATE = "/api/reports/{kind}"

HEALTH = "/health"

REPORT_KINDS = ("energy", "power-quality", "audit", "compliance", "monitoring")

# Seconds; longest matching prefix wins
CACHE_TTLS: dict[str, float] = {
    "/api/auth/profile": 600.0,
    "/api/buildings": 300.0,
    "/api/equipment": 300.0,
    "/api/audits": 180.0,
    "/api/reports": 120.0,
    "/api/analysis": 60.0,
    "/api/alerts": 30.0,
    "/api/monitoring": 15.0,
}

# Endpoints whose responses are never cached
NO_CACHE_PATTERNS = (
    re.compile(r"^/api/auth/(login|register|refresh|logout)$"),
    re.compile(r"^/api/reports/[^/]+/status$"),
    re.compile(r"^/api/reports/[^/]+/download$"),
)


def get_cache_ttl(endpoint: str, default: float = 300.0) -> float:
    """Get the cache TTL for an endpoint, 0 when it must not be cached."""
    path = endpoint.split("?", 1)[0]
    if any(pattern.match(path) for pattern in NO_CACHE_PATTERNS):
        return 0.0
    matches = [prefix for prefix in CACHE_TTLS if path.startswith(prefix)]
    if not matches:
        return default
    return CACHE_TTLS[max(matches, key=len)]


def generate_cache_key(endpoint: str, params: dict[str, Any] | None = None) -> str:
    """Build a stable cache key from an endpoint and its query parameters.

    Parameter order does not matter; empty parameters are ignored.
    """
    base = re.sub(r"[^A-Za-z0-9]", "_", endpoint)
    cleaned = clean_params(params)
    if not cleaned:
        return base
    encoded = json.dumps(cleaned, sort_keys=True, default=str, separators=(",", ":"))
    return f"{base}_{base64.urlsafe_b64encode(encoded.encode()).decode().rstrip('=')}"
