"""Bearer token structural checks and expiry.

Tokens are decoded without signature verification; the server remains the
authority. These checks only keep malformed or expired tokens off the wire.
"""

import re
import time
from typing import Any

from jose import JWTError, jwt

from shared.utils.logging import get_logger

logger = get_logger(__name__)

_SEGMENT_RE = re.compile(r"^[A-Za-z0-9_-]+$")

DEFAULT_EXPIRY_BUFFER_MINUTES = 5


def clean_token(token: Any) -> str | None:
    """Strip whitespace from a token, returning None for non-strings or blanks."""
    if not isinstance(token, str):
        return None
    cleaned = re.sub(r"\s+", "", token)
    return cleaned or None


def is_valid_jwt(token: Any) -> bool:
    """Check that a token is a structurally valid JWT.

    Requires three non-empty base64url segments and a decodable header
    naming both `alg` and `typ`.
    """
    token = clean_token(token)
    if token is None:
        return False
    parts = token.split(".")
    if len(parts) != 3 or not all(_SEGMENT_RE.match(part) for part in parts):
        return False
    try:
        header = jwt.get_unverified_header(token)
    except JWTError:
        return False
    return bool(header.get("alg")) and bool(header.get("typ"))


def get_token_claims(token: str) -> dict[str, Any] | None:
    """Decode a token's claims without verification, None on failure."""
    try:
        claims = jwt.get_unverified_claims(token)
    except JWTError:
        return None
    return claims if isinstance(claims, dict) else None


def token_expires_at(token: str) -> float | None:
    """Get a token's `exp` claim as epoch seconds."""
    claims = get_token_claims(token)
    if not claims:
        return None
    exp = claims.get("exp")
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        return None
    return float(exp)


def is_token_expired(
    token: str,
    buffer_minutes: float = DEFAULT_EXPIRY_BUFFER_MINUTES,
    now: float | None = None,
) -> bool:
    """Check whether a token is expired or expires within the buffer.

    Undecodable tokens count as expired; tokens without `exp` do not expire.

    Args:
        token: Encoded JWT
        buffer_minutes: Treat tokens expiring this soon as expired
        now: Current epoch seconds (defaults to time.time())
    """
    if get_token_claims(token) is None:
        logger.debug("token_decode_failed")
        return True
    exp = token_expires_at(token)
    if exp is None:
        return False
    now = time.time() if now is None else now
    return exp - buffer_minutes * 60 < now
