"""Session credential models."""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel


class SessionState(str, Enum):
    """Lifecycle states of a session."""

    ANONYMOUS = "anonymous"  # No credential stored
    AUTHENTICATED = "authenticated"
    EXPIRING = "expiring"  # Within the expiry buffer, refresh before use
    EXPIRED = "expired"


class SessionCredential(BaseModel):
    """Stored bearer credential with its user identity."""

    access_token: str
    refresh_token: str
    user: Optional[dict[str, Any]] = None
    expires_at: float  # Epoch seconds
    login_timestamp: Optional[float] = None
