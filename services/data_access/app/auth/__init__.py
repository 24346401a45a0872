"""Session credentials and bearer token lifecycle."""

from services.data_access.app.auth.models import SessionCredential, SessionState
from services.data_access.app.auth.session import SessionManager, extract_tokens
from services.data_access.app.auth.store import (
    FileSessionStore,
    MemorySessionStore,
    SessionStore,
    StorageKeys,
)
from services.data_access.app.auth.tokens import is_token_expired, is_valid_jwt

__all__ = [
    "SessionCredential",
    "SessionState",
    "SessionManager",
    "extract_tokens",
    "FileSessionStore",
    "MemorySessionStore",
    "SessionStore",
    "StorageKeys",
    "is_token_expired",
    "is_valid_jwt",
]
