"""Session token lifecycle: storage, validation, refresh and logout."""

import asyncio
import time
from collections.abc import Mapping
from typing import Any, Awaitable, Callable

from services.data_access.app.auth.models import SessionCredential, SessionState
from services.data_access.app.auth.store import MemorySessionStore, SessionStore, StorageKeys
from services.data_access.app.auth.tokens import (
    DEFAULT_EXPIRY_BUFFER_MINUTES,
    clean_token,
    is_token_expired,
    is_valid_jwt,
    token_expires_at,
)
from services.data_access.app.core.errors import AuthenticationError, CredentialError
from shared.utils.logging import get_logger

logger = get_logger(__name__)

ACCESS_TOKEN_KEYS = ("access_token", "accessToken", "token")
REFRESH_TOKEN_KEYS = ("refresh_token", "refreshToken")
USER_KEYS = ("user", "userData")
EXPIRES_IN_KEYS = ("expires_in", "expiresIn")

MISSING_TOKENS_MESSAGE = "Authentication response missing required tokens"

# Exchanges a refresh token for a new auth response body
TokenExchange = Callable[[str], Awaitable[Any]]


def _pick(sources: list[Mapping[str, Any]], keys: tuple[str, ...]) -> Any:
    for source in sources:
        for key in keys:
            value = source.get(key)
            if value not in (None, ""):
                return value
    return None


def extract_tokens(body: Any) -> dict[str, Any]:
    """Find tokens, user and lifetime in an auth response.

    Servers nest these under the root, `tokens`, `data` or `data.tokens`
    and spell them in either convention.

    Returns:
        Dict with access_token, refresh_token, user and expires_in (any may be None)
    """
    sources: list[Mapping[str, Any]] = []
    if isinstance(body, Mapping):
        sources.append(body)
        data = body.get("data")
        for container in (body.get("tokens"), data, data.get("tokens") if isinstance(data, Mapping) else None):
            if isinstance(container, Mapping):
                sources.append(container)

    expires_in = _pick(sources, EXPIRES_IN_KEYS)
    try:
        expires_in = float(expires_in) if expires_in is not None else None
    except (TypeError, ValueError):
        expires_in = None

    user = _pick(sources, USER_KEYS)
    return {
        "access_token": clean_token(_pick(sources, ACCESS_TOKEN_KEYS)),
        "refresh_token": clean_token(_pick(sources, REFRESH_TOKEN_KEYS)),
        "user": user if isinstance(user, Mapping) else None,
        "expires_in": expires_in,
    }


class SessionManager:
    """Owns the current bearer credential.

    Inject one instance into every client that shares a login. Storage fails
    closed: a credential that cannot be validated and stored leaves the
    session empty.
    """

    def __init__(
        self,
        store: SessionStore | None = None,
        buffer_minutes: float = DEFAULT_EXPIRY_BUFFER_MINUTES,
        default_lifetime: float = 900.0,
        login_path: str = "/login",
        navigate: Callable[[str], Any] | None = None,
        current_location: Callable[[], str | None] | None = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize session manager.

        Args:
            store: Credential persistence (defaults to process memory)
            buffer_minutes: Tokens expiring this soon are not attached
            default_lifetime: Seconds a credential lives when the server gives no expiry
            login_path: Where to send the user after an authentication failure
            navigate: Callback performing the redirect
            current_location: Callback returning the current location
            clock: Epoch-seconds source
        """
        self.store = store or MemorySessionStore()
        self.buffer_minutes = buffer_minutes
        self.default_lifetime = default_lifetime
        self.login_path = login_path
        self._navigate = navigate
        self._current_location = current_location
        self._clock = clock
        self._refresh_task: asyncio.Task | None = None
        self._redirected = False

    @classmethod
    def from_settings(
        cls,
        settings: Any,
        store: SessionStore | None = None,
        navigate: Callable[[str], Any] | None = None,
        current_location: Callable[[], str | None] | None = None,
    ) -> "SessionManager":
        """Build a session manager from client settings."""
        return cls(
            store=store or MemorySessionStore(StorageKeys.from_settings(settings)),
            buffer_minutes=settings.token_expiry_buffer_minutes,
            default_lifetime=settings.default_token_lifetime,
            login_path=settings.login_path,
            navigate=navigate,
            current_location=current_location,
        )

    @property
    def credential(self) -> SessionCredential | None:
        """The stored credential, or None."""
        try:
            return self.store.get()
        except Exception as e:
            logger.error("session_read_failed", error=str(e))
            self.clear()
            return None

    @property
    def state(self) -> SessionState:
        """Current lifecycle state, derived from the stored credential."""
        return self._state_of(self.credential)

    def _state_of(self, credential: SessionCredential | None) -> SessionState:
        if credential is None:
            return SessionState.ANONYMOUS
        now = self._clock()
        token = credential.access_token
        if credential.expires_at <= now or is_token_expired(token, buffer_minutes=0, now=now):
            return SessionState.EXPIRED
        buffer = self.buffer_minutes * 60
        if credential.expires_at - buffer <= now or is_token_expired(
            token, buffer_minutes=self.buffer_minutes, now=now
        ):
            return SessionState.EXPIRING
        return SessionState.AUTHENTICATED

    @property
    def is_authenticated(self) -> bool:
        return self.get_valid_token() is not None

    @property
    def needs_refresh(self) -> bool:
        """True when the credential is inside the expiry buffer."""
        return self.state == SessionState.EXPIRING

    def store_tokens(
        self,
        access_token: Any,
        refresh_token: Any,
        user: dict[str, Any] | None = None,
        expires_in: float | None = None,
    ) -> SessionCredential:
        """Validate and persist a credential.

        Any failure clears the previous credential before raising.

        Args:
            access_token: Bearer access token
            refresh_token: Refresh token
            user: User identity returned with the tokens
            expires_in: Lifetime in seconds as reported by the server

        Returns:
            The stored credential

        Raises:
            CredentialError: If a token is malformed, already expired, or storage fails
        """
        access = clean_token(access_token)
        refresh = clean_token(refresh_token)
        now = self._clock()

        if not is_valid_jwt(access) or not is_valid_jwt(refresh):
            self.clear()
            logger.warning("credential_rejected", reason="invalid_format")
            raise CredentialError("Invalid token format")
        if is_token_expired(access, buffer_minutes=0, now=now):
            self.clear()
            logger.warning("credential_rejected", reason="expired")
            raise CredentialError("Access token is already expired")

        if expires_in:
            expires_at = now + expires_in
        else:
            expires_at = token_expires_at(access) or now + self.default_lifetime

        credential = SessionCredential(
            access_token=access,
            refresh_token=refresh,
            user=dict(user) if user else None,
            expires_at=expires_at,
            login_timestamp=now,
        )
        try:
            self.store.set(credential)
        except Exception as e:
            logger.error("credential_store_failed", error=str(e))
            self.clear()
            raise CredentialError("Failed to store credential") from e

        self._redirected = False
        logger.info("session_stored", expires_at=expires_at, has_user=user is not None)
        return credential

    def accept_auth_response(self, body: Any, require_user: bool = True) -> SessionCredential:
        """Store the credential carried by a login/register response.

        Raises:
            AuthenticationError: If the response lacks tokens (or the user)
            CredentialError: If the tokens fail validation
        """
        tokens = extract_tokens(body)
        if not tokens["access_token"] or not tokens["refresh_token"]:
            self.clear()
            raise AuthenticationError(MISSING_TOKENS_MESSAGE, status_code=None, body=body)
        if require_user and tokens["user"] is None:
            self.clear()
            raise AuthenticationError("Authentication response missing user data", status_code=None, body=body)
        return self.store_tokens(
            tokens["access_token"],
            tokens["refresh_token"],
            user=tokens["user"],
            expires_in=tokens["expires_in"],
        )

    def get_valid_token(self) -> str | None:
        """Get the access token if it may be attached to a request.

        A malformed or expired credential clears the whole session. A
        credential inside the expiry buffer is kept for refresh but its token
        is not returned.
        """
        credential = self.credential
        if credential is None:
            return None
        if not is_valid_jwt(credential.access_token):
            logger.warning("stored_token_invalid")
            self.clear()
            return None

        state = self._state_of(credential)
        if state == SessionState.EXPIRED:
            logger.info("stored_token_expired")
            self.clear()
            return None
        if state == SessionState.EXPIRING:
            logger.debug("stored_token_expiring")
            return None
        return credential.access_token

    async def refresh(self, exchange: TokenExchange) -> bool:
        """Refresh the credential, sharing one in-flight refresh between callers.

        Args:
            exchange: Sends the refresh token upstream and returns the response body

        Returns:
            True if a new credential was stored
        """
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.ensure_future(self._do_refresh(exchange))
        return await asyncio.shield(self._refresh_task)

    async def _do_refresh(self, exchange: TokenExchange) -> bool:
        credential = self.credential
        if credential is None:
            return False

        try:
            body = await exchange(credential.refresh_token)
        except Exception as e:
            logger.warning("token_refresh_failed", error=str(e))
            self.clear()
            return False

        tokens = extract_tokens(body)
        if not tokens["access_token"]:
            logger.warning("token_refresh_failed", error=MISSING_TOKENS_MESSAGE)
            self.clear()
            return False

        try:
            self.store_tokens(
                tokens["access_token"],
                tokens["refresh_token"] or credential.refresh_token,
                user=tokens["user"] or credential.user,
                expires_in=tokens["expires_in"],
            )
        except CredentialError:
            return False
        logger.info("token_refreshed")
        return True

    def handle_auth_failure(self) -> bool:
        """Clear the session after a 401 and redirect to login once.

        Returns:
            True if a redirect was issued
        """
        self.clear()
        if self._redirected:
            return False
        location = self._current_location() if self._current_location else None
        if location and location.startswith(self.login_path):
            return False
        self._redirected = True
        logger.info("session_redirect_to_login", login_path=self.login_path)
        if self._navigate is not None:
            self._navigate(self.login_path)
        return True

    def clear(self) -> None:
        """Remove the stored credential."""
        try:
            self.store.clear()
        except Exception as e:
            logger.error("session_clear_failed", error=str(e))

    def logout(self) -> None:
        """End the session locally."""
        self.clear()
        logger.info("session_logged_out")

    @property
    def current_user(self) -> dict[str, Any] | None:
        credential = self.credential
        return credential.user if credential else None

    def has_permission(self, permission: str) -> bool:
        user = self.current_user or {}
        permissions = user.get("permissions") or []
        return permission in permissions

    def has_role(self, role: str) -> bool:
        user = self.current_user or {}
        return user.get("role") == role

    def seconds_until_expiry(self) -> float | None:
        """Seconds until the stored credential expires, None without one."""
        credential = self.credential
        if credential is None:
            return None
        return max(credential.expires_at - self._clock(), 0.0)
