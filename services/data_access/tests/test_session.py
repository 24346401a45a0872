"""Tests for the session token lifecycle."""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from services.data_access.app.auth.models import SessionState
from services.data_access.app.auth.session import MISSING_TOKENS_MESSAGE, SessionManager, extract_tokens
from services.data_access.app.auth.store import FileSessionStore, MemorySessionStore, StorageKeys
from services.data_access.app.core.errors import AuthenticationError, CredentialError


class TestExtractTokens:
    """Tests for auth response token discovery."""

    def test_root_level(self):
        """Test tokens at the root in snake_case."""
        tokens = extract_tokens(
            {"access_token": "a", "refresh_token": "r", "user": {"id": 1}, "expires_in": 900}
        )
        assert tokens == {"access_token": "a", "refresh_token": "r", "user": {"id": 1}, "expires_in": 900.0}

    def test_nested_under_data_tokens(self):
        """Test tokens nested in a success envelope."""
        tokens = extract_tokens(
            {
                "success": True,
                "data": {"user": {"id": 1}, "tokens": {"accessToken": "a", "refreshToken": "r"}},
            }
        )
        assert tokens["access_token"] == "a"
        assert tokens["refresh_token"] == "r"
        assert tokens["user"] == {"id": 1}

    def test_missing(self):
        """Test absent tokens are None."""
        assert extract_tokens({"success": True})["access_token"] is None
        assert extract_tokens(None)["refresh_token"] is None


class TestStoreTokens:
    """Tests for fail-closed credential storage."""

    def test_stores_valid_credential(self, session, make_token):
        """Test a valid pair is stored and authenticated."""
        access, refresh = make_token(), make_token(expires_in=86400)

        credential = session.store_tokens(access, refresh, user={"id": 1})

        assert credential.access_token == access
        assert session.state == SessionState.AUTHENTICATED
        assert session.get_valid_token() == access
        assert session.current_user == {"id": 1}

    def test_invalid_token_clears_previous(self, session, make_token):
        """Test a malformed token fails and wipes the old credential."""
        session.store_tokens(make_token(), make_token())

        with pytest.raises(CredentialError):
            session.store_tokens("garbage", make_token())

        assert session.credential is None
        assert session.state == SessionState.ANONYMOUS

    def test_expired_token_rejected(self, session, make_token):
        """Test an already-expired access token is never stored."""
        with pytest.raises(CredentialError):
            session.store_tokens(make_token(expires_in=-60), make_token())
        assert session.credential is None

    def test_store_failure_fails_closed(self, make_token):
        """Test a storage failure leaves no credential."""
        store = MagicMock()
        store.set.side_effect = OSError("disk full")
        session = SessionManager(store=store)

        with pytest.raises(CredentialError):
            session.store_tokens(make_token(), make_token())

        store.clear.assert_called()

    def test_expires_in_sets_expiry(self, session, make_token, clock):
        """Test the server lifetime drives the stored expiry."""
        session = SessionManager(store=MemorySessionStore(), clock=clock)
        credential = session.store_tokens(
            make_token(now=clock.now), make_token(now=clock.now), expires_in=600
        )
        assert credential.expires_at == clock.now + 600


class TestAcceptAuthResponse:
    """Tests for login/register responses."""

    def test_missing_tokens(self, session):
        """Test a response without tokens raises."""
        with pytest.raises(AuthenticationError) as exc_info:
            session.accept_auth_response({"success": True, "data": {"user": {"id": 1}}})
        assert exc_info.value.message == MISSING_TOKENS_MESSAGE

    def test_missing_user(self, session, make_token):
        """Test login responses must carry the user."""
        with pytest.raises(AuthenticationError):
            session.accept_auth_response({"access_token": make_token(), "refresh_token": make_token()})

    def test_accepts_envelope(self, session, make_token):
        """Test tokens nested in an envelope are stored."""
        access = make_token()
        session.accept_auth_response(
            {"success": True, "data": {"user": {"id": 9}, "access_token": access, "refresh_token": make_token()}}
        )
        assert session.get_valid_token() == access


class TestGetValidToken:
    """Tests for reading the credential back."""

    def test_expiring_token_not_attached_but_kept(self, session, make_token):
        """Test a token inside the buffer is withheld but not cleared."""
        session.store_tokens(make_token(expires_in=60), make_token(expires_in=86400))

        assert session.state == SessionState.EXPIRING
        assert session.needs_refresh is True
        assert session.get_valid_token() is None
        assert session.credential is not None

    def test_expired_credential_cleared(self, make_token, clock):
        """Test reading an expired credential clears the whole session."""
        session = SessionManager(store=MemorySessionStore(), clock=clock)
        session.store_tokens(make_token(now=clock.now), make_token(now=clock.now))

        clock.advance(7200)

        assert session.state == SessionState.EXPIRED
        assert session.get_valid_token() is None
        assert session.credential is None

    def test_tampered_store_cleared(self, make_token):
        """Test a structurally invalid stored token clears the session."""
        store = MemorySessionStore()
        session = SessionManager(store=store)
        session.store_tokens(make_token(), make_token())
        store.values["access_token"] = "tampered"

        assert session.get_valid_token() is None
        assert store.values == {}

    def test_anonymous(self, session):
        """Test no credential means no token."""
        assert session.get_valid_token() is None
        assert session.state == SessionState.ANONYMOUS
        assert session.seconds_until_expiry() is None


class TestRefresh:
    """Tests for single-flight token refresh."""

    @pytest.mark.asyncio
    async def test_concurrent_refresh_shares_one_call(self, session, make_token):
        """Test three concurrent refreshes make one exchange."""
        session.store_tokens(make_token(expires_in=60), make_token(expires_in=86400), user={"id": 1})
        new_access = make_token(expires_in=3600)

        async def exchange(refresh_token):
            await asyncio.sleep(0.01)
            return {"success": True, "data": {"access_token": new_access, "refresh_token": make_token()}}

        exchange_mock = AsyncMock(side_effect=exchange)

        results = await asyncio.gather(*(session.refresh(exchange_mock) for _ in range(3)))

        assert results == [True, True, True]
        assert exchange_mock.await_count == 1
        assert session.get_valid_token() == new_access
        assert session.current_user == {"id": 1}

    @pytest.mark.asyncio
    async def test_refresh_replaces_user(self, session, make_token):
        """Test a refreshed user identity replaces the old one."""
        session.store_tokens(make_token(), make_token(), user={"id": 1})
        exchange = AsyncMock(
            return_value={"access_token": make_token(), "refresh_token": make_token(), "user": {"id": 2}}
        )

        assert await session.refresh(exchange) is True
        assert session.current_user == {"id": 2}

    @pytest.mark.asyncio
    async def test_refresh_failure_clears(self, session, make_token):
        """Test a failed exchange clears the session."""
        session.store_tokens(make_token(), make_token())
        exchange = AsyncMock(side_effect=RuntimeError("401"))

        assert await session.refresh(exchange) is False
        assert session.credential is None

    @pytest.mark.asyncio
    async def test_refresh_without_tokens_clears(self, session, make_token):
        """Test a refresh response lacking tokens clears the session."""
        session.store_tokens(make_token(), make_token())

        assert await session.refresh(AsyncMock(return_value={"success": False})) is False
        assert session.credential is None

    @pytest.mark.asyncio
    async def test_refresh_anonymous(self, session):
        """Test refresh without a credential does nothing."""
        exchange = AsyncMock()

        assert await session.refresh(exchange) is False
        exchange.assert_not_called()


class TestAuthFailure:
    """Tests for 401 handling."""

    def test_redirects_once(self, make_token):
        """Test a burst of failures redirects exactly once."""
        navigate = MagicMock()
        session = SessionManager(navigate=navigate)
        session.store_tokens(make_token(), make_token())

        assert session.handle_auth_failure() is True
        assert session.handle_auth_failure() is False

        navigate.assert_called_once_with("/login")
        assert session.credential is None

    def test_no_redirect_on_login_page(self):
        """Test no redirect when already on the login path."""
        navigate = MagicMock()
        session = SessionManager(navigate=navigate, current_location=lambda: "/login?next=/reports")

        assert session.handle_auth_failure() is False
        navigate.assert_not_called()

    def test_new_login_rearms_redirect(self, make_token):
        """Test a redirect is allowed again after a new login."""
        navigate = MagicMock()
        session = SessionManager(navigate=navigate)
        session.handle_auth_failure()
        session.store_tokens(make_token(), make_token())

        assert session.handle_auth_failure() is True
        assert navigate.call_count == 2


class TestUserHelpers:
    """Tests for permission and role helpers."""

    def test_permissions_and_roles(self, session, make_token):
        """Test checks against the stored user."""
        session.store_tokens(
            make_token(), make_token(), user={"role": "engineer", "permissions": ["reports:read"]}
        )

        assert session.has_permission("reports:read") is True
        assert session.has_permission("reports:delete") is False
        assert session.has_role("engineer") is True
        assert session.has_role("admin") is False

    def test_logout(self, session, make_token):
        """Test logout clears the credential."""
        session.store_tokens(make_token(), make_token())
        session.logout()
        assert session.is_authenticated is False


class TestFileSessionStore:
    """Tests for file-backed credential storage."""

    def test_round_trip_with_fixed_keys(self, tmp_path, make_token):
        """Test the credential persists under the configured keys."""
        path = tmp_path / "session.json"
        session = SessionManager(store=FileSessionStore(path))
        access = make_token()
        session.store_tokens(access, make_token(), user={"id": 3})

        document = json.loads(path.read_text())
        assert set(document) == set(StorageKeys().all())
        assert SessionManager(store=FileSessionStore(path)).get_valid_token() == access

    def test_partial_document_is_no_credential(self, tmp_path):
        """Test a document missing a key is not a credential."""
        path = tmp_path / "session.json"
        path.write_text(json.dumps({"access_token": "x"}))

        assert FileSessionStore(path).get() is None

    def test_corrupt_file(self, tmp_path):
        """Test unreadable JSON yields no credential."""
        path = tmp_path / "session.json"
        path.write_text("{not json")

        assert FileSessionStore(path).get() is None

    def test_clear(self, tmp_path, make_token):
        """Test clearing removes the file."""
        path = tmp_path / "session.json"
        store = FileSessionStore(path)
        SessionManager(store=store).store_tokens(make_token(), make_token())

        store.clear()

        assert not path.exists()
