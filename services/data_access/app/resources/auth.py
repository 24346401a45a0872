"""Authentication endpoints."""

from typing import Any

from services.data_access.app.core.errors import AuthenticationError
from services.data_access.app.core.normalizer import decode_body, normalize
from services.data_access.app.endpoints import AUTH_LOGIN, AUTH_LOGOUT, AUTH_PROFILE, AUTH_REGISTER
from services.data_access.app.http.client import ApiClient
from services.data_access.app.resources.base import ResourceAPI
from shared.utils.logging import get_logger

logger = get_logger(__name__)


class AuthAPI(ResourceAPI):
    """Login, registration and session endpoints."""

    def __init__(self, client: ApiClient):
        if client.session is None:
            raise ValueError("AuthAPI requires a client with a session")
        super().__init__(client)
        self.session = client.session

    async def _authenticate(self, path: str, payload: dict[str, Any]) -> dict[str, Any] | None:
        response = await self.client.post(path, json=payload, authenticated=False)
        body = decode_body(response)
        result = normalize(body)
        if result.error is not None:
            self.session.clear()
            raise AuthenticationError(result.error, status_code=response.status_code, body=body)

        credential = self.session.accept_auth_response(body)
        logger.info("user_authenticated", path=path)
        return self.client.transformer.to_client(credential.user)

    async def login(self, email: str, password: str) -> dict[str, Any] | None:
        """Log in and store the returned credential.

        Returns:
            The authenticated user

        Raises:
            AuthenticationError: If the server rejects the login or omits tokens
        """
        return await self._authenticate(AUTH_LOGIN, {"email": email, "password": password})

    async def register(self, data: dict[str, Any]) -> dict[str, Any] | None:
        """Register an account and store the returned credential."""
        return await self._authenticate(AUTH_REGISTER, data)

    async def refresh(self) -> bool:
        return await self.client.refresh_session()

    async def logout(self) -> None:
        """Tell the server, then clear the local session regardless."""
        credential = self.session.credential
        try:
            if credential is not None:
                await self.client.post(AUTH_LOGOUT, json={"refreshToken": credential.refresh_token})
        except Exception as e:
            logger.warning("logout_request_failed", error=str(e))
        finally:
            self.session.logout()

    async def profile(self) -> dict[str, Any]:
        response = await self.client.get(AUTH_PROFILE)
        return self._unwrap(response)
