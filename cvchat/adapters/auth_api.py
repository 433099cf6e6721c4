"""Auth service client (``/auth/*``)."""
from __future__ import annotations

import logging

from cvchat.adapters.api import ApiClient, unwrap_data
from cvchat.engine.errors import ApiError, ControlVectorError
from cvchat.shared.models.auth import AuthResponse, User
from cvchat.shared.services.token_store import TokenStore

logger = logging.getLogger(__name__)


class AuthAPI(ApiClient):
    """Login, sign-up, refresh and profile calls.

    Successful login/sign-up/refresh persist both tokens. A 401 on any
    other call triggers one refresh-and-retry when a refresh token is
    stored.
    """

    def __init__(self, base_url: str, tokens: TokenStore, **kwargs) -> None:
        super().__init__(f"{base_url.rstrip('/')}/auth", tokens, **kwargs)

    def _store(self, payload) -> AuthResponse:
        data = unwrap_data(payload)
        if not isinstance(data, dict) or not data.get("access_token"):
            raise ApiError(self.base_url, 200, "response did not include tokens")
        response = AuthResponse.from_dict(data)
        self._tokens.set_tokens(response.access_token, response.refresh_token)
        return response

    async def _recover_unauthorized(self, path: str) -> bool:
        if path.endswith("/refresh") or not self._tokens.refresh_token:
            return await super()._recover_unauthorized(path)
        try:
            await self.refresh()
        except ControlVectorError as exc:
            logger.info("Token refresh failed: %s", exc)
            self._tokens.clear_tokens()
            return False
        return True

    async def login(self, email: str, password: str) -> AuthResponse:
        payload = await self.request(
            "POST", "/login", json={"email": email, "password": password},
        )
        response = self._store(payload)
        logger.info("Logged in as %s", email)
        return response

    async def signup(self, email: str, password: str, name: str) -> AuthResponse:
        payload = await self.request(
            "POST", "/signup",
            json={"email": email, "password": password, "name": name},
        )
        response = self._store(payload)
        logger.info("Signed up %s", email)
        return response

    async def refresh(self) -> AuthResponse:
        refresh_token = self._tokens.refresh_token
        if not refresh_token:
            raise ControlVectorError("No refresh token available")
        payload = await self.request(
            "POST", "/refresh", json={"refresh_token": refresh_token},
        )
        return self._store(payload)

    async def me(self) -> User:
        data = unwrap_data(await self.request("GET", "/me"))
        if not isinstance(data, dict):
            raise ApiError(f"{self.base_url}/me", 200, "unexpected profile payload")
        return User.from_dict(data)

    async def logout(self) -> None:
        """Revoke server-side (best effort) and always clear local tokens."""
        try:
            if self._tokens.access_token:
                await self.request("POST", "/logout")
        except ControlVectorError as exc:
            logger.info("Logout request failed: %s", exc)
        finally:
            self._tokens.clear_tokens()
