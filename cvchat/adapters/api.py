"""Shared bearer-authenticated JSON client for the REST services."""
from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp

from cvchat.engine.errors import ApiError, AuthenticationError
from cvchat.shared.services.token_store import TokenStore

logger = logging.getLogger(__name__)


def _error_message(payload: Any) -> str:
    if isinstance(payload, dict):
        for key in ("message", "error", "detail"):
            value = payload.get(key)
            if isinstance(value, str) and value:
                return value
    return ""


def unwrap_data(payload: Any) -> Any:
    """Return ``payload["data"]`` for wrapped responses, else the payload."""
    if isinstance(payload, dict) and "data" in payload:
        return payload["data"]
    return payload


class ApiClient:
    """JSON-over-HTTP client that attaches the stored bearer token.

    A 401 response gives ``_recover_unauthorized`` one chance to fix
    credentials (the auth client refreshes); otherwise stored tokens
    are cleared and AuthenticationError is raised.
    """

    def __init__(
        self,
        base_url: str,
        tokens: TokenStore,
        timeout: float = 10.0,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._tokens = tokens
        self._timeout = timeout
        self._session = session
        self._owns_session = session is None

    @property
    def base_url(self) -> str:
        return self._base_url

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout),
                headers={"Content-Type": "application/json"},
            )
            self._owns_session = True
        return self._session

    def _headers(self) -> dict[str, str]:
        token = self._tokens.access_token
        if token:
            return {"Authorization": f"Bearer {token}"}
        return {}

    async def _recover_unauthorized(self, path: str) -> bool:
        """Handle a 401. Return True to retry the request once."""
        self._tokens.clear_tokens()
        return False

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
        _retried: bool = False,
    ) -> Any:
        """Send a request and return the decoded JSON body (or None).

        Raises:
            AuthenticationError: HTTP 401 that could not be recovered.
            ApiError: any other non-2xx status or a network failure.
        """
        url = f"{self._base_url}{path}"
        session = self._get_session()
        try:
            async with session.request(
                method, url, json=json, params=params, headers=self._headers(),
            ) as resp:
                try:
                    payload = await resp.json(content_type=None)
                except ValueError:
                    payload = None
                status = resp.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.warning("%s %s failed: %s", method, url, exc)
            raise ApiError(url, 0, str(exc) or type(exc).__name__) from exc

        if status == 401:
            logger.info("%s %s returned 401", method, url)
            if not _retried and await self._recover_unauthorized(path):
                return await self.request(
                    method, path, json=json, params=params, _retried=True,
                )
            raise AuthenticationError(url, _error_message(payload) or "Unauthorized")
        if status >= 400:
            message = _error_message(payload)
            logger.warning("%s %s returned %s: %s", method, url, status, message)
            raise ApiError(url, status, message)
        logger.debug("%s %s -> %s", method, url, status)
        return payload
