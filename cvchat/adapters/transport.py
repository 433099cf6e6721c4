"""Realtime transport — one WebSocket per mounted chat session.

Connects with ``token`` and ``conversation_id`` query parameters,
subscribes to the conversation, keeps the socket alive with periodic
pings and reconnects once after an unexpected close. The socket and
every task attached to it live in a ConnectionResources bundle that is
released in one place.
"""
from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

import aiohttp

from cvchat.adapters.commands import encode_ping, encode_subscribe
from cvchat.engine.config import ClientConfig
from cvchat.engine.errors import AuthenticationError, TransportError

logger = logging.getLogger(__name__)

NORMAL_CLOSURE = 1000
ABNORMAL_CLOSURE = 1006
# 1008 = policy violation; 4001/4401 = service-specific auth rejections
AUTH_FAILURE_CODES = frozenset({1008, 4001, 4401})

# async def on_frame(frame: dict) -> None
FrameCallback = Callable[[dict[str, Any]], Awaitable[None]]
# def on_state_change(connected: bool) -> None
StateCallback = Callable[[bool], None]
# def on_auth_failure(close_code: int) -> None
AuthFailureCallback = Callable[[int], None]
# async def factory(url, params) -> websocket
SocketFactory = Callable[[str, dict[str, str]], Awaitable[Any]]


class TransportState(Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


@dataclass
class ConnectionResources:
    """Socket plus the tasks bound to it; released together."""

    ws: Any = None
    reader_task: asyncio.Task | None = None
    ping_task: asyncio.Task | None = None
    reconnect_task: asyncio.Task | None = None

    def tasks(self) -> list[asyncio.Task]:
        return [
            t for t in (self.ping_task, self.reader_task, self.reconnect_task)
            if t is not None
        ]

    async def release(self, code: int = NORMAL_CLOSURE) -> None:
        """Cancel every task and close the socket with *code*."""
        current = asyncio.current_task()
        pending = [t for t in self.tasks() if t is not current and not t.done()]
        for task in pending:
            task.cancel()
        self.ping_task = self.reader_task = self.reconnect_task = None

        ws, self.ws = self.ws, None
        if ws is not None and not ws.closed:
            try:
                await ws.close(code=code)
            except (aiohttp.ClientError, ConnectionError, RuntimeError):
                logger.debug("Error while closing realtime socket", exc_info=True)

        if pending:
            await asyncio.gather(*pending, return_exceptions=True)


class RealtimeTransport:
    """WebSocket client with keep-alive and single-shot reconnect."""

    def __init__(
        self,
        config: ClientConfig,
        on_frame: FrameCallback,
        on_state_change: StateCallback | None = None,
        on_auth_failure: AuthFailureCallback | None = None,
        socket_factory: SocketFactory | None = None,
    ) -> None:
        self._config = config
        self._on_frame = on_frame
        self._on_state_change = on_state_change
        self._on_auth_failure = on_auth_failure
        self._socket_factory = socket_factory or self._aiohttp_connect
        self._http: aiohttp.ClientSession | None = None

        self._resources = ConnectionResources()
        self._state = TransportState.IDLE
        self._owner_closed = False
        self._conversation_id: str | None = None
        self._token: str | None = None
        self._last_close_code: int | None = None

    # ── state ────────────────────────────────────────────────────────

    @property
    def state(self) -> TransportState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is TransportState.OPEN

    @property
    def conversation_id(self) -> str | None:
        return self._conversation_id

    def set_conversation_id(self, conversation_id: str) -> None:
        """Use *conversation_id* for later reconnects and subscriptions."""
        if conversation_id != self._conversation_id:
            logger.debug("Transport now follows conversation %s", conversation_id)
        self._conversation_id = conversation_id

    @property
    def last_close_code(self) -> int | None:
        return self._last_close_code

    @property
    def resources(self) -> ConnectionResources:
        return self._resources

    def _set_state(self, state: TransportState) -> None:
        previous = self._state
        self._state = state
        if self._on_state_change is None or previous is state:
            return
        if state in (TransportState.OPEN, TransportState.CLOSED):
            try:
                self._on_state_change(state is TransportState.OPEN)
            except Exception:
                logger.exception("on_state_change callback failed")

    # ── connect / close ──────────────────────────────────────────────

    async def _aiohttp_connect(self, url: str, params: dict[str, str]) -> Any:
        if self._http is None or self._http.closed:
            timeout = aiohttp.ClientTimeout(
                total=None, sock_connect=self._config.request_timeout,
            )
            self._http = aiohttp.ClientSession(timeout=timeout)
        return await self._http.ws_connect(url, params=params)

    async def connect(self, conversation_id: str, token: str) -> RealtimeTransport:
        """Open the socket, subscribe, and start the keep-alive task.

        Returns this transport as the handle for ``send`` / ``close``.

        Raises:
            TransportError: missing parameters or the socket failed to open.
            AuthenticationError: the handshake was rejected (401/403).
        """
        if not conversation_id:
            raise TransportError("conversation id is required to connect")
        if not token:
            raise TransportError("access token is required to connect")
        if self._state in (TransportState.CONNECTING, TransportState.OPEN):
            logger.debug("connect() ignored; transport already %s", self._state.value)
            return self

        self._owner_closed = False
        self._conversation_id = conversation_id
        self._token = token
        self._set_state(TransportState.CONNECTING)
        logger.info(
            "Connecting to %s (conversation=%s)", self._config.ws_url, conversation_id,
        )
        try:
            ws = await self._socket_factory(
                self._config.ws_url,
                {"token": token, "conversation_id": conversation_id},
            )
        except aiohttp.WSServerHandshakeError as exc:
            self._set_state(TransportState.CLOSED)
            if exc.status in (401, 403):
                logger.warning("Realtime handshake rejected (HTTP %s)", exc.status)
                self._notify_auth_failure(exc.status)
                raise AuthenticationError(self._config.ws_url) from exc
            logger.warning("Realtime handshake failed: %s", exc)
            raise TransportError(f"handshake failed (HTTP {exc.status})") from exc
        except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as exc:
            self._set_state(TransportState.CLOSED)
            logger.warning("Realtime connection failed: %s", exc)
            raise TransportError(str(exc) or type(exc).__name__) from exc

        if self._owner_closed:
            # close() ran while the handshake was in flight
            await ws.close(code=NORMAL_CLOSURE)
            self._set_state(TransportState.CLOSED)
            return self

        self._resources.ws = ws
        self._set_state(TransportState.OPEN)
        logger.info("Connected to Watson service")

        try:
            await self.send(encode_subscribe(conversation_id))
        except TransportError:
            await self._resources.release(ABNORMAL_CLOSURE)
            self._set_state(TransportState.CLOSED)
            raise
        self._resources.ping_task = asyncio.create_task(
            self._ping_loop(), name="cvchat-ping",
        )
        self._resources.reader_task = asyncio.create_task(
            self._read_loop(ws), name="cvchat-reader",
        )
        return self

    async def close(self) -> None:
        """Close with a normal-closure code and release every resource."""
        self._owner_closed = True
        await self._resources.release(NORMAL_CLOSURE)
        self._set_state(TransportState.CLOSED)
        if self._http is not None and not self._http.closed:
            await self._http.close()
        self._http = None

    # ── send ─────────────────────────────────────────────────────────

    async def send(self, text: str) -> None:
        """Send one encoded frame.

        Raises:
            TransportError: the socket is not open or the write failed.
        """
        ws = self._resources.ws
        if ws is None or self._state is not TransportState.OPEN:
            raise TransportError("not connected")
        try:
            await ws.send_str(text)
        except (aiohttp.ClientError, ConnectionError, RuntimeError) as exc:
            raise TransportError(f"send failed: {exc}") from exc

    # ── background tasks ─────────────────────────────────────────────

    async def _ping_loop(self) -> None:
        interval = self._config.ping_interval
        while True:
            await asyncio.sleep(interval)
            try:
                await self.send(encode_ping())
            except TransportError as exc:
                logger.debug("Keep-alive stopped: %s", exc)
                return

    async def _read_loop(self, ws: Any) -> None:
        try:
            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    await self._deliver(msg.data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    logger.warning("Realtime socket error: %s", ws.exception())
                    break
        except (aiohttp.ClientError, ConnectionError) as exc:
            logger.warning("Realtime socket read failed: %s", exc)
        await self._on_closed(ws)

    async def _deliver(self, raw: str) -> None:
        try:
            frame = json.loads(raw)
        except ValueError:
            logger.warning("Dropping non-JSON frame: %.120s", raw)
            return
        if not isinstance(frame, dict):
            logger.warning("Dropping non-object frame: %.120s", raw)
            return
        try:
            await self._on_frame(frame)
        except Exception:
            logger.exception("on_frame callback failed for %s", frame.get("type"))

    async def _on_closed(self, ws: Any) -> None:
        if ws is not self._resources.ws:
            return
        code = ws.close_code if ws.close_code is not None else ABNORMAL_CLOSURE
        self._last_close_code = code
        self._resources.ws = None
        self._resources.reader_task = None
        ping, self._resources.ping_task = self._resources.ping_task, None
        if ping is not None:
            ping.cancel()
        if not ws.closed:
            await ws.close()
        self._set_state(TransportState.CLOSED)

        if self._owner_closed:
            return
        if code == NORMAL_CLOSURE:
            logger.info("Disconnected from Watson service (normal closure)")
            return
        if code in AUTH_FAILURE_CODES:
            logger.warning("Disconnected: authentication rejected (code %s)", code)
            self._notify_auth_failure(code)
            return
        logger.info(
            "Disconnected from Watson service (code %s) - reconnecting in %ss",
            code, self._config.reconnect_delay,
        )
        self._schedule_reconnect()

    def _notify_auth_failure(self, code: int) -> None:
        if self._on_auth_failure is None:
            return
        try:
            self._on_auth_failure(code)
        except Exception:
            logger.exception("on_auth_failure callback failed")

    def _schedule_reconnect(self) -> None:
        task = self._resources.reconnect_task
        if task is not None and not task.done():
            return
        self._resources.reconnect_task = asyncio.create_task(
            self._reconnect_after_delay(), name="cvchat-reconnect",
        )

    async def _reconnect_after_delay(self) -> None:
        await asyncio.sleep(self._config.reconnect_delay)
        if self._owner_closed or self._state is not TransportState.CLOSED:
            logger.debug("Reconnect skipped (state=%s)", self._state.value)
            return
        logger.info("Attempting to reconnect to Watson service")
        try:
            await self.connect(self._conversation_id or "", self._token or "")
        except (TransportError, AuthenticationError) as exc:
            logger.warning("Reconnect attempt failed: %s", exc)
