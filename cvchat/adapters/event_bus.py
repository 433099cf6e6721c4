"""Async event bus bridging transport frames to the dispatcher.

The transport reader fires a callback per inbound frame. The EventBus
queues them so the chat session's consumer loop handles them strictly
in arrival order.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Any

from cvchat.adapters.events import ServerEvent, dict_to_event

logger = logging.getLogger(__name__)


class EventBus:
    """Async queue between the socket reader and the event consumer."""

    def __init__(self, maxsize: int = 5000) -> None:
        self._queue: asyncio.Queue[ServerEvent] = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    async def _callback(self, data: dict[str, Any]) -> None:
        """Callback handed to the transport as ``on_frame``."""
        if self._closed:
            return
        try:
            event = dict_to_event(data)
        except TypeError as e:
            logger.warning("Dropping malformed frame %r: %s", data.get("type"), e)
            return
        await self.emit(event)

    def make_callback(self):
        """Return the async callback for RealtimeTransport(on_frame=...)."""
        return self._callback

    async def emit(self, event: ServerEvent) -> None:
        """Queue an event, waiting for space instead of dropping."""
        if self._closed:
            return
        try:
            await asyncio.wait_for(self._queue.put(event), timeout=30.0)
        except asyncio.TimeoutError:
            logger.error(
                "EventBus queue blocked for 30s, dropping: %s (queue size: %d)",
                event.event_type,
                self._queue.qsize(),
            )

    async def consume(self) -> AsyncIterator[ServerEvent]:
        """Yield events as they arrive. Stops on close()."""
        while not self._closed:
            try:
                event = await asyncio.wait_for(self._queue.get(), timeout=0.5)
            except asyncio.TimeoutError:
                continue
            yield event

    def close(self) -> None:
        """Stop the consumer loop permanently."""
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    def pending(self) -> int:
        return self._queue.qsize()
