"""Async event bus between the sync engine and UI frontends.

One bus per direction: the UI emits ``DataReady`` / ``InterfaceOpened`` on
the signal bus that ``ChatbotSession.listen`` consumes, and the engine's
``event_callback`` feeds notifications into a second bus the UI drains.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Any

from chatsync.adapters.events import SyncEvent, dict_to_event

logger = logging.getLogger(__name__)


class EventBus:
    """Async queue of ``SyncEvent`` objects."""

    def __init__(self, maxsize: int = 1000, put_timeout: float = 30.0) -> None:
        self._queue: asyncio.Queue[SyncEvent] = asyncio.Queue(maxsize=maxsize)
        self._put_timeout = put_timeout
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def qsize(self) -> int:
        return self._queue.qsize()

    async def _callback(self, data: dict[str, Any]) -> None:
        """Callback to pass to SyncConfig.event_callback."""
        await self.emit(dict_to_event(data))

    def make_callback(self):
        """Return the async callback for SyncConfig.event_callback."""
        return self._callback

    async def emit(self, event: SyncEvent) -> None:
        if self._closed:
            logger.debug("EventBus closed, dropping %s", event.event_type)
            return
        try:
            # Backpressure instead of silently dropping
            await asyncio.wait_for(self._queue.put(event), timeout=self._put_timeout)
        except asyncio.TimeoutError:
            logger.error(
                "EventBus queue blocked for %.0fs, dropping: %s (queue size: %d)",
                self._put_timeout,
                event.event_type,
                self._queue.qsize(),
            )

    def get_nowait(self) -> SyncEvent | None:
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    async def consume(self) -> AsyncIterator[SyncEvent]:
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
