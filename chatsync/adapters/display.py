"""Display collaborator interface and the typing-indicator controller."""
from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from chatsync.engine.models import Author

logger = logging.getLogger(__name__)


class ChatDisplay(Protocol):
    """What the engine needs from a rendering surface."""

    def display_message(self, text: str, sender: Author) -> None: ...

    def set_typing_indicator(self, visible: bool) -> None: ...


class NullDisplay:
    """Renders nothing. Used when the engine runs without a surface."""

    def display_message(self, text: str, sender: Author) -> None:
        logger.debug("[%s] %s", sender.value, text)

    def set_typing_indicator(self, visible: bool) -> None:
        pass


class TypingIndicator:
    """Delayed show, immediate hide.

    ``show`` arms a timer; ``hide`` cancels a timer that has not fired yet
    and clears an indicator that is already visible. A second ``show``
    replaces the pending timer.
    """

    def __init__(self, display: ChatDisplay) -> None:
        self._display = display
        self._pending: asyncio.TimerHandle | None = None
        self._visible = False

    @property
    def visible(self) -> bool:
        return self._visible

    @property
    def pending(self) -> bool:
        return self._pending is not None

    def show(self, delay: float) -> None:
        self._cancel_pending()
        if delay <= 0:
            self._reveal()
            return
        loop = asyncio.get_running_loop()
        self._pending = loop.call_later(delay, self._reveal)

    def hide(self) -> None:
        self._cancel_pending()
        if self._visible:
            self._visible = False
            self._display.set_typing_indicator(False)

    def _reveal(self) -> None:
        self._pending = None
        self._visible = True
        self._display.set_typing_indicator(True)

    def _cancel_pending(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
