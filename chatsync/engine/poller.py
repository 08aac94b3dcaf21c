"""Activity polling: fetch everything after the watermark and merge it."""
from __future__ import annotations

import asyncio
import logging

from chatsync.adapters.display import TypingIndicator
from chatsync.engine.errors import ChatSyncError, RetryExhaustedError
from chatsync.engine.flows import FlowGuard
from chatsync.engine.models import Flag, PollResult, RuntimeState
from chatsync.engine.reconciler import Reconciler
from chatsync.engine.retry import RetryPolicy
from chatsync.engine.transport import ChatbotTransport
from chatsync.shared.services.state_store import StateStore

logger = logging.getLogger(__name__)


class ActivityPoller:
    """Fetches activities and routes them to the reconciler.

    The first batch of a session (normally the agent's welcome message) is
    held back until the user has opened the chat surface.
    """

    def __init__(
        self,
        store: StateStore,
        transport: ChatbotTransport,
        runtime: RuntimeState,
        reconciler: Reconciler,
        typing: TypingIndicator,
        retry: RetryPolicy,
        *,
        initial_typing_delay: float = 0.25,
        initial_message_delay: float = 0.8,
    ) -> None:
        self._store = store
        self._transport = transport
        self._runtime = runtime
        self._reconciler = reconciler
        self._typing = typing
        self._retry = retry
        self._initial_typing_delay = initial_typing_delay
        self._initial_message_delay = initial_message_delay
        self._guard = FlowGuard(store, Flag.POLL_IN_PROGRESS)
        self._interface_opened = asyncio.Event()

    @property
    def guard(self) -> FlowGuard:
        return self._guard

    def notify_interface_opened(self) -> None:
        self._interface_opened.set()

    async def get_activities(self) -> None:
        """Run one poll. Silently does nothing if a poll is already in flight."""
        if not self._guard.try_enter():
            return

        attempt = 0
        while True:
            attempt += 1
            try:
                result = await self._transport.poll(
                    self._runtime.conversation_id,
                    self._runtime.watermark,
                    self._store.get_treatment_group(),
                )
                break
            except ChatSyncError as exc:
                logger.warning("Error fetching activities (attempt %d). Retrying. %s", attempt, exc)
                if self._retry.exhausted(attempt):
                    raise RetryExhaustedError("poll", attempt, exc) from exc
                await self._retry.wait(attempt)

        if result.activities is None:
            logger.debug("Poll response carried no activities array")
            self._typing.hide()
            self._guard.leave()
            return

        if self._store.get_flag(Flag.INTERFACE_OPENED_ONCE):
            await self._reconciler.process_activities(result)
        else:
            await self.process_initial_activities(result)

    async def process_initial_activities(self, data: PollResult) -> None:
        """Hold the first batch until the interface opens, then pace it in."""
        if not self._interface_opened.is_set():
            logger.debug("Buffering %d initial activities until the interface opens",
                         len(data.activities or []))
            await self._interface_opened.wait()

        self._store.set_flag(Flag.INTERFACE_OPENED_ONCE, True)
        self._guard.hold()
        self._typing.show(self._initial_typing_delay)
        await asyncio.sleep(self._initial_message_delay)
        await self._reconciler.process_activities(data)
