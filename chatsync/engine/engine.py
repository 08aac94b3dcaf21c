"""ChatbotSession wires the flows together and owns startup.

Typical embedding:

    session = ChatbotSession(SyncConfig.from_env(), display=my_surface)
    await session.initialize()           # on "data ready"
    session.interface_opened()           # when the user opens the chat
    await session.collect_user_message("hi")
    await session.close()

Frontends that prefer publish/subscribe emit ``DataReady`` and
``InterfaceOpened`` on an ``EventBus`` and run ``session.listen(bus)``.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

from chatsync.adapters.display import ChatDisplay, NullDisplay, TypingIndicator
from chatsync.adapters.event_bus import EventBus
from chatsync.adapters.events import DataReady, InterfaceOpened, SyncEvent
from chatsync.engine.config import SyncConfig
from chatsync.engine.initiator import ConversationInitiator
from chatsync.engine.models import (
    Author,
    ConversationSnapshot,
    Flag,
    Message,
    RuntimeState,
    generate_client_side_msg_id,
)
from chatsync.engine.poller import ActivityPoller
from chatsync.engine.reconciler import Reconciler
from chatsync.engine.resumption import ResumptionCoordinator
from chatsync.engine.retry import RetryPolicy
from chatsync.engine.sender import MessageSender
from chatsync.engine.transport import ChatbotTransport, HttpChatbotTransport
from chatsync.shared.services.state_store import StateStore, open_state_store

logger = logging.getLogger(__name__)


class ChatbotSession:
    """One resumable conversation with the remote agent."""

    def __init__(
        self,
        config: SyncConfig | None = None,
        *,
        transport: ChatbotTransport | None = None,
        store: StateStore | None = None,
        display: ChatDisplay | None = None,
        retry: RetryPolicy | None = None,
    ) -> None:
        self.config = config or SyncConfig()
        cfg = self.config
        self.store = store if store is not None else open_state_store(cfg.state_dir, cfg.session_id)
        self.display: ChatDisplay = display if display is not None else NullDisplay()
        self.transport: ChatbotTransport = (
            transport if transport is not None
            else HttpChatbotTransport(cfg.base_url, timeout_seconds=cfg.request_timeout_seconds)
        )
        self.runtime = RuntimeState()
        self.typing = TypingIndicator(self.display)
        retry = retry or cfg.retry_policy()

        self.reconciler = Reconciler(
            self.store, self.runtime, self.display, self.typing,
            user_id=cfg.user_id,
            event_callback=cfg.event_callback,
            session_id=cfg.session_id,
        )
        self.poller = ActivityPoller(
            self.store, self.transport, self.runtime, self.reconciler,
            self.typing, retry,
            initial_typing_delay=cfg.initial_typing_delay_seconds,
            initial_message_delay=cfg.initial_message_delay_seconds,
        )
        self.initiator = ConversationInitiator(
            self.store, self.transport, self.runtime, self.poller, retry,
        )
        self.sender = MessageSender(
            self.store, self.transport, self.runtime, self.reconciler,
            self.poller, self.typing, retry,
            typing_delay=cfg.typing_delay_seconds,
            event_callback=cfg.event_callback,
            session_id=cfg.session_id,
        )
        self.resumption = ResumptionCoordinator(
            self.store, self.initiator, self.poller, self.sender, self.typing,
            typing_delay=cfg.typing_delay_seconds,
        )
        self._tasks: set[asyncio.Task] = set()

        if cfg.treatment_group and self.store.get_treatment_group() is None:
            self.store.set_treatment_group(cfg.treatment_group)

    @property
    def finished(self) -> bool:
        return self.store.get_flag(Flag.TERMINAL_REACHED)

    # ── Startup ──

    async def initialize(self, treatment_group: str | None = None) -> None:
        """Restore or start the conversation, resuming interrupted work."""
        if treatment_group:
            self.store.set_treatment_group(treatment_group)
        if self.store.has_snapshot():
            self.restore_conversation()
            await self.resumption.continue_chatbot_api_requests()
            return
        resumed = await self.resumption.continue_chatbot_api_requests()
        if resumed is not Flag.START_IN_PROGRESS:
            await self.initiator.start_conversation()

    def restore_conversation(self) -> ConversationSnapshot:
        """Adopt the persisted cursor and redraw the stored history."""
        snapshot = self.store.load()
        self.runtime.conversation_id = snapshot.conversation_id
        self.runtime.watermark = snapshot.watermark
        for message in snapshot.messages:
            self.display.display_message(message.text, message.sender)
        logger.info(
            "Restored conversation %s with %d message(s)",
            snapshot.conversation_id, len(snapshot.messages),
        )
        return snapshot

    # ── User input ──

    def add_message_to_state(
        self,
        text: str,
        sender: Author,
        activity_id: str | None,
        client_side_msg_id: str | None,
    ) -> None:
        snapshot = self.store.load()
        snapshot.messages.append(Message(
            text=text,
            sender=sender,
            activity_id=activity_id,
            client_side_msg_id=client_side_msg_id,
        ))
        self.store.save(snapshot)

    async def collect_user_message(self, text: str) -> str | None:
        """Show, persist and send one user message.

        Returns the generated client-side id, or None when the input was
        blank or the conversation is already finished.
        """
        text = text.strip()
        if not text:
            return None
        if self.finished:
            logger.info("Conversation finished; ignoring new input")
            return None
        client_side_msg_id = generate_client_side_msg_id()
        self.display.display_message(text, Author.USER)
        self.add_message_to_state(text, Author.USER, None, client_side_msg_id)
        await self.sender.send_user_message(text, client_side_msg_id)
        return client_side_msg_id

    def interface_opened(self) -> None:
        self.poller.notify_interface_opened()

    # ── Signals ──

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        """Run *coro* in the background, logging anything it raises."""
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background sync task failed: %s", exc, exc_info=exc)

    async def dispatch(self, event: SyncEvent) -> None:
        if isinstance(event, DataReady):
            self.spawn(self.initialize(event.treatment_group))
        elif isinstance(event, InterfaceOpened):
            self.interface_opened()
        else:
            logger.debug("Ignoring signal %s", event.event_type)

    async def listen(self, bus: EventBus) -> None:
        """Consume UI signals from *bus* until it is closed."""
        async for event in bus.consume():
            await self.dispatch(event)

    async def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self.typing.hide()
        close = getattr(self.transport, "close", None)
        if close is not None:
            await close()
