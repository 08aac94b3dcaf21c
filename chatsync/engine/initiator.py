"""Conversation start handshake."""
from __future__ import annotations

import logging

from chatsync.engine.errors import ChatSyncError, RetryExhaustedError
from chatsync.engine.flows import FlowGuard
from chatsync.engine.models import Flag, RuntimeState
from chatsync.engine.poller import ActivityPoller
from chatsync.engine.retry import RetryPolicy
from chatsync.engine.transport import ChatbotTransport
from chatsync.shared.services.state_store import StateStore

logger = logging.getLogger(__name__)


class ConversationInitiator:
    def __init__(
        self,
        store: StateStore,
        transport: ChatbotTransport,
        runtime: RuntimeState,
        poller: ActivityPoller,
        retry: RetryPolicy,
    ) -> None:
        self._store = store
        self._transport = transport
        self._runtime = runtime
        self._poller = poller
        self._retry = retry
        self._guard = FlowGuard(store, Flag.START_IN_PROGRESS)

    @property
    def guard(self) -> FlowGuard:
        return self._guard

    async def start_conversation(self) -> None:
        """Allocate a conversation id, then run the first poll."""
        if not self._guard.try_enter():
            return

        treatment_group = self._store.get_treatment_group()
        attempt = 0
        while True:
            attempt += 1
            try:
                conversation_id = await self._transport.start(treatment_group)
                break
            except ChatSyncError as exc:
                logger.warning("Error in start_conversation (attempt %d): %s", attempt, exc)
                if self._retry.exhausted(attempt):
                    raise RetryExhaustedError("start", attempt, exc) from exc
                await self._retry.wait(attempt)

        self._guard.leave()
        self._runtime.conversation_id = conversation_id
        snapshot = self._store.load()
        snapshot.conversation_id = conversation_id
        self._store.save(snapshot)
        logger.info(
            "Conversation %s started (treatment group %s)",
            conversation_id, treatment_group,
        )
        await self._poller.get_activities()
