"""Outbound delivery of a single user message.

Sends never overlap a poll or a conversation start. A message typed while
either is in flight is shown locally but never transmitted; there is no
queue.
"""
from __future__ import annotations

import logging

from chatsync.adapters.display import TypingIndicator
from chatsync.engine.config import EventCallback, fire_event
from chatsync.engine.errors import (
    AmbiguousDeliveryError,
    ChatSyncError,
    RetryExhaustedError,
)
from chatsync.engine.flows import FlowGuard
from chatsync.engine.models import Flag, RuntimeState
from chatsync.engine.poller import ActivityPoller
from chatsync.engine.reconciler import Reconciler
from chatsync.engine.retry import RetryPolicy
from chatsync.engine.transport import ChatbotTransport
from chatsync.shared.services.state_store import StateStore

logger = logging.getLogger(__name__)


class MessageSender:
    def __init__(
        self,
        store: StateStore,
        transport: ChatbotTransport,
        runtime: RuntimeState,
        reconciler: Reconciler,
        poller: ActivityPoller,
        typing: TypingIndicator,
        retry: RetryPolicy,
        *,
        typing_delay: float = 0.75,
        event_callback: EventCallback | None = None,
        session_id: str | None = None,
    ) -> None:
        self._store = store
        self._transport = transport
        self._runtime = runtime
        self._reconciler = reconciler
        self._poller = poller
        self._typing = typing
        self._retry = retry
        self._typing_delay = typing_delay
        self._event_callback = event_callback
        self._session_id = session_id
        self._guard = FlowGuard(store, Flag.SEND_IN_PROGRESS)
        self._start_guard = FlowGuard(store, Flag.START_IN_PROGRESS)

    @property
    def guard(self) -> FlowGuard:
        return self._guard

    async def send_user_message(self, text: str, client_side_msg_id: str) -> None:
        """Deliver *text* and then poll for the agent's answer."""
        self._typing.show(self._typing_delay)
        if self._start_guard.in_flight:
            reason = "start in flight"
        elif self._poller.guard.in_flight:
            reason = "poll in flight"
        elif not self._guard.try_enter():
            reason = "send in flight"
        else:
            reason = None
        if reason is not None:
            logger.info("Not sending %s: %s", client_side_msg_id, reason)
            await fire_event(self._event_callback, {
                "event": "message_dropped",
                "session_id": self._session_id,
                "client_side_msg_id": client_side_msg_id,
                "reason": reason,
            })
            return

        self._store.set_pending_client_msg_id(client_side_msg_id)
        treatment_group = self._store.get_treatment_group()
        attempt = 0
        while True:
            attempt += 1
            try:
                result = await self._transport.send(
                    self._runtime.conversation_id,
                    text,
                    treatment_group,
                    client_side_msg_id,
                )
            except AmbiguousDeliveryError as exc:
                # Resending could duplicate the message; accept possible loss.
                logger.error("Giving up on %s without retry: %s", client_side_msg_id, exc)
                break
            except ChatSyncError as exc:
                logger.warning("Error sending user message (attempt %d). Retrying. %s", attempt, exc)
                if self._retry.exhausted(attempt):
                    raise RetryExhaustedError("send", attempt, exc) from exc
                await self._retry.wait(attempt)
                continue

            if result.activity_id is not None:
                self._reconciler.link_user_message_with_activity_id(
                    result.activity_id, client_side_msg_id,
                )
                logger.debug("Message %s acknowledged as %s", client_side_msg_id, result.activity_id)
                break

            # Agent still working on it; ask again with the same request.
            logger.debug("Message %s still in progress", client_side_msg_id)
            await self._retry.wait(attempt)

        self._guard.leave()
        await self._poller.get_activities()
