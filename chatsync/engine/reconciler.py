"""Merge server-reported activities into the persisted conversation.

The merge is idempotent: activities whose id is already in
``processed_activity_ids`` are skipped, so re-fetching an overlapping
range (coarse watermark, retried polls) never duplicates a message.
"""
from __future__ import annotations

import logging

from chatsync.adapters.display import ChatDisplay, TypingIndicator
from chatsync.engine.config import EventCallback, fire_event
from chatsync.engine.models import (
    Activity,
    Author,
    Flag,
    Message,
    PollResult,
    RuntimeState,
    advance_watermark,
)
from chatsync.shared.services.state_store import StateStore

logger = logging.getLogger(__name__)


class Reconciler:
    """Folds poll results into the snapshot and links user echoes."""

    def __init__(
        self,
        store: StateStore,
        runtime: RuntimeState,
        display: ChatDisplay,
        typing: TypingIndicator,
        *,
        user_id: str = "user1",
        event_callback: EventCallback | None = None,
        session_id: str | None = None,
    ) -> None:
        self._store = store
        self._runtime = runtime
        self._display = display
        self._typing = typing
        self._user_id = user_id
        self._event_callback = event_callback
        self._session_id = session_id

    async def process_activities(self, data: PollResult) -> None:
        snapshot = self._store.load()
        new_messages: list[Message] = []
        finished: list[Activity] = []
        self._typing.hide()

        # No await inside this loop: the snapshot held here must not go
        # stale while another task saves a freshly typed user message.
        for activity in data.activities or []:
            if not activity.is_message or snapshot.is_processed(activity.id):
                continue
            if activity.from_id == self._user_id:
                client_side_msg_id = self._store.get_pending_client_msg_id()
                self._store.save(snapshot)
                self.link_user_message_with_activity_id(activity.id, client_side_msg_id)
                snapshot = self._store.load()
            else:
                self._display.display_message(activity.text, Author.AGENT)
                new_messages.append(Message(
                    text=activity.text,
                    sender=Author.AGENT,
                    activity_id=activity.id,
                ))
                snapshot.mark_processed(activity.id)

            if activity.final_state and not self._store.get_flag(Flag.TERMINAL_REACHED):
                self._store.set_flag(Flag.TERMINAL_REACHED, True)
                finished.append(activity)

        self._store.set_flag(Flag.POLL_IN_PROGRESS, False)
        self._runtime.watermark = advance_watermark(self._runtime.watermark, data.watermark)

        snapshot.messages.extend(new_messages)
        snapshot.watermark = self._runtime.watermark
        snapshot.conversation_id = self._runtime.conversation_id or snapshot.conversation_id
        self._store.save(snapshot)
        logger.debug(
            "Merged %d new agent message(s); watermark=%s total=%d",
            len(new_messages), snapshot.watermark, len(snapshot.messages),
        )

        for activity in finished:
            logger.info("Conversation reached its final state at activity %s", activity.id)
            await fire_event(self._event_callback, {
                "event": "conversation_finished",
                "session_id": self._session_id,
                "conversation_id": snapshot.conversation_id,
                "activity_id": activity.id,
            })

    def link_user_message_with_activity_id(
        self, activity_id: str, client_side_msg_id: str | None,
    ) -> None:
        """Attach the server id to the local user message it acknowledges."""
        snapshot = self._store.load()
        message = snapshot.find_user_message(client_side_msg_id)
        if message is None:
            logger.debug(
                "No user message with client id %s to link to %s",
                client_side_msg_id, activity_id,
            )
        else:
            message.activity_id = activity_id
            snapshot.mark_processed(activity_id)
        self._store.save(snapshot)
