"""Restart whichever flow a previous process left mid-flight.

Priority is start, then poll, then send, and only one of them runs. A poll
outranks a send because its response may already contain the echo of the
sent message; retrying both could transmit the message twice.
"""
from __future__ import annotations

import logging

from chatsync.adapters.display import TypingIndicator
from chatsync.engine.initiator import ConversationInitiator
from chatsync.engine.models import Flag
from chatsync.engine.poller import ActivityPoller
from chatsync.engine.sender import MessageSender
from chatsync.shared.services.state_store import StateStore

logger = logging.getLogger(__name__)


class ResumptionCoordinator:
    def __init__(
        self,
        store: StateStore,
        initiator: ConversationInitiator,
        poller: ActivityPoller,
        sender: MessageSender,
        typing: TypingIndicator,
        *,
        typing_delay: float = 0.75,
    ) -> None:
        self._store = store
        self._initiator = initiator
        self._poller = poller
        self._sender = sender
        self._typing = typing
        self._typing_delay = typing_delay

    def _clear(self, *flags: Flag) -> None:
        for flag in flags:
            self._store.set_flag(flag, False)

    async def continue_chatbot_api_requests(self) -> Flag | None:
        """Resume at most one interrupted flow; return the one resumed."""
        if self._store.get_flag(Flag.START_IN_PROGRESS):
            logger.info("Resuming interrupted conversation start")
            self._clear(Flag.START_IN_PROGRESS, Flag.POLL_IN_PROGRESS, Flag.SEND_IN_PROGRESS)
            await self._initiator.start_conversation()
            return Flag.START_IN_PROGRESS

        if self._store.get_flag(Flag.POLL_IN_PROGRESS):
            logger.info("Resuming interrupted poll")
            # The poll answer resolves any send that was also pending.
            self._clear(Flag.POLL_IN_PROGRESS, Flag.SEND_IN_PROGRESS)
            self._typing.show(self._typing_delay)
            await self._poller.get_activities()
            return Flag.POLL_IN_PROGRESS

        if self._store.get_flag(Flag.SEND_IN_PROGRESS):
            client_side_msg_id = self._store.get_pending_client_msg_id()
            message = self._store.load().find_user_message(client_side_msg_id)
            self._clear(Flag.SEND_IN_PROGRESS)
            if message is not None and not message.is_acknowledged:
                logger.info("Resending unacknowledged message %s", client_side_msg_id)
                await self._sender.send_user_message(message.text, client_side_msg_id)
                return Flag.SEND_IN_PROGRESS
            logger.info(
                "Pending message %s is gone or already acknowledged; not resending",
                client_side_msg_id,
            )
        return None
