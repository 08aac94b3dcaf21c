"""Data models for the synchronization engine.

The snapshot is serialized with the camelCase keys the chatbot backend and
earlier clients already use, so a persisted conversation stays readable
across client versions.
"""
from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class Author(Enum):
    USER = "user"
    AGENT = "agent"

    @classmethod
    def parse(cls, value: Any) -> Author:
        """Read a stored sender, accepting the legacy ``"bot"`` spelling."""
        if value is None:
            return cls.AGENT
        return _LEGACY_SENDERS.get(value) or cls(value)


_LEGACY_SENDERS = {"bot": Author.AGENT}


class FlowState(Enum):
    """Lifecycle of one network flow."""
    IDLE = "idle"
    IN_FLIGHT = "in_flight"


class Flag(str, Enum):
    """Persisted operation markers.

    The first three are flow flags backed by a ``FlowState``; the rest are
    plain booleans.
    """
    START_IN_PROGRESS = "startInProgress"
    POLL_IN_PROGRESS = "pollInProgress"
    SEND_IN_PROGRESS = "sendInProgress"
    TERMINAL_REACHED = "terminalReached"
    INTERFACE_OPENED_ONCE = "interfaceOpenedOnce"

    @property
    def is_flow(self) -> bool:
        return self in FLOW_FLAGS


FLOW_FLAGS = frozenset({
    Flag.START_IN_PROGRESS,
    Flag.POLL_IN_PROGRESS,
    Flag.SEND_IN_PROGRESS,
})


def generate_client_side_msg_id() -> str:
    """Return a correlation id like ``msg-1718000000000-4242``."""
    return f"msg-{int(time.time() * 1000)}-{random.randrange(100000)}"


@dataclass
class Message:
    text: str
    sender: Author
    activity_id: str | None = None
    # Only set for user messages; matches the eventual server echo.
    client_side_msg_id: str | None = None

    @property
    def is_acknowledged(self) -> bool:
        return self.activity_id is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "from": self.sender.value,
            "activityId": self.activity_id,
            "clientSideMsgId": self.client_side_msg_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Message:
        return cls(
            text=str(data.get("text") or ""),
            sender=Author.parse(data.get("from")),
            activity_id=data.get("activityId"),
            client_side_msg_id=data.get("clientSideMsgId"),
        )


@dataclass
class ConversationSnapshot:
    """Everything persisted about one conversation."""

    conversation_id: str | None = None
    watermark: str | None = None
    messages: list[Message] = field(default_factory=list)
    processed_activity_ids: list[str] = field(default_factory=list)

    def is_processed(self, activity_id: str) -> bool:
        return activity_id in self.processed_activity_ids

    def mark_processed(self, activity_id: str) -> None:
        if activity_id not in self.processed_activity_ids:
            self.processed_activity_ids.append(activity_id)

    def find_user_message(self, client_side_msg_id: str | None) -> Message | None:
        if client_side_msg_id is None:
            return None
        for msg in self.messages:
            if (
                msg.sender is Author.USER
                and msg.client_side_msg_id == client_side_msg_id
            ):
                return msg
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "conversationId": self.conversation_id,
            "watermark": self.watermark,
            "messages": [m.to_dict() for m in self.messages],
            "processedActivities": list(self.processed_activity_ids),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConversationSnapshot:
        return cls(
            conversation_id=data.get("conversationId"),
            watermark=data.get("watermark"),
            messages=_load_messages(data.get("messages") or []),
            processed_activity_ids=[
                str(a) for a in data.get("processedActivities") or []
            ],
        )


@dataclass
class Activity:
    """One unit reported by the remote agent in a poll response."""

    id: str
    type: str
    from_id: str | None = None
    text: str = ""
    final_state: bool = False

    @property
    def is_message(self) -> bool:
        return self.type == "message"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Activity:
        sender = data.get("from") or {}
        channel_data = data.get("channelData") or {}
        return cls(
            id=str(data["id"]),
            type=str(data.get("type") or ""),
            from_id=sender.get("id") if isinstance(sender, dict) else None,
            text=str(data.get("text") or ""),
            final_state=bool(
                isinstance(channel_data, dict) and channel_data.get("finalState")
            ),
        )


@dataclass
class PollResult:
    # None when the response carried no ``activities`` array at all.
    activities: list[Activity] | None
    watermark: str | None = None


@dataclass
class SendResult:
    activity_id: str | None = None
    in_progress: bool = False


@dataclass
class RuntimeState:
    """In-memory conversation cursor shared by the flows."""
    conversation_id: str | None = None
    watermark: str | None = None


def advance_watermark(current: str | None, candidate: str | None) -> str | None:
    """Return the watermark to keep after seeing ``candidate``.

    Numeric cursors only move forward. Non-numeric cursors are opaque and
    the newest one reported wins.
    """
    if candidate is None or candidate == "":
        return current
    if current is None:
        return candidate
    try:
        if int(candidate) < int(current):
            return current
    except (TypeError, ValueError):
        pass
    return candidate


def _load_messages(raw: list[Any]) -> list[Message]:
    # A single unreadable entry must not cost the rest of the history.
    messages = []
    for index, item in enumerate(raw):
        try:
            messages.append(Message.from_dict(item))
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            logger.warning("Dropping unreadable stored message #%d: %s", index, exc)
    return messages
