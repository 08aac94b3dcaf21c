"""Lifecycle events exchanged between the sync engine and UI frontends.

Inbound signals (UI -> engine): ``DataReady``, ``InterfaceOpened``.
Outbound notifications (engine -> UI): ``ConversationFinished``,
``MessageDropped``. Engine callbacks carry plain dicts; ``dict_to_event``
turns them into the typed dataclasses below.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class SyncEvent:
    """Base event."""
    event_type: str = ""
    session_id: str | None = None


@dataclass
class DataReady(SyncEvent):
    """Host data (treatment group etc.) is available; start syncing."""
    event_type: str = "data_ready"
    treatment_group: str | None = None


@dataclass
class InterfaceOpened(SyncEvent):
    """The user opened the chat surface for the first time (or again)."""
    event_type: str = "interface_opened"


@dataclass
class ConversationFinished(SyncEvent):
    event_type: str = "conversation_finished"
    conversation_id: str | None = None
    activity_id: str = ""


@dataclass
class MessageDropped(SyncEvent):
    """A user message stayed local because another flow was in flight."""
    event_type: str = "message_dropped"
    client_side_msg_id: str = ""
    reason: str = ""


_EVENT_MAP: dict[str, type[SyncEvent]] = {
    "data_ready": DataReady,
    "interface_opened": InterfaceOpened,
    "conversation_finished": ConversationFinished,
    "message_dropped": MessageDropped,
}


def dict_to_event(data: dict[str, Any]) -> SyncEvent:
    """Convert an engine callback dict to a typed event.

    Unknown event names come back as a bare ``SyncEvent``; unknown keys
    are ignored.
    """
    event_name = str(data.get("event", ""))
    cls = _EVENT_MAP.get(event_name)
    if cls is None:
        return SyncEvent(event_type=event_name, session_id=data.get("session_id"))
    fields = cls.__dataclass_fields__
    kwargs = {
        k: v for k, v in data.items()
        if k in fields and k != "event_type"
    }
    return cls(**kwargs)


def event_to_dict(event: SyncEvent) -> dict[str, Any]:
    payload: dict[str, Any] = {"event": event.event_type}
    for name in event.__dataclass_fields__:
        if name == "event_type":
            continue
        payload[name] = getattr(event, name)
    return payload
