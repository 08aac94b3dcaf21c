"""Scripted transport and recording display for the engine tests."""

from __future__ import annotations

import asyncio
from typing import Any

from chatsync.engine.config import SyncConfig
from chatsync.engine.models import Activity, Author, PollResult, SendResult


def activity(
    activity_id: str,
    text: str = "",
    *,
    from_id: str = "bot",
    final: bool = False,
    type: str = "message",
) -> Activity:
    return Activity(id=activity_id, type=type, from_id=from_id, text=text, final_state=final)


class FakeTransport:
    """Scripted ``ChatbotTransport``.

    Each ``*_results`` list is consumed front to back; an entry that is an
    exception instance is raised instead of returned. Empty lists fall back
    to a harmless default.
    """

    def __init__(self) -> None:
        self.start_results: list[Any] = []
        self.poll_results: list[Any] = []
        self.send_results: list[Any] = []
        self.calls: list[tuple[str, tuple]] = []
        self.poll_gate: asyncio.Event | None = None
        self.closed = False

    def count(self, name: str) -> int:
        return sum(1 for call, _ in self.calls if call == name)

    @staticmethod
    def _next(results: list[Any], default: Any) -> Any:
        value = results.pop(0) if results else default
        if isinstance(value, BaseException):
            raise value
        return value

    async def start(self, treatment_group):
        self.calls.append(("start", (treatment_group,)))
        return self._next(self.start_results, "C1")

    async def poll(self, conversation_id, watermark, treatment_group):
        self.calls.append(("poll", (conversation_id, watermark, treatment_group)))
        if self.poll_gate is not None:
            await self.poll_gate.wait()
        return self._next(self.poll_results, PollResult(activities=[], watermark=watermark))

    async def send(self, conversation_id, text, treatment_group, client_side_msg_id):
        self.calls.append(("send", (conversation_id, text, treatment_group, client_side_msg_id)))
        return self._next(self.send_results, SendResult(activity_id=f"srv-{client_side_msg_id}"))

    async def close(self) -> None:
        self.closed = True


class RecordingDisplay:
    def __init__(self) -> None:
        self.messages: list[tuple[str, Author]] = []
        self.typing_changes: list[bool] = []

    def display_message(self, text: str, sender: Author) -> None:
        self.messages.append((text, sender))

    def set_typing_indicator(self, visible: bool) -> None:
        self.typing_changes.append(visible)

    @property
    def texts(self) -> list[str]:
        return [text for text, _ in self.messages]


def fast_config(**overrides) -> SyncConfig:
    values = dict(
        state_dir=None,
        retry_delay_seconds=0.0,
        typing_delay_seconds=0.0,
        initial_typing_delay_seconds=0.0,
        initial_message_delay_seconds=0.0,
    )
    values.update(overrides)
    return SyncConfig(**values)
