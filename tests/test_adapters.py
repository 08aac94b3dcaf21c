"""Events, event bus and typing indicator."""

from __future__ import annotations

import asyncio

import pytest

from chatsync.adapters.display import NullDisplay, TypingIndicator
from chatsync.adapters.event_bus import EventBus
from chatsync.adapters.events import (
    ConversationFinished,
    DataReady,
    InterfaceOpened,
    MessageDropped,
    SyncEvent,
    dict_to_event,
    event_to_dict,
)
from chatsync.engine.models import Author
from fakes import RecordingDisplay


class TestDictToEvent:
    def test_conversation_finished(self):
        event = dict_to_event({
            "event": "conversation_finished",
            "session_id": "s1",
            "conversation_id": "C1",
            "activity_id": "A2",
        })
        assert isinstance(event, ConversationFinished)
        assert event.conversation_id == "C1"
        assert event.activity_id == "A2"
        assert event.session_id == "s1"

    def test_message_dropped(self):
        event = dict_to_event({
            "event": "message_dropped",
            "client_side_msg_id": "m1",
            "reason": "poll in flight",
        })
        assert isinstance(event, MessageDropped)
        assert event.reason == "poll in flight"

    def test_unknown_keys_ignored(self):
        event = dict_to_event({"event": "interface_opened", "extra": 1})
        assert isinstance(event, InterfaceOpened)

    def test_unknown_event_type(self):
        event = dict_to_event({"event": "something_new", "session_id": "s"})
        assert type(event) is SyncEvent
        assert event.event_type == "something_new"

    def test_event_to_dict(self):
        payload = event_to_dict(DataReady(session_id="s1", treatment_group="B"))
        assert payload == {"event": "data_ready", "session_id": "s1", "treatment_group": "B"}
        assert isinstance(dict_to_event(payload), DataReady)


class TestEventBus:
    @pytest.mark.asyncio
    async def test_emit_and_get(self):
        bus = EventBus()
        await bus.emit(InterfaceOpened())
        assert bus.qsize() == 1
        assert isinstance(bus.get_nowait(), InterfaceOpened)
        assert bus.get_nowait() is None

    @pytest.mark.asyncio
    async def test_callback_converts_dicts(self):
        bus = EventBus()
        callback = bus.make_callback()
        await callback({"event": "conversation_finished", "activity_id": "A9"})
        event = bus.get_nowait()
        assert isinstance(event, ConversationFinished)
        assert event.activity_id == "A9"

    @pytest.mark.asyncio
    async def test_closed_bus_drops(self):
        bus = EventBus()
        bus.close()
        assert bus.closed
        await bus.emit(InterfaceOpened())
        assert bus.qsize() == 0

    @pytest.mark.asyncio
    async def test_full_queue_drops_after_timeout(self):
        bus = EventBus(maxsize=1, put_timeout=0.05)
        await bus.emit(InterfaceOpened())
        await bus.emit(DataReady())
        assert bus.qsize() == 1

    @pytest.mark.asyncio
    async def test_consume_stops_on_close(self):
        bus = EventBus()
        received: list[SyncEvent] = []

        async def consumer():
            async for event in bus.consume():
                received.append(event)

        task = asyncio.create_task(consumer())
        await bus.emit(DataReady(treatment_group="A"))
        await asyncio.sleep(0.05)
        bus.close()
        await asyncio.wait_for(task, timeout=2)
        assert [e.event_type for e in received] == ["data_ready"]


class TestTypingIndicator:
    @pytest.mark.asyncio
    async def test_show_is_delayed(self):
        display = RecordingDisplay()
        typing = TypingIndicator(display)
        typing.show(0.05)
        assert typing.pending
        assert display.typing_changes == []
        await asyncio.sleep(0.1)
        assert typing.visible
        assert display.typing_changes == [True]

    @pytest.mark.asyncio
    async def test_hide_cancels_pending_show(self):
        display = RecordingDisplay()
        typing = TypingIndicator(display)
        typing.show(0.05)
        typing.hide()
        await asyncio.sleep(0.1)
        assert not typing.visible
        assert display.typing_changes == []

    @pytest.mark.asyncio
    async def test_second_show_replaces_timer(self):
        display = RecordingDisplay()
        typing = TypingIndicator(display)
        typing.show(0.05)
        typing.show(0.05)
        await asyncio.sleep(0.1)
        assert display.typing_changes == [True]

    def test_zero_delay_shows_immediately_and_hide_is_idempotent(self):
        display = RecordingDisplay()
        typing = TypingIndicator(display)
        typing.show(0)
        typing.hide()
        typing.hide()
        assert display.typing_changes == [True, False]

    def test_null_display_accepts_everything(self):
        display = NullDisplay()
        display.display_message("hi", Author.AGENT)
        display.set_typing_indicator(True)
