"""Merging poll results into the persisted conversation."""

from __future__ import annotations

import pytest

from chatsync.adapters.display import TypingIndicator
from chatsync.engine.models import (
    Author,
    ConversationSnapshot,
    Flag,
    Message,
    PollResult,
    RuntimeState,
)
from chatsync.engine.reconciler import Reconciler
from chatsync.shared.services.state_store import StateStore
from fakes import RecordingDisplay, activity


def _reconciler(store=None, display=None, events=None):
    store = store or StateStore()
    display = display or RecordingDisplay()
    runtime = RuntimeState(conversation_id="C1")

    async def record(event):
        if events is not None:
            events.append(event)

    reconciler = Reconciler(
        store, runtime, display, TypingIndicator(display),
        user_id="user1", event_callback=record, session_id="s1",
    )
    return reconciler, store, display, runtime


class TestProcessActivities:
    @pytest.mark.asyncio
    async def test_agent_messages_are_displayed_and_persisted(self):
        reconciler, store, display, runtime = _reconciler()
        await reconciler.process_activities(PollResult(
            activities=[activity("A0", "Hello"), activity("A1", "How are you?")],
            watermark="2",
        ))

        assert display.messages == [("Hello", Author.AGENT), ("How are you?", Author.AGENT)]
        snapshot = store.load()
        assert [m.activity_id for m in snapshot.messages] == ["A0", "A1"]
        assert snapshot.processed_activity_ids == ["A0", "A1"]
        assert snapshot.watermark == "2"
        assert snapshot.conversation_id == "C1"
        assert runtime.watermark == "2"

    @pytest.mark.asyncio
    async def test_reprocessing_same_batch_is_idempotent(self):
        reconciler, store, display, _ = _reconciler()
        batch = PollResult(activities=[activity("A0", "Hello")], watermark="1")
        await reconciler.process_activities(batch)
        await reconciler.process_activities(batch)

        assert display.texts == ["Hello"]
        assert len(store.load().messages) == 1

    @pytest.mark.asyncio
    async def test_overlapping_batches_only_add_new_activities(self):
        reconciler, store, display, _ = _reconciler()
        await reconciler.process_activities(PollResult([activity("A0", "one")], "1"))
        await reconciler.process_activities(PollResult(
            [activity("A0", "one"), activity("A1", "two")], "2",
        ))
        assert display.texts == ["one", "two"]
        assert store.load().processed_activity_ids == ["A0", "A1"]

    @pytest.mark.asyncio
    async def test_non_message_activities_are_skipped(self):
        reconciler, store, display, _ = _reconciler()
        await reconciler.process_activities(PollResult(
            [activity("T1", type="typing"), activity("A1", "hey")], "2",
        ))
        assert display.texts == ["hey"]
        assert not store.load().is_processed("T1")

    @pytest.mark.asyncio
    async def test_user_echo_links_pending_message(self):
        reconciler, store, display, _ = _reconciler()
        store.save(ConversationSnapshot(messages=[
            Message(text="hi", sender=Author.USER, client_side_msg_id="m1"),
        ]))
        store.set_pending_client_msg_id("m1")

        await reconciler.process_activities(PollResult(
            [activity("A1", "hi", from_id="user1"), activity("A2", "hello back")], "2",
        ))

        snapshot = store.load()
        assert [(m.text, m.activity_id) for m in snapshot.messages] == [
            ("hi", "A1"), ("hello back", "A2"),
        ]
        assert snapshot.processed_activity_ids == ["A1", "A2"]
        # The user's own text is already on screen.
        assert display.texts == ["hello back"]

    @pytest.mark.asyncio
    async def test_watermark_never_regresses(self):
        reconciler, store, _, runtime = _reconciler()
        await reconciler.process_activities(PollResult([], "5"))
        await reconciler.process_activities(PollResult([], "3"))
        assert runtime.watermark == "5"
        assert store.load().watermark == "5"

    @pytest.mark.asyncio
    async def test_missing_watermark_keeps_previous(self):
        reconciler, _, _, runtime = _reconciler()
        await reconciler.process_activities(PollResult([], "4"))
        await reconciler.process_activities(PollResult([], None))
        assert runtime.watermark == "4"

    @pytest.mark.asyncio
    async def test_clears_poll_flag_and_hides_typing(self):
        reconciler, store, display, _ = _reconciler()
        store.set_flag(Flag.POLL_IN_PROGRESS, True)
        reconciler._typing.show(0)
        await reconciler.process_activities(PollResult([], None))
        assert not store.get_flag(Flag.POLL_IN_PROGRESS)
        assert display.typing_changes == [True, False]


class TestTerminalState:
    @pytest.mark.asyncio
    async def test_final_state_sets_flag_and_fires_once(self):
        events: list[dict] = []
        reconciler, store, _, _ = _reconciler(events=events)
        final = activity("A2", "bye", final=True)

        await reconciler.process_activities(PollResult([final], "1"))
        await reconciler.process_activities(PollResult([final], "1"))

        assert store.get_flag(Flag.TERMINAL_REACHED)
        assert events == [{
            "event": "conversation_finished",
            "session_id": "s1",
            "conversation_id": "C1",
            "activity_id": "A2",
        }]

    @pytest.mark.asyncio
    async def test_second_terminal_activity_does_not_refire(self):
        events: list[dict] = []
        reconciler, store, display, _ = _reconciler(events=events)
        await reconciler.process_activities(PollResult(
            [activity("A1", "bye", final=True), activity("A2", "really bye", final=True)], "2",
        ))
        assert [e["activity_id"] for e in events] == ["A1"]
        assert display.texts == ["bye", "really bye"]

    @pytest.mark.asyncio
    async def test_final_state_snapshot_saved_before_event(self):
        store = StateStore()
        seen: list[int] = []

        async def record(event):
            seen.append(len(store.load().messages))

        display = RecordingDisplay()
        reconciler = Reconciler(
            store, RuntimeState(), display, TypingIndicator(display), event_callback=record,
        )
        await reconciler.process_activities(PollResult([activity("A1", "bye", final=True)], "1"))
        assert seen == [1]


class TestLinkUserMessage:
    def test_links_matching_message(self):
        reconciler, store, _, _ = _reconciler()
        store.save(ConversationSnapshot(messages=[
            Message(text="a", sender=Author.USER, client_side_msg_id="m1"),
            Message(text="b", sender=Author.USER, client_side_msg_id="m2"),
        ]))
        reconciler.link_user_message_with_activity_id("A9", "m2")
        snapshot = store.load()
        assert [m.activity_id for m in snapshot.messages] == [None, "A9"]
        assert snapshot.is_processed("A9")

    def test_unmatched_id_changes_nothing(self):
        reconciler, store, _, _ = _reconciler()
        store.save(ConversationSnapshot(messages=[
            Message(text="a", sender=Author.USER, client_side_msg_id="m1"),
        ]))
        reconciler.link_user_message_with_activity_id("A9", "nope")
        snapshot = store.load()
        assert snapshot.messages[0].activity_id is None
        assert snapshot.processed_activity_ids == []
