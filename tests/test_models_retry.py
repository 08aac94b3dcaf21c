from __future__ import annotations

import re

import pytest

from chatsync.engine.errors import (
    AmbiguousDeliveryError,
    ChatSyncError,
    RetryExhaustedError,
    TransportError,
)
from chatsync.engine.models import (
    Activity,
    Author,
    ConversationSnapshot,
    Flag,
    Message,
    advance_watermark,
    generate_client_side_msg_id,
)
from chatsync.engine.retry import RetryPolicy


class TestModels:
    def test_client_side_msg_id_format(self):
        msg_id = generate_client_side_msg_id()
        match = re.fullmatch(r"msg-(\d+)-(\d+)", msg_id)
        assert match is not None
        assert int(match.group(2)) < 100000

    def test_activity_from_dict(self):
        act = Activity.from_dict({
            "id": "A2",
            "type": "message",
            "from": {"id": "bot"},
            "text": "bye",
            "channelData": {"finalState": True},
        })
        assert act.id == "A2"
        assert act.is_message
        assert act.from_id == "bot"
        assert act.final_state is True

    def test_activity_without_channel_data_is_not_final(self):
        act = Activity.from_dict({"id": 7, "type": "typing"})
        assert act.id == "7"
        assert not act.is_message
        assert act.final_state is False
        assert act.from_id is None

    def test_activity_requires_id(self):
        with pytest.raises(KeyError):
            Activity.from_dict({"type": "message"})

    def test_find_user_message_ignores_agent_messages(self):
        snapshot = ConversationSnapshot(messages=[
            Message(text="x", sender=Author.AGENT, client_side_msg_id="m1"),
            Message(text="hi", sender=Author.USER, client_side_msg_id="m1"),
        ])
        assert snapshot.find_user_message("m1").text == "hi"
        assert snapshot.find_user_message(None) is None
        assert snapshot.find_user_message("m2") is None

    def test_mark_processed_is_idempotent(self):
        snapshot = ConversationSnapshot()
        snapshot.mark_processed("A1")
        snapshot.mark_processed("A1")
        assert snapshot.processed_activity_ids == ["A1"]

    def test_flow_flags(self):
        assert Flag.SEND_IN_PROGRESS.is_flow
        assert not Flag.TERMINAL_REACHED.is_flow


class TestAdvanceWatermark:
    def test_numeric_moves_forward_only(self):
        assert advance_watermark("5", "7") == "7"
        assert advance_watermark("7", "5") == "7"

    def test_missing_candidate_keeps_current(self):
        assert advance_watermark("5", None) == "5"
        assert advance_watermark("5", "") == "5"

    def test_first_value_adopted(self):
        assert advance_watermark(None, "1") == "1"

    def test_opaque_cursor_replaced(self):
        assert advance_watermark("abc", "abd") == "abd"
        assert advance_watermark("abd", "abc") == "abc"


class TestRetryPolicy:
    def test_default_is_unbounded_fixed_delay(self):
        policy = RetryPolicy()
        assert policy.delay_for(1) == 2.0
        assert policy.delay_for(50) == 2.0
        assert not policy.exhausted(10_000)

    def test_bounded(self):
        policy = RetryPolicy(max_attempts=3)
        assert not policy.exhausted(2)
        assert policy.exhausted(3)

    def test_backoff_function(self):
        policy = RetryPolicy(backoff=lambda attempt: 0.5 * attempt)
        assert policy.delay_for(4) == 2.0

    def test_negative_delay_clamped(self):
        assert RetryPolicy(delay_seconds=-1).delay_for(1) == 0.0

    @pytest.mark.asyncio
    async def test_immediate_wait_returns(self):
        policy = RetryPolicy.immediate(max_attempts=2)
        await policy.wait(1)
        assert policy.exhausted(2)


class TestErrors:
    def test_hierarchy(self):
        assert issubclass(AmbiguousDeliveryError, TransportError)
        assert issubclass(TransportError, ChatSyncError)
        assert issubclass(RetryExhaustedError, ChatSyncError)

    def test_messages(self):
        assert "may have been delivered" in str(AmbiguousDeliveryError("/sendmessage", "reset"))
        assert "Transport failure on /getactivities" in str(TransportError("/getactivities", "x"))
        err = RetryExhaustedError("poll", 3, TransportError("/getactivities", "down"))
        assert err.attempts == 3
        assert str(err).startswith("poll gave up after 3 attempt(s)")
