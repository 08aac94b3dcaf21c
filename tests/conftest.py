from __future__ import annotations

import pytest

from chatsync.engine.engine import ChatbotSession
from chatsync.engine.retry import RetryPolicy
from chatsync.shared.services.state_store import MemoryBackend, StateStore
from fakes import FakeTransport, RecordingDisplay, fast_config


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def display() -> RecordingDisplay:
    return RecordingDisplay()


@pytest.fixture
def backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def events() -> list[dict]:
    return []


@pytest.fixture
def make_session(transport, display, backend, events):
    """Build a ``ChatbotSession`` wired to the fakes.

    Sessions built in one test share a backend, which stands in for state
    surviving a page reload.
    """

    async def record(event: dict) -> None:
        events.append(event)

    def _make(retry: RetryPolicy | None = None, **config_overrides) -> ChatbotSession:
        config = fast_config(**config_overrides)
        config.event_callback = record
        return ChatbotSession(
            config,
            transport=transport,
            store=StateStore(backend),
            display=display,
            retry=retry or RetryPolicy.immediate(),
        )

    return _make
