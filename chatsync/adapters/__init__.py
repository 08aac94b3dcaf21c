"""Adapters package - bridge between the sync engine and UI frontends.

Holds the display interface, typing-indicator controller, lifecycle
events and the event bus that connect the engine to TUI/console frontends.
"""
from __future__ import annotations

__all__ = [
    "ChatDisplay",
    "EventBus",
    "NullDisplay",
    "TypingIndicator",
]

from chatsync.adapters.display import ChatDisplay, NullDisplay, TypingIndicator
from chatsync.adapters.event_bus import EventBus
