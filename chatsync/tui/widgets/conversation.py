"""Conversation view: scrollable list of user and agent messages."""

from __future__ import annotations

from textual.containers import VerticalScroll
from textual.widgets import Static

from chatsync.engine.models import Author


def _esc(text: str) -> str:
    """Escape Rich markup characters in dynamic content."""
    return text.replace("[", "\\[")


class MessageBubble(Static):
    """One message, right-aligned for the user and left for the agent."""

    DEFAULT_CSS = """
    MessageBubble {
        width: auto;
        max-width: 80%;
        height: auto;
        margin: 0 1 1 1;
        padding: 0 1;
    }

    MessageBubble.user-message {
        background: $primary 30%;
        border-right: thick $primary;
        margin: 0 1 1 12;
    }

    MessageBubble.agent-message {
        background: $panel;
        border-left: thick $accent;
    }
    """

    def __init__(self, text: str, sender: Author, **kwargs) -> None:
        self.text = text
        self.sender = sender
        css_class = "user-message" if sender is Author.USER else "agent-message"
        super().__init__(_esc(text), classes=css_class, markup=True, **kwargs)


class ConversationView(VerticalScroll):
    """Message history in display order."""

    DEFAULT_CSS = """
    ConversationView {
        height: 1fr;
        padding: 1 0;
    }
    """

    def add_message(self, text: str, sender: Author) -> MessageBubble:
        bubble = MessageBubble(text, sender)
        self.mount(bubble)
        self.scroll_end(animate=False)
        return bubble

    @property
    def messages(self) -> list[MessageBubble]:
        return list(self.query(MessageBubble))
