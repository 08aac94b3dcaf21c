"""chatsync TUI — Textual application class.

The app is the display collaborator of a ``ChatbotSession``: it renders
messages and the typing indicator, forwards user input, and emits the
``DataReady`` / ``InterfaceOpened`` signals. No synchronization logic
lives here.
"""

from __future__ import annotations

import logging

from textual.app import App, ComposeResult
from textual.containers import Vertical
from textual.css.query import NoMatches
from textual.widgets import Button, Footer, Header, Input, Static

from chatsync.adapters.event_bus import EventBus
from chatsync.adapters.events import (
    ConversationFinished,
    DataReady,
    InterfaceOpened,
    MessageDropped,
)
from chatsync.engine.config import SyncConfig
from chatsync.engine.engine import ChatbotSession
from chatsync.engine.models import Author, Flag
from chatsync.engine.transport import ChatbotTransport
from chatsync.tui.widgets.conversation import ConversationView
from chatsync.tui.widgets.typing import TypingDots

logger = logging.getLogger(__name__)


class ChatbotApp(App):
    """Terminal chat surface for one synchronized conversation."""

    TITLE = "chatsync"
    SUB_TITLE = "Conversation"

    DEFAULT_CSS = """
    #launcher {
        align: center middle;
        height: 1fr;
    }

    #chat-panel {
        height: 1fr;
        display: none;
    }

    #chat-panel.-open {
        display: block;
    }

    #finished-banner {
        display: none;
        color: $success;
        margin: 0 2;
    }

    #finished-banner.-shown {
        display: block;
    }
    """

    BINDINGS = [
        ("ctrl+q", "quit", "Quit"),
        ("ctrl+o", "open_chat", "Open chat"),
    ]

    def __init__(
        self,
        config: SyncConfig,
        *,
        transport: ChatbotTransport | None = None,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.signals = EventBus()
        self.notifications = EventBus()
        config.event_callback = self.notifications.make_callback()
        self.session = ChatbotSession(config, transport=transport, display=self)
        self._chat_open = False

    def compose(self) -> ComposeResult:
        yield Header()
        with Vertical(id="launcher"):
            yield Button("Open chat", id="open-chat", variant="primary")
        with Vertical(id="chat-panel"):
            yield ConversationView(id="conversation")
            yield TypingDots(id="typing")
            yield Static("The conversation has ended. Thank you!", id="finished-banner")
            yield Input(placeholder="Type a message…", id="user-input")
        yield Footer()

    def on_mount(self) -> None:
        self.run_worker(self.session.listen(self.signals), exclusive=False, group="sync")
        self.run_worker(self._consume_notifications(), exclusive=False, group="sync")
        self.run_worker(self._emit_data_ready(), group="sync")
        if self.session.store.get_flag(Flag.INTERFACE_OPENED_ONCE):
            self.action_open_chat()
        if self.session.finished:
            self._show_finished()

    async def _emit_data_ready(self) -> None:
        await self.signals.emit(DataReady(session_id=self.session.config.session_id))

    async def on_unmount(self) -> None:
        self.signals.close()
        self.notifications.close()
        await self.session.close()

    # ── ChatDisplay ──

    def display_message(self, text: str, sender: Author) -> None:
        view = self._conversation_view()
        if view is None:
            logger.debug("Conversation view not mounted; dropping %s message", sender.value)
            return
        view.add_message(text, sender)

    def set_typing_indicator(self, visible: bool) -> None:
        try:
            dots = self.query_one(TypingDots)
        except NoMatches:
            return
        dots.set_visible(visible)
        view = self._conversation_view()
        if visible and view is not None:
            view.scroll_end(animate=False)

    def _conversation_view(self) -> ConversationView | None:
        try:
            return self.query_one(ConversationView)
        except NoMatches:
            return None

    # ── Actions / handlers ──

    def action_open_chat(self) -> None:
        if self._chat_open:
            return
        self._chat_open = True
        self.query_one("#launcher").display = False
        self.query_one("#chat-panel").add_class("-open")
        self.query_one(Input).focus()
        self.run_worker(self.signals.emit(InterfaceOpened()), group="sync")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "open-chat":
            event.stop()
            self.action_open_chat()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        text = event.value
        event.input.value = ""
        if not text.strip():
            return
        self.session.spawn(self.session.collect_user_message(text))

    async def _consume_notifications(self) -> None:
        async for event in self.notifications.consume():
            if isinstance(event, ConversationFinished):
                self._show_finished()
            elif isinstance(event, MessageDropped):
                logger.info("Message %s not sent: %s", event.client_side_msg_id, event.reason)
                self.notify("Please wait for the reply before sending another message.")

    def _show_finished(self) -> None:
        self.query_one("#finished-banner").add_class("-shown")
        user_input = self.query_one(Input)
        user_input.disabled = True
