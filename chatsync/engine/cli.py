"""Headless console front end.

Runs a ``ChatbotSession`` against stdin/stdout: agent messages are printed
with Rich, every input line is sent as a user message. The console counts
as an opened interface from the start.
"""
from __future__ import annotations

import asyncio
import logging

from rich.console import Console
from rich.markup import escape
from rich.status import Status

from chatsync.adapters.event_bus import EventBus
from chatsync.adapters.events import (
    ConversationFinished,
    DataReady,
    InterfaceOpened,
    MessageDropped,
)
from chatsync.engine.config import SyncConfig
from chatsync.engine.engine import ChatbotSession
from chatsync.engine.models import Author
from chatsync.engine.transport import ChatbotTransport

logger = logging.getLogger(__name__)

QUIT_COMMANDS = {"/quit", "/exit"}


class ConsoleDisplay:
    """``ChatDisplay`` that prints to a Rich console."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console(highlight=False)
        self._status: Status | None = None

    def display_message(self, text: str, sender: Author) -> None:
        self._stop_status()
        if sender is Author.USER:
            self.console.print(f"[bold green]You:[/] {escape(text)}", soft_wrap=True)
        else:
            self.console.print(f"[bold cyan]Bot:[/] {escape(text)}", soft_wrap=True)

    def set_typing_indicator(self, visible: bool) -> None:
        if visible and self._status is None:
            self._status = self.console.status("[dim]typing…[/]", spinner="dots")
            self._status.start()
        elif not visible:
            self._stop_status()

    def _stop_status(self) -> None:
        if self._status is not None:
            self._status.stop()
            self._status = None


async def _print_notifications(bus: EventBus, display: ConsoleDisplay) -> None:
    async for event in bus.consume():
        if isinstance(event, ConversationFinished):
            display.console.print("[bold]The conversation has ended.[/]")
        elif isinstance(event, MessageDropped):
            display.console.print(
                "[yellow]Still waiting for the previous reply; message not sent.[/]"
            )


async def run_headless(
    config: SyncConfig,
    console: Console | None = None,
    *,
    transport: ChatbotTransport | None = None,
) -> None:
    display = ConsoleDisplay(console)
    signals = EventBus()
    notifications = EventBus()
    config.event_callback = notifications.make_callback()
    session = ChatbotSession(config, transport=transport, display=display)

    listener = asyncio.create_task(session.listen(signals))
    printer = asyncio.create_task(_print_notifications(notifications, display))
    await signals.emit(DataReady(session_id=config.session_id))
    await signals.emit(InterfaceOpened(session_id=config.session_id))

    try:
        while True:
            try:
                line = await asyncio.to_thread(input)
            except EOFError:
                break
            if line.strip() in QUIT_COMMANDS:
                break
            if session.finished:
                display.console.print("[dim]The conversation has ended.[/]")
                continue
            session.spawn(session.collect_user_message(line))
    except KeyboardInterrupt:
        display.console.print("\nInterrupted.")
    finally:
        signals.close()
        notifications.close()
        await asyncio.gather(listener, printer, return_exceptions=True)
        await session.close()
        logger.info("Headless session %s closed", config.session_id)
