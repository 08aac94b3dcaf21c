"""Animated typing indicator: dots shown while the agent is busy."""

from __future__ import annotations

from textual.timer import Timer
from textual.widgets import Static


class TypingDots(Static):
    """Three cycling dots; hidden until ``set_visible(True)``."""

    DEFAULT_CSS = """
    TypingDots {
        height: 1;
        margin: 0 2;
        color: $accent;
        display: none;
    }

    TypingDots.-visible {
        display: block;
    }
    """

    def __init__(self, **kwargs) -> None:
        super().__init__("", markup=True, **kwargs)
        self._dot_count = 1
        self._timer: Timer | None = None

    def set_visible(self, visible: bool) -> None:
        self.set_class(visible, "-visible")
        if visible and self._timer is None:
            self._dot_count = 1
            self._render_dots()
            self._timer = self.set_interval(0.4, self._rotate)
        elif not visible and self._timer is not None:
            self._timer.stop()
            self._timer = None

    def on_unmount(self) -> None:
        if self._timer is not None:
            self._timer.stop()
            self._timer = None

    def _rotate(self) -> None:
        self._dot_count = (self._dot_count % 3) + 1
        self._render_dots()

    def _render_dots(self) -> None:
        dots = "●" * self._dot_count
        padding = " " * (3 - self._dot_count)
        self.update(f"[italic]{dots}{padding}[/]")
