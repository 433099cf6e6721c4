"""Thinking indicator — shown while Watson is processing a request."""

from __future__ import annotations

import time

from textual.timer import Timer
from textual.widgets import Static


def _format_elapsed(seconds: float) -> str:
    """Format elapsed seconds: Xs under a minute, Xm Ys above."""
    secs = int(seconds)
    if secs < 60:
        return f"{secs}s"
    m, s = divmod(secs, 60)
    return f"{m}m {s}s"


class ThinkingIndicator(Static):
    """Shows the agent name, the current rotating status line and animated dots.

    The status line itself is chosen by the chat session; this widget
    only animates the dots and elapsed time between updates.
    """

    DEFAULT_CSS = """
    ThinkingIndicator {
        height: 1;
        padding: 0 1;
        display: none;
    }
    ThinkingIndicator.active {
        display: block;
    }
    """

    def __init__(self, **kwargs) -> None:
        super().__init__("", markup=True, **kwargs)
        self._agent_name: str | None = None
        self._status_text: str = ""
        self._dot_count: int = 1
        self._started_at: float | None = None
        self._timer: Timer | None = None

    @property
    def agent_name(self) -> str | None:
        return self._agent_name

    @property
    def status_text(self) -> str:
        return self._status_text

    def show(self, agent_name: str | None, status_text: str) -> None:
        if self._started_at is None:
            self._started_at = time.monotonic()
            self._dot_count = 1
        self._agent_name = agent_name
        self._status_text = status_text
        self.add_class("active")
        if self._timer is None:
            self._timer = self.set_interval(0.4, self._tick)
        self._render_text()

    def hide(self) -> None:
        self._started_at = None
        self.remove_class("active")
        if self._timer is not None:
            self._timer.stop()
            self._timer = None
        self.update("")

    def on_unmount(self) -> None:
        if self._timer is not None:
            self._timer.stop()
            self._timer = None

    def _tick(self) -> None:
        self._dot_count = (self._dot_count % 3) + 1
        self._render_text()

    def _render_text(self) -> None:
        elapsed = ""
        if self._started_at is not None:
            elapsed = f" [dim]({_format_elapsed(time.monotonic() - self._started_at)})[/]"
        text = self._status_text.rstrip(". ") or "Thinking"
        dots = "." * self._dot_count
        padding = " " * (3 - self._dot_count)
        display_text = f"[italic $accent]{text}{dots}{padding}[/]{elapsed}"
        if self._agent_name:
            display_text = f"[bold dim]{self._agent_name}: [/]{display_text}"
        self.update(display_text)
