"""Status bar — bottom bar showing connection state and agent activity."""

from __future__ import annotations

from textual.reactive import reactive
from textual.widget import Widget
from rich.text import Text

STATUS_COLORS = {
    "connected": "green",
    "thinking": "yellow",
    "connecting": "yellow",
    "disconnected": "red",
    "signed out": "red bold",
}


class StatusBar(Widget):
    """Single-line status bar with user, conversation and connection state."""

    DEFAULT_CSS = """
    StatusBar {
        height: 1;
        dock: bottom;
        background: $panel;
    }
    """

    user: reactive[str] = reactive("Not signed in")
    conversation: reactive[str] = reactive("—")
    activity: reactive[str] = reactive("")
    status: reactive[str] = reactive("disconnected")

    def render(self) -> Text:
        color = STATUS_COLORS.get(self.status, "white")

        bar = Text()
        bar.append(f" {self.user} ", style="bold")
        bar.append(" │ ", style="dim")
        bar.append(f"conversation {self.conversation}", style="cyan")
        if self.activity:
            bar.append(" │ ", style="dim")
            bar.append(self.activity, style="dim italic")
        bar.append(" │ ", style="dim")
        bar.append(f"● {self.status}", style=color)
        return bar
