"""Event log — collapsible RichLog panel for command output and system events."""

from __future__ import annotations

from textual.widgets import RichLog


class EventLog(RichLog):
    """Collapsible log of command output, plan actions and connection events."""

    DEFAULT_CSS = """
    EventLog {
        height: 8;
        border-top: solid $primary-darken-2;
        display: none;
    }
    EventLog.visible {
        display: block;
    }
    """

    def __init__(self, **kwargs) -> None:
        super().__init__(
            auto_scroll=True,
            wrap=True,
            markup=True,
            highlight=True,
            max_lines=5000,
            **kwargs,
        )

    def log_result(self, text: str, success: bool = True) -> None:
        color = "green" if success else "red"
        self.write(f"[{color}]{text}[/{color}]")

    def toggle(self) -> None:
        self.toggle_class("visible")
