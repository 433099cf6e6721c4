"""Input bar — chat prompt that splits slash commands from messages."""

from __future__ import annotations

from textual import events
from textual.app import ComposeResult
from textual.containers import Horizontal
from textual.message import Message
from textual.widget import Widget
from textual.widgets import Button, Input

from cvchat.shared.commands import parse_command


class PromptHistory:
    """Sent prompts, recalled newest first with Up and back with Down."""

    def __init__(self, limit: int = 200) -> None:
        self._entries: list[str] = []
        self._limit = limit
        self._cursor: int | None = None
        self._draft = ""

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def browsing(self) -> bool:
        return self._cursor is not None

    def record(self, text: str) -> None:
        if not self._entries or self._entries[-1] != text:
            self._entries.append(text)
            del self._entries[:-self._limit]
        self._cursor = None
        self._draft = ""

    def older(self, current: str) -> str | None:
        if not self._entries:
            return None
        if self._cursor is None:
            self._draft = current
            self._cursor = len(self._entries) - 1
        elif self._cursor > 0:
            self._cursor -= 1
        return self._entries[self._cursor]

    def newer(self) -> str | None:
        """Step towards the present; returns the saved draft at the end."""
        if self._cursor is None:
            return None
        if self._cursor < len(self._entries) - 1:
            self._cursor += 1
            return self._entries[self._cursor]
        self._cursor = None
        return self._draft


class InputBar(Widget):
    """Prompt line plus send button, docked under the conversation."""

    class Submitted(Message):
        """A chat message to send to Watson."""

        def __init__(self, text: str) -> None:
            self.text = text
            super().__init__()

    class CommandSubmitted(Message):
        def __init__(self, name: str, args: list[str], raw: str) -> None:
            self.name = name
            self.args = args
            self.raw = raw
            super().__init__()

    DEFAULT_CSS = """
    InputBar {
        height: 3;
        dock: bottom;
        margin: 0 0 1 0;
    }
    InputBar #prompt-input {
        width: 1fr;
    }
    InputBar #send-btn {
        min-width: 8;
    }
    """

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self.history = PromptHistory()

    @property
    def _prompt(self) -> Input:
        return self.query_one("#prompt-input", Input)

    def compose(self) -> ComposeResult:
        with Horizontal():
            yield Input(placeholder="Message Watson or /command...", id="prompt-input")
            yield Button("Send", id="send-btn", variant="primary")

    def focus_input(self) -> None:
        self._prompt.focus()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        event.stop()
        self._submit()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        event.stop()
        self._submit()

    def on_key(self, event: events.Key) -> None:
        prompt = self._prompt
        if not prompt.has_focus or event.key not in ("up", "down"):
            return
        if event.key == "up":
            recalled = self.history.older(prompt.value)
        else:
            recalled = self.history.newer()
        if recalled is None:
            return
        event.prevent_default()
        event.stop()
        prompt.value = recalled
        prompt.cursor_position = len(recalled)

    def _submit(self) -> None:
        prompt = self._prompt
        text = prompt.value.strip()
        if not text:
            return
        self.history.record(text)
        prompt.value = ""

        cmd = parse_command(text)
        if cmd is None:
            self.post_message(self.Submitted(text))
        else:
            self.post_message(self.CommandSubmitted(cmd.name, cmd.args, cmd.raw))
