"""Conversation view — scrollable message area kept in sync with the chat state."""

from __future__ import annotations

from textual.app import ComposeResult
from textual.containers import VerticalScroll
from textual.css.query import NoMatches
from textual.widget import Widget
from textual.widgets import Markdown, Static

from cvchat.shared.models.message import Message, MessageType
from cvchat.tui.widgets.plan_panel import PlanPanel


def _esc(text: str) -> str:
    """Escape Rich markup characters in dynamic content."""
    return text.replace("[", "\\[")


def _recovery_suffix(message: Message) -> str:
    info = message.recovery
    if info is None:
        return ""
    parts = [f"recovery {info.kind}"]
    if info.step is not None and info.total_steps is not None:
        parts.append(f"step {info.step}/{info.total_steps}")
    if info.attempt is not None and info.attempts is not None:
        parts.append(f"attempt {info.attempt}/{info.attempts}")
    return " [dim](" + ", ".join(parts) + ")[/dim]"


class MessageWidget(Widget):
    """A single rendered message with timestamp and sender badge.

    User and Watson messages render as Markdown; system messages stay
    plain text; plan messages embed a PlanPanel.
    """

    DEFAULT_CSS = """
    MessageWidget {
        height: auto;
        margin: 0 0 1 0;
    }
    MessageWidget .msg-header {
        height: auto;
    }
    MessageWidget .msg-body {
        height: auto;
        margin: 0;
        padding: 0;
    }
    """

    def __init__(self, message: Message, **kwargs) -> None:
        self.message = message
        css_class = {
            MessageType.USER: "message-user",
            MessageType.AI: "message-ai",
            MessageType.SYSTEM: "message-system",
            MessageType.EXECUTION_PLAN: "message-plan",
        }.get(message.type, "message-system")
        super().__init__(classes=css_class, **kwargs)

    def compose(self) -> ComposeResult:
        msg = self.message
        ts = msg.timestamp.astimezone().strftime("%H:%M:%S")
        timestamp_str = f"[dim]{ts}[/dim]"

        if msg.type is MessageType.USER:
            yield Static(
                f"[bold $primary]You[/bold $primary] {timestamp_str}",
                classes="msg-header",
                markup=True,
            )
            yield Markdown(msg.content, classes="msg-body")

        elif msg.type in (MessageType.AI, MessageType.EXECUTION_PLAN):
            agent = _esc(msg.agent or "Watson")
            yield Static(
                f"[bold cyan]{agent}[/bold cyan] {timestamp_str}",
                classes="msg-header",
                markup=True,
            )
            yield Markdown(msg.content, classes="msg-body")
            if msg.execution_plan is not None:
                yield PlanPanel(msg.execution_plan)

        else:
            yield Static(
                f"[dim]System[/dim] {timestamp_str} {_esc(msg.content)}"
                f"{_recovery_suffix(msg)}",
                markup=True,
            )
            if msg.recovery is not None:
                for suggestion in msg.recovery.suggestions:
                    yield Static(f"  [dim]•[/dim] {_esc(suggestion)}", markup=True)

    def update_message(self, message: Message) -> None:
        """Apply an in-place update (only plan status changes after append)."""
        self.message = message
        if message.execution_plan is None:
            return
        try:
            self.query_one(PlanPanel).update_plan(message.execution_plan)
        except NoMatches:
            pass


class ConversationView(Widget):
    """Scrollable conversation pane mirroring ChatState.messages."""

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._widgets: dict[str, MessageWidget] = {}

    def compose(self) -> ComposeResult:
        yield VerticalScroll(id="message-container")

    # ── Scroll helpers ──

    def is_near_bottom(self) -> bool:
        container = self._message_container()
        if container is None:
            return False
        if container.max_scroll_y == 0:
            return True
        return container.scroll_y >= container.max_scroll_y - 3

    def _message_container(self) -> VerticalScroll | None:
        try:
            return self.query_one("#message-container", VerticalScroll)
        except NoMatches:
            return None

    # ── Sync ──

    def sync(self, messages: list[Message]) -> None:
        """Mount new messages and refresh ones whose plan changed.

        The message list only grows, so existing widgets are matched by
        message id and never removed.
        """
        container = self._message_container()
        if container is None:
            return
        follow = self.is_near_bottom()
        mounted = False
        for message in messages:
            widget = self._widgets.get(message.id)
            if widget is None:
                widget = MessageWidget(message)
                self._widgets[message.id] = widget
                container.mount(widget)
                mounted = True
            elif widget.message is not message:
                widget.update_message(message)
        if mounted and follow:
            container.scroll_end(animate=False)

    def clear(self) -> None:
        container = self._message_container()
        if container is not None:
            container.remove_children()
        self._widgets.clear()
