"""Chat screen — conversation, plan panels, thinking indicator and input."""

from __future__ import annotations

import logging

from textual import work
from textual.app import ComposeResult
from textual.containers import Vertical
from textual.screen import Screen
from textual.widgets import Header

from cvchat.adapters.auth_api import AuthAPI
from cvchat.adapters.context_api import ContextAPI
from cvchat.engine.chat import ChatSession
from cvchat.engine.config import ClientConfig
from cvchat.engine.dispatcher import ChatState
from cvchat.engine.errors import ControlVectorError, IdentityError
from cvchat.engine.identity import resolve_identity
from cvchat.shared.services.onboarding import onboarding_status
from cvchat.shared.services.token_store import TokenStore
from cvchat.tui.handlers.command_handler import CommandHandler
from cvchat.tui.widgets.conversation import ConversationView
from cvchat.tui.widgets.event_log import EventLog
from cvchat.tui.widgets.input_bar import InputBar
from cvchat.tui.widgets.plan_panel import PlanPanel
from cvchat.tui.widgets.status_bar import StatusBar
from cvchat.tui.widgets.thinking import ThinkingIndicator

logger = logging.getLogger(__name__)


def _esc(text: str) -> str:
    return text.replace("[", "\\[")


class ChatScreen(Screen):
    """Primary chat workspace bound to one ChatSession."""

    DEFAULT_CSS = """
    ChatScreen #main-pane {
        height: 1fr;
    }
    ChatScreen #conversation {
        height: 1fr;
    }
    """

    def __init__(self, config: ClientConfig, tokens: TokenStore, **kwargs) -> None:
        super().__init__(**kwargs)
        self._config = config
        self._tokens = tokens
        self.session: ChatSession | None = None
        self.command_handler = CommandHandler(self)

    def compose(self) -> ComposeResult:
        yield Header()
        with Vertical(id="main-pane"):
            yield ConversationView(id="conversation")
            yield ThinkingIndicator(id="thinking")
            yield EventLog(id="event-log")
        yield InputBar(id="input-bar")
        yield StatusBar(id="status-bar")

    def on_mount(self) -> None:
        self.session = ChatSession(self._config, self._tokens, notify=self.app.notify)
        self.session.add_listener(self._render_state)
        self.session.add_auth_listener(self._on_auth_rejected)
        self._render_state(self.session.state)
        self.query_one(InputBar).focus_input()
        self._start_session()
        self._load_profile()

    async def on_unmount(self) -> None:
        if self.session is not None:
            await self.session.close()

    # ── rendering ────────────────────────────────────────────────────

    def _render_state(self, state: ChatState) -> None:
        if not self.is_mounted:
            return
        self.query_one("#conversation", ConversationView).sync(state.messages)

        thinking = self.query_one("#thinking", ThinkingIndicator)
        if state.typing.is_typing:
            thinking.show(state.typing.agent or "Watson", state.thinking_message)
        else:
            thinking.hide()

        sb = self.query_one("#status-bar", StatusBar)
        if not state.connected:
            sb.status = "disconnected"
        elif state.typing.is_typing:
            sb.status = "thinking"
        else:
            sb.status = "connected"
        sb.conversation = (state.conversation_id or "—")[:8]
        status = state.agent_status
        if status is not None and status.status != "idle":
            sb.activity = f"{status.agent}: {status.activity}" if status.agent else status.activity
        else:
            sb.activity = ""

    def _on_auth_rejected(self) -> None:
        self.query_one("#status-bar", StatusBar).status = "signed out"
        self.app.call_later(self.app.sign_out)

    # ── input ────────────────────────────────────────────────────────

    def on_input_bar_submitted(self, event: InputBar.Submitted) -> None:
        self._send(event.text)

    def on_input_bar_command_submitted(self, event: InputBar.CommandSubmitted) -> None:
        self.command_handler.handle_command(event.name, event.args)

    def on_plan_panel_step_requested(self, event: PlanPanel.StepRequested) -> None:
        self.execute_step(event.step_id)

    def on_plan_panel_plan_responded(self, event: PlanPanel.PlanResponded) -> None:
        self.respond_to_plan(event.plan_id, event.approved)

    # ── session workers ──────────────────────────────────────────────

    @work(exclusive=True, group="connection", name="start-session")
    async def _start_session(self) -> None:
        log = self.query_one("#event-log", EventLog)
        sb = self.query_one("#status-bar", StatusBar)
        sb.status = "connecting"
        if await self.session.start():
            log.write("[green]Connected[/green] to Watson")
        else:
            self._render_state(self.session.state)

    @work(name="load-profile")
    async def _load_profile(self) -> None:
        sb = self.query_one("#status-bar", StatusBar)
        try:
            sb.user = resolve_identity(self._tokens.access_token).user_id
        except IdentityError:
            return
        try:
            async with AuthAPI(
                self._config.auth_api_url, self._tokens,
                timeout=self._config.request_timeout,
            ) as auth:
                user = await auth.me()
        except ControlVectorError as exc:
            logger.info("Could not load profile: %s", exc)
            return
        sb.user = user.name or user.email

    @work(name="send-message")
    async def _send(self, text: str) -> None:
        await self.session.send_message(text)

    @work(name="execute-step")
    async def execute_step(self, step_id: str) -> None:
        await self.session.execute_step(step_id)

    @work(name="plan-response")
    async def respond_to_plan(self, plan_id: str, approved: bool) -> None:
        await self.session.respond_to_plan(plan_id, approved)

    @work(exclusive=True, group="connection", name="reconnect")
    async def reconnect(self) -> None:
        log = self.query_one("#event-log", EventLog)
        if await self.session.reconnect():
            log.write("[green]Connected[/green] to Watson")

    @work(exclusive=True, group="connection", name="new-conversation")
    async def new_conversation(self) -> None:
        log = self.query_one("#event-log", EventLog)
        if await self.session.new_conversation():
            log.write(f"[green]Started conversation[/green] {self.session.state.conversation_id}")

    @work(name="onboarding-status")
    async def show_onboarding_status(self) -> None:
        log = self.query_one("#event-log", EventLog)
        try:
            async with ContextAPI(
                self._config.context_api_url, self._tokens,
                timeout=self._config.request_timeout,
            ) as context:
                secrets = await context.list_secrets()
        except ControlVectorError as exc:
            log.log_result(f"Could not load credentials: {_esc(str(exc))}", success=False)
            return
        status = onboarding_status(secrets)
        configured = ", ".join(status.categories) or "none"
        log.write(f"[bold]Configured:[/bold] {configured}")
        if status.is_complete:
            log.log_result("Workspace setup complete")
        else:
            log.write("[yellow]Add credentials for at least two categories to finish setup.[/yellow]")

    def logout(self) -> None:
        self.app.logout()
