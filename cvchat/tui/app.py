"""cvchat TUI — Textual application class."""

from __future__ import annotations

from textual import work
from textual.app import App
from textual.css.query import NoMatches

from cvchat.adapters.auth_api import AuthAPI
from cvchat.engine.config import ClientConfig
from cvchat.shared.services.token_store import TokenStore
from cvchat.tui.screens.chat import ChatScreen
from cvchat.tui.screens.login import LoginScreen


class CvChatApp(App):
    """Terminal chat client for the ControlVector assistant."""

    TITLE = "ControlVector"
    SUB_TITLE = "Watson"

    CSS = """
    .message-user {
        border-left: thick $primary;
        padding: 0 1;
    }
    .message-ai, .message-plan {
        border-left: thick $accent;
        padding: 0 1;
    }
    .message-system {
        padding: 0 1;
        color: $text-muted;
    }
    """

    BINDINGS = [
        ("ctrl+q", "quit", "Quit"),
        ("ctrl+n", "new_conversation", "New Conversation"),
        ("ctrl+r", "reconnect", "Reconnect"),
        ("f1", "toggle_event_log", "Event Log"),
        ("escape", "blur", "Unfocus"),
    ]

    def __init__(self, config: ClientConfig, tokens: TokenStore, **kwargs) -> None:
        super().__init__(**kwargs)
        self.config = config
        self.tokens = tokens

    def on_mount(self) -> None:
        if self.tokens.access_token:
            self.show_chat()
        else:
            self.show_login()

    def show_chat(self) -> None:
        self.push_screen(ChatScreen(self.config, self.tokens))

    def show_login(self) -> None:
        self.push_screen(LoginScreen(self.config, self.tokens), self._on_login)

    def _on_login(self, signed_in: bool | None) -> None:
        if signed_in:
            self.show_chat()
        else:
            self.exit()

    async def sign_out(self) -> None:
        """Leave the chat (closing its session) and show the login screen."""
        if isinstance(self.screen, LoginScreen):
            return
        if isinstance(self.screen, ChatScreen):
            await self.pop_screen()
        self.show_login()

    @work(exclusive=True, name="logout")
    async def logout(self) -> None:
        async with AuthAPI(
            self.config.auth_api_url, self.tokens,
            timeout=self.config.request_timeout,
        ) as auth:
            await auth.logout()
        self.notify("Signed out")
        await self.sign_out()

    def action_new_conversation(self) -> None:
        screen = self.screen
        if isinstance(screen, ChatScreen):
            screen.command_handler.handle_command("new", [])

    def action_reconnect(self) -> None:
        screen = self.screen
        if isinstance(screen, ChatScreen):
            screen.command_handler.handle_command("reconnect", [])

    def action_toggle_event_log(self) -> None:
        from cvchat.tui.widgets.event_log import EventLog
        try:
            self.screen.query_one(EventLog).toggle()
        except NoMatches:
            pass

    def action_blur(self) -> None:
        self.screen.set_focus(None)
