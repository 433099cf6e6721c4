"""Login screen — email/password sign-in with optional sign-up.

Dismisses with True once tokens are stored, False if the user quits.
"""
from __future__ import annotations

import logging

from textual import work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import Screen
from textual.widgets import Button, Input, Label, Static

from cvchat.adapters.auth_api import AuthAPI
from cvchat.engine.config import ClientConfig
from cvchat.engine.errors import ApiError, AuthenticationError, ControlVectorError
from cvchat.shared.services.token_store import TokenStore

logger = logging.getLogger(__name__)


class LoginScreen(Screen[bool]):
    """Sign in to ControlVector."""

    DEFAULT_CSS = """
    LoginScreen {
        align: center middle;
    }
    LoginScreen #login-dialog {
        width: 60;
        height: auto;
        padding: 1 2;
        border: thick $accent;
    }
    LoginScreen Input {
        margin: 0 0 1 0;
    }
    LoginScreen #name {
        display: none;
    }
    LoginScreen.signup #name {
        display: block;
    }
    LoginScreen #login-error {
        color: $error;
        height: auto;
    }
    LoginScreen #login-actions {
        height: auto;
    }
    """

    BINDINGS = [
        ("escape", "quit", "Quit"),
    ]

    def __init__(self, config: ClientConfig, tokens: TokenStore, **kwargs) -> None:
        super().__init__(**kwargs)
        self._config = config
        self._tokens = tokens
        self._signup = False

    def compose(self) -> ComposeResult:
        with Vertical(id="login-dialog"):
            yield Label("Sign in to ControlVector")
            yield Input(placeholder="Name", id="name")
            yield Input(placeholder="Email", id="email")
            yield Input(placeholder="Password", password=True, id="password")
            yield Static("", id="login-error", markup=False)
            with Horizontal(id="login-actions"):
                yield Button("Sign in", id="btn-login", variant="primary")
                yield Button("Create account", id="btn-toggle")
                yield Button("[Esc] Quit", id="btn-quit")

    def on_mount(self) -> None:
        self.query_one("#email", Input).focus()

    def _set_error(self, text: str) -> None:
        self.query_one("#login-error", Static).update(text)

    def _toggle_mode(self) -> None:
        self._signup = not self._signup
        self.set_class(self._signup, "signup")
        self.query_one(Label).update(
            "Create a ControlVector account" if self._signup else "Sign in to ControlVector"
        )
        self.query_one("#btn-login", Button).label = "Sign up" if self._signup else "Sign in"
        self.query_one("#btn-toggle", Button).label = (
            "Have an account?" if self._signup else "Create account"
        )
        self._set_error("")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "btn-login":
            self._submit()
        elif event.button.id == "btn-toggle":
            self._toggle_mode()
        elif event.button.id == "btn-quit":
            self.dismiss(False)

    def on_input_submitted(self, event: Input.Submitted) -> None:
        self._submit()

    def action_quit(self) -> None:
        self.dismiss(False)

    def _submit(self) -> None:
        email = self.query_one("#email", Input).value.strip()
        password = self.query_one("#password", Input).value
        name = self.query_one("#name", Input).value.strip()
        if not email or not password:
            self._set_error("Email and password are required.")
            return
        if self._signup and not name:
            self._set_error("Name is required to create an account.")
            return
        self._set_error("")
        self.query_one("#btn-login", Button).disabled = True
        self._authenticate(email, password, name)

    @work(exclusive=True, name="authenticate")
    async def _authenticate(self, email: str, password: str, name: str) -> None:
        try:
            async with AuthAPI(
                self._config.auth_api_url, self._tokens,
                timeout=self._config.request_timeout,
            ) as auth:
                if self._signup:
                    await auth.signup(email, password, name)
                else:
                    await auth.login(email, password)
        except AuthenticationError:
            self._set_error("Invalid email or password.")
        except ApiError as exc:
            if exc.status == 0:
                self._set_error("Could not reach the authentication service.")
            else:
                self._set_error(exc.message or f"Request failed (HTTP {exc.status}).")
        except ControlVectorError as exc:
            self._set_error(str(exc))
        else:
            self.dismiss(True)
            return
        finally:
            if self.is_mounted:
                self.query_one("#btn-login", Button).disabled = False
