"""Slash-command handler for ChatScreen.

Maps /commands to chat session operations, keeping ChatScreen focused
on layout and state rendering.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from cvchat.engine.plan import active_plan
from cvchat.shared.commands import COMMAND_HELP

if TYPE_CHECKING:
    from cvchat.tui.screens.chat import ChatScreen
    from cvchat.tui.widgets.event_log import EventLog

logger = logging.getLogger(__name__)


class CommandHandler:
    """Processes slash commands on behalf of ChatScreen."""

    def __init__(self, screen: ChatScreen) -> None:
        self._screen = screen

    @property
    def _log(self) -> EventLog:
        from cvchat.tui.widgets.event_log import EventLog

        return self._screen.query_one("#event-log", EventLog)

    def handle_command(self, name: str, args: list[str]) -> bool:
        """Dispatch a slash command.  Returns True if handled."""
        log = self._log
        name = name.lower()

        dispatch = {
            "help": lambda: self._cmd_help(log),
            "approve": lambda: self._cmd_plan_response(True, log),
            "cancel": lambda: self._cmd_plan_response(False, log),
            "run": lambda: self._cmd_run(args, log),
            "reconnect": lambda: self._cmd_reconnect(log),
            "new": lambda: self._cmd_new(log),
            "status": lambda: self._cmd_status(log),
            "logout": lambda: self._cmd_logout(log),
        }

        handler = dispatch.get(name)
        if handler:
            logger.debug("Handling /%s %s", name, " ".join(args))
            handler()
            return True

        log.add_class("visible")
        log.write(
            f"[red]Unknown command:[/red] /{name}. "
            "Type /help for available commands."
        )
        return False

    # ── individual commands ─────────────────────────────────────────

    def _cmd_help(self, log: EventLog) -> None:
        log.add_class("visible")
        log.write("[bold]Available commands:[/bold]")
        for cmd, desc in COMMAND_HELP.items():
            log.write(f"  [cyan]/{cmd}[/cyan] -- {desc}")

    def _cmd_plan_response(self, approved: bool, log: EventLog) -> None:
        found = active_plan(self._screen.session.state.messages)
        if found is None:
            log.write("[yellow]No execution plan is waiting for a response.[/yellow]")
            return
        _, plan = found
        verb = "Approving" if approved else "Cancelling"
        log.write(f"[dim]{verb} plan {plan.id}[/dim]")
        self._screen.respond_to_plan(plan.id, approved)

    def _cmd_run(self, args: list[str], log: EventLog) -> None:
        if not args:
            log.add_class("visible")
            log.write(f"[yellow]Usage:[/yellow] {COMMAND_HELP['run']}")
            return
        step_id = args[0]
        log.write(f"[dim]Executing {step_id}[/dim]")
        self._screen.execute_step(step_id)

    def _cmd_reconnect(self, log: EventLog) -> None:
        log.write("[dim]Reconnecting to Watson...[/dim]")
        self._screen.reconnect()

    def _cmd_new(self, log: EventLog) -> None:
        log.write("[dim]Starting a new conversation...[/dim]")
        self._screen.new_conversation()

    def _cmd_status(self, log: EventLog) -> None:
        log.add_class("visible")
        self._screen.show_onboarding_status()

    def _cmd_logout(self, log: EventLog) -> None:
        log.write("[dim]Signing out...[/dim]")
        self._screen.logout()
