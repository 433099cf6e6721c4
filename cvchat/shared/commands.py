"""Slash command parser and help table."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class ParsedCommand:
    """A parsed slash command."""

    name: str
    args: list[str]
    raw: str


def parse_command(text: str) -> ParsedCommand | None:
    """Parse a /command from input text.

    Returns None if text does not start with '/' or names no command.
    """
    stripped = text.strip()
    if not stripped.startswith("/"):
        return None
    parts = stripped.split()
    name = parts[0][1:].lower()  # remove leading '/'
    if not name:
        return None
    args = parts[1:] if len(parts) > 1 else []
    return ParsedCommand(name=name, args=args, raw=stripped)


COMMAND_HELP: dict[str, str] = {
    "approve": "Approve the pending execution plan",
    "cancel": "Cancel the pending execution plan",
    "run": "/run STEP_ID (e.g. /run step-1) to execute one plan step",
    "reconnect": "Reconnect to Watson after the connection dropped",
    "new": "Start a new conversation",
    "status": "Show which credential categories are configured",
    "logout": "Sign out and clear stored tokens",
    "help": "Show this help message",
}
