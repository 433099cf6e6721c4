"""Token store — bearer tokens and conversation id in ~/.cvchat/credentials.json.

Holds the values the browser client kept under fixed local keys
(``access_token``, ``refresh_token``) plus the current conversation id.
The conversation id is only meaningful alongside a token: clearing the
tokens clears it too, and it is never returned without an access token.
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass
class StoredCredentials:
    access_token: str | None = None
    refresh_token: str | None = None
    conversation_id: str | None = None

    def validate(self) -> None:
        """Drop non-string values and orphaned conversation ids."""
        for name in ("access_token", "refresh_token", "conversation_id"):
            value = getattr(self, name)
            if value is not None and (not isinstance(value, str) or not value.strip()):
                setattr(self, name, None)
        if self.access_token is None:
            self.conversation_id = None


class TokenStore:
    """File-backed credential store with an in-memory cache."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._data = self._load()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> StoredCredentials:
        try:
            if self._path.exists():
                raw = json.loads(self._path.read_text())
                creds = StoredCredentials(**{
                    k: v for k, v in raw.items()
                    if k in StoredCredentials.__dataclass_fields__
                })
                creds.validate()
                logger.debug("Loaded credentials from %s", self._path)
                return creds
            logger.debug("Credentials file not found at %s", self._path)
        except (OSError, ValueError, TypeError, AttributeError):
            logger.warning("Failed to load credentials from %s; starting signed out", self._path)
        return StoredCredentials()

    def _save(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(self._path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            # the mode argument only applies when the file is created
            os.fchmod(fd, 0o600)
            with os.fdopen(fd, "w") as f:
                json.dump(asdict(self._data), f, indent=2)
        except OSError:
            logger.warning("Failed to save credentials to %s", self._path, exc_info=True)

    # ── tokens ───────────────────────────────────────────────────────

    @property
    def access_token(self) -> str | None:
        return self._data.access_token

    @property
    def refresh_token(self) -> str | None:
        return self._data.refresh_token

    def set_tokens(self, access_token: str, refresh_token: str | None) -> None:
        self._data.access_token = access_token or None
        self._data.refresh_token = refresh_token or None
        self._data.validate()
        self._save()

    def clear_tokens(self) -> None:
        """Sign out locally: forget tokens and the conversation id."""
        self._data = StoredCredentials()
        self._save()
        logger.info("Cleared stored tokens")

    # ── conversation ─────────────────────────────────────────────────

    @property
    def conversation_id(self) -> str | None:
        if not self._data.access_token:
            return None
        return self._data.conversation_id

    def set_conversation_id(self, conversation_id: str | None) -> None:
        if conversation_id and not self._data.access_token:
            logger.debug("Not persisting conversation id without an access token")
            return
        self._data.conversation_id = conversation_id or None
        self._save()

    def clear_conversation(self) -> None:
        self.set_conversation_id(None)
