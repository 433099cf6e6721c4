"""Exception hierarchy for the chat client.

Specific exceptions for each failure mode. The chat session converts
these into notifications at its boundary; REST callers catch them.
"""
from __future__ import annotations


class ControlVectorError(Exception):
    """Base exception for all client errors."""


class IdentityError(ControlVectorError):
    """Bearer token is missing, malformed, or lacks identity claims."""
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Cannot resolve identity: {reason}")


class AuthenticationError(ControlVectorError):
    """The remote service rejected our credentials (HTTP 401)."""
    def __init__(self, url: str, message: str = "Unauthorized"):
        self.url = url
        super().__init__(f"{message} ({url})")


class ApiError(ControlVectorError):
    """A REST call returned a non-success status."""
    def __init__(self, url: str, status: int, message: str = ""):
        self.url = url
        self.status = status
        self.message = message
        detail = f": {message}" if message else ""
        super().__init__(f"Request to {url} failed with HTTP {status}{detail}")


class TransportError(ControlVectorError):
    """The realtime connection could not be used."""
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Transport error: {reason}")
