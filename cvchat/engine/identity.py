"""Resolve user/workspace identity from a bearer token.

The token is a JWT. Only the payload segment is decoded; signature
verification belongs to the remote services.
"""
from __future__ import annotations

import base64
import binascii
import json
import logging
from dataclasses import dataclass

from .errors import IdentityError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    user_id: str
    workspace_id: str


def _b64url_decode(segment: str) -> bytes:
    padding = "=" * (-len(segment) % 4)
    return base64.urlsafe_b64decode(segment + padding)


def decode_token_payload(token: str) -> dict:
    """Return the JWT payload as a dict without verifying the signature."""
    parts = token.split(".")
    if len(parts) != 3:
        raise IdentityError("token is not a three-segment JWT")
    try:
        payload = json.loads(_b64url_decode(parts[1]))
    except (binascii.Error, ValueError) as exc:
        raise IdentityError(f"token payload is not valid JSON ({exc})") from exc
    if not isinstance(payload, dict):
        raise IdentityError("token payload is not an object")
    return payload


def resolve_identity(token: str | None) -> Identity:
    """Decode ``user_id`` and ``workspace_id`` from *token*.

    Raises:
        IdentityError: token absent, malformed, or missing either claim.
    """
    if not token:
        raise IdentityError("no access token")
    payload = decode_token_payload(token)
    user_id = payload.get("user_id")
    workspace_id = payload.get("workspace_id")
    if not user_id or not workspace_id:
        logger.debug(
            "Token payload missing identity claims (keys=%s)", sorted(payload)
        )
        raise IdentityError("token lacks user_id or workspace_id")
    return Identity(user_id=str(user_id), workspace_id=str(workspace_id))
