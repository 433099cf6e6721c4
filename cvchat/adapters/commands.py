"""Outbound frame encoding.

Every function returns the JSON text sent over the realtime socket.
"""
from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _encode(frame: dict[str, Any]) -> str:
    return json.dumps(frame, ensure_ascii=False)


def encode_subscribe(conversation_id: str) -> str:
    return _encode({"type": "subscribe", "conversation_id": conversation_id})


def encode_ping() -> str:
    return _encode({"type": "ping"})


def user_message_frame(
    content: str,
    conversation_id: str,
    timestamp: str | None = None,
) -> dict[str, Any]:
    return {
        "type": "user_message",
        "content": content,
        "conversation_id": conversation_id,
        "timestamp": timestamp or _now_iso(),
    }


def encode_user_message(
    content: str,
    conversation_id: str,
    timestamp: str | None = None,
) -> str:
    return _encode(user_message_frame(content, conversation_id, timestamp))


def encode_step_execution(
    step_id: str,
    step_name: str,
    conversation_id: str,
    timestamp: str | None = None,
) -> str:
    """Ask the service to run one plan step."""
    frame = user_message_frame(
        f"Execute step: {step_name}", conversation_id, timestamp,
    )
    frame["step_execution"] = {"step_id": step_id, "step_name": step_name}
    return _encode(frame)


def encode_plan_response(
    plan_id: str,
    approved: bool,
    conversation_id: str,
    timestamp: str | None = None,
) -> str:
    """Approve or cancel a proposed execution plan."""
    content = "Approve execution plan" if approved else "Cancel execution plan"
    frame = user_message_frame(content, conversation_id, timestamp)
    frame["plan_response"] = {"plan_id": plan_id, "approved": approved}
    return _encode(frame)
