"""Inbound frame types sent by the orchestration service.

Each JSON frame carries a ``type`` discriminant and is parsed into a
typed dataclass for safe consumption by the dispatcher.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class ServerEvent:
    """Base inbound frame."""
    event_type: str = ""


@dataclass
class AiResponse(ServerEvent):
    event_type: str = "ai_response"
    content: str = ""
    timestamp: str | None = None
    intent: str | None = None
    confidence: float | None = None
    agent: str | None = None


@dataclass
class TypingIndicatorEvent(ServerEvent):
    event_type: str = "typing_indicator"
    is_typing: bool = False
    agent: str | None = None
    operation: str | None = None


@dataclass
class StepCompleted(ServerEvent):
    event_type: str = "step_completed"
    step_id: str = ""
    step_name: str | None = None


@dataclass
class StepFailed(ServerEvent):
    event_type: str = "step_failed"
    step_id: str = ""
    step_name: str | None = None


@dataclass
class ErrorEvent(ServerEvent):
    event_type: str = "error"
    message: str | None = None


@dataclass
class RecoveryEvent(ServerEvent):
    """Base for the ``recovery_*`` family."""
    message: str = ""
    recovery_id: str = ""
    step: int | None = None
    total_steps: int | None = None
    attempt: int | None = None
    attempts: int | None = None
    suggestions: list = field(default_factory=list)

    @property
    def kind(self) -> str:
        return self.event_type.removeprefix("recovery_")


@dataclass
class RecoveryStarted(RecoveryEvent):
    event_type: str = "recovery_started"


@dataclass
class RecoveryProgress(RecoveryEvent):
    event_type: str = "recovery_progress"


@dataclass
class RecoverySuccess(RecoveryEvent):
    event_type: str = "recovery_success"


@dataclass
class RecoveryEscalated(RecoveryEvent):
    event_type: str = "recovery_escalated"


@dataclass
class ConversationCreated(ServerEvent):
    event_type: str = "conversation_created"
    conversation_id: str = ""


@dataclass
class Pong(ServerEvent):
    event_type: str = "pong"


@dataclass
class AgentStatus(ServerEvent):
    """Live agent activity (tool execution progress) for the status bar."""
    event_type: str = "agent_status"
    conversation_id: str | None = None
    agent: str = ""
    status: str = "idle"  # "idle", "executing_tools", "processing_results", "error"
    activity: str = ""
    details: list = field(default_factory=list)
    progress: dict | None = None
    timestamp: str | None = None


# Map of frame type strings to dataclass constructors
_EVENT_MAP: dict[str, type[ServerEvent]] = {
    "ai_response": AiResponse,
    "typing_indicator": TypingIndicatorEvent,
    "step_completed": StepCompleted,
    "step_failed": StepFailed,
    "error": ErrorEvent,
    "recovery_started": RecoveryStarted,
    "recovery_progress": RecoveryProgress,
    "recovery_success": RecoverySuccess,
    "recovery_escalated": RecoveryEscalated,
    "conversation_created": ConversationCreated,
    "pong": Pong,
    "agent_status": AgentStatus,
}


def dict_to_event(data: dict[str, Any]) -> ServerEvent:
    """Convert an inbound frame dict to a typed event dataclass.

    Unknown ``type`` values become a bare ServerEvent carrying the tag.
    """
    event_type = str(data.get("type", "") or "")
    cls = _EVENT_MAP.get(event_type, ServerEvent)
    # Filter dict keys to only those the dataclass accepts
    valid_fields = {f.name for f in cls.__dataclass_fields__.values()}
    filtered = {
        k: v for k, v in data.items()
        if k in valid_fields and k != "event_type" and v is not None
    }
    filtered["event_type"] = event_type
    return cls(**filtered)
