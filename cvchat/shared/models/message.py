"""Chat message, execution plan and typing indicator models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any
import uuid


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _gen_id() -> str:
    return str(uuid.uuid4())[:8]


class MessageType(Enum):
    USER = "user"
    AI = "ai"
    SYSTEM = "system"
    EXECUTION_PLAN = "execution_plan"


class StepStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STEP_STATUSES


_TERMINAL_STEP_STATUSES = frozenset(
    {StepStatus.COMPLETED, StepStatus.FAILED, StepStatus.SKIPPED}
)


class PlanStatus(Enum):
    AWAITING_APPROVAL = "awaiting_approval"
    APPROVED = "approved"
    EXECUTING = "executing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_outstanding(self) -> bool:
        return self not in (PlanStatus.COMPLETED, PlanStatus.CANCELLED)


@dataclass(frozen=True)
class ExecutionStep:
    id: str
    service: str
    action: str
    description: str
    parameters: dict[str, Any] = field(default_factory=dict)
    status: StepStatus = StepStatus.PENDING
    estimated_time: str | None = None


@dataclass(frozen=True)
class ExecutionPlan:
    id: str
    objective: str
    steps: tuple[ExecutionStep, ...] = ()
    status: PlanStatus = PlanStatus.AWAITING_APPROVAL
    total_estimated_time: str | None = None

    def get_step(self, step_id: str) -> ExecutionStep | None:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None


@dataclass(frozen=True)
class RecoveryInfo:
    """Metadata carried by ``recovery_*`` frames."""
    recovery_id: str
    kind: str  # "started", "progress", "success", "escalated"
    step: int | None = None
    total_steps: int | None = None
    attempt: int | None = None
    attempts: int | None = None
    suggestions: tuple[str, ...] = ()


@dataclass(frozen=True)
class Message:
    type: MessageType
    content: str
    id: str = field(default_factory=_gen_id)
    timestamp: datetime = field(default_factory=_utcnow)
    intent: str | None = None
    confidence: float | None = None
    agent: str | None = None
    execution_plan: ExecutionPlan | None = None
    recovery: RecoveryInfo | None = None


@dataclass(frozen=True)
class TypingIndicator:
    is_typing: bool = False
    agent: str | None = None
    operation: str | None = None
