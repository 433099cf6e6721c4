"""Inbound event dispatcher and the chat state it mutates.

The dispatcher is the only writer of ChatState besides the session's
own send/approve/execute operations. Each inbound frame type maps to
one ``_handle_*`` method.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone

from cvchat.adapters.events import (
    AgentStatus,
    AiResponse,
    ConversationCreated,
    ErrorEvent,
    Pong,
    RecoveryEvent,
    ServerEvent,
    StepCompleted,
    StepFailed,
    TypingIndicatorEvent,
)
from cvchat.engine import plan as plans
from cvchat.engine.markers import is_execution_plan, is_step_failure, is_step_result
from cvchat.engine.thinking import rotate, select_thinking_messages
from cvchat.shared.models.message import (
    Message,
    MessageType,
    RecoveryInfo,
    StepStatus,
    TypingIndicator,
)

logger = logging.getLogger(__name__)

GENERIC_ERROR = "An error occurred"

WELCOME_TEXT = (
    "Welcome to ControlVector! I'm Watson, your AI infrastructure assistant. "
    "I can help you deploy applications, manage cloud resources, monitor "
    "systems, and much more. What would you like to do today?"
)

# def notify(message: str, *, severity: str = "information") -> None
Notify = Callable[..., None]


def welcome_message() -> Message:
    return Message(type=MessageType.SYSTEM, content=WELCOME_TEXT)


def _parse_timestamp(value: str | None) -> datetime:
    if value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            logger.debug("Unparseable timestamp %r; using local time", value)
    return datetime.now(timezone.utc)


@dataclass
class ChatState:
    """In-memory session state owned by one ChatSession."""

    messages: list[Message] = field(default_factory=list)
    typing: TypingIndicator = field(default_factory=TypingIndicator)
    conversation_id: str | None = None
    pending_intent: str | None = None
    thinking_messages: list[str] = field(default_factory=list)
    thinking_index: int = 0
    connected: bool = False
    agent_status: AgentStatus | None = None

    @property
    def thinking_message(self) -> str:
        if not self.thinking_messages:
            return ""
        return self.thinking_messages[self.thinking_index % len(self.thinking_messages)]

    def advance_thinking(self) -> None:
        self.thinking_index = rotate(self.thinking_index, self.thinking_messages)


class InboundDispatcher:
    """Applies inbound events to a ChatState."""

    def __init__(
        self,
        state: ChatState,
        notify: Notify | None = None,
        on_conversation_changed: Callable[[str], None] | None = None,
    ) -> None:
        self._state = state
        self._notify = notify or (lambda *args, **kwargs: None)
        self._on_conversation_changed = on_conversation_changed

    @property
    def state(self) -> ChatState:
        return self._state

    def dispatch(self, event: ServerEvent) -> None:
        if isinstance(event, AiResponse):
            self._handle_ai_response(event)
        elif isinstance(event, TypingIndicatorEvent):
            self._handle_typing(event)
        elif isinstance(event, StepCompleted):
            self._handle_step_completed(event)
        elif isinstance(event, StepFailed):
            self._handle_step_failed(event)
        elif isinstance(event, ErrorEvent):
            self._handle_error(event)
        elif isinstance(event, RecoveryEvent):
            self._handle_recovery(event)
        elif isinstance(event, ConversationCreated):
            self._handle_conversation_created(event)
        elif isinstance(event, AgentStatus):
            self._handle_agent_status(event)
        elif isinstance(event, Pong):
            pass
        else:
            logger.debug("Ignoring unknown frame type %r", event.event_type)

    # ── typing ───────────────────────────────────────────────────────

    def set_typing(self, typing: TypingIndicator) -> None:
        """Replace the typing indicator; entering typing reseeds thinking lines."""
        state = self._state
        was_typing = state.typing.is_typing
        state.typing = typing
        if typing.is_typing and not was_typing:
            state.thinking_messages = select_thinking_messages(
                operation=typing.operation,
                intent=state.pending_intent,
                agent=typing.agent,
            )
            state.thinking_index = 0

    def clear_typing(self) -> None:
        self._state.typing = TypingIndicator()

    # ── handlers ─────────────────────────────────────────────────────

    def _handle_ai_response(self, event: AiResponse) -> None:
        state = self._state
        content = event.content or ""
        common = dict(
            content=content,
            timestamp=_parse_timestamp(event.timestamp),
            intent=event.intent,
            confidence=event.confidence,
            agent=event.agent,
        )
        if is_step_result(content):
            state.messages = plans.resolve_executing_steps(
                state.messages, failed=is_step_failure(content),
            )
            state.messages.append(Message(type=MessageType.AI, **common))
        elif is_execution_plan(content) and not plans.has_outstanding_plan(state.messages):
            plan = plans.build_deployment_plan(content)
            logger.info("Proposed execution plan %s (%d steps)", plan.id, len(plan.steps))
            state.messages.append(
                Message(type=MessageType.EXECUTION_PLAN, execution_plan=plan, **common)
            )
        else:
            state.messages.append(Message(type=MessageType.AI, **common))

        self.clear_typing()
        state.pending_intent = None

    def _handle_typing(self, event: TypingIndicatorEvent) -> None:
        self.set_typing(TypingIndicator(
            is_typing=bool(event.is_typing),
            agent=event.agent,
            operation=event.operation,
        ))

    def _handle_step_completed(self, event: StepCompleted) -> None:
        self._state.messages = plans.with_step_status(
            self._state.messages, event.step_id, StepStatus.COMPLETED,
        )

    def _handle_step_failed(self, event: StepFailed) -> None:
        self._state.messages = plans.with_step_status(
            self._state.messages, event.step_id, StepStatus.FAILED,
        )
        self._notify(f"Step failed: {event.step_name or event.step_id}", severity="error")

    def _handle_error(self, event: ErrorEvent) -> None:
        logger.warning("Service error: %s", event.message)
        self._notify(event.message or GENERIC_ERROR, severity="error")
        self.clear_typing()

    def _handle_recovery(self, event: RecoveryEvent) -> None:
        info = RecoveryInfo(
            recovery_id=event.recovery_id,
            kind=event.kind,
            step=event.step,
            total_steps=event.total_steps,
            attempt=event.attempt,
            attempts=event.attempts,
            suggestions=tuple(str(s) for s in event.suggestions or ()),
        )
        self._state.messages.append(
            Message(type=MessageType.SYSTEM, content=event.message, recovery=info)
        )

    def _handle_conversation_created(self, event: ConversationCreated) -> None:
        if not event.conversation_id:
            logger.warning("conversation_created frame without an id")
            return
        self._state.conversation_id = event.conversation_id
        if self._on_conversation_changed is not None:
            self._on_conversation_changed(event.conversation_id)
        self._notify("New conversation started")

    def _handle_agent_status(self, event: AgentStatus) -> None:
        current = self._state.conversation_id
        if event.conversation_id and current and event.conversation_id != current:
            logger.debug(
                "Dropping agent status for conversation %s", event.conversation_id,
            )
            return
        self._state.agent_status = event
