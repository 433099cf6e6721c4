"""Chat session controller.

Owns the ChatState, the realtime transport and every timer attached to
the session (event consumer, thinking rotation, step fallbacks). UI code
talks to the session only through ``send_message``, ``execute_step``,
``respond_to_plan``, ``reconnect``, ``new_conversation`` and ``close``,
and observes it through change listeners.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from cvchat.adapters.commands import (
    encode_plan_response,
    encode_step_execution,
    encode_user_message,
)
from cvchat.adapters.conversation_api import ConversationAPI
from cvchat.adapters.event_bus import EventBus
from cvchat.adapters.events import ServerEvent
from cvchat.adapters.transport import RealtimeTransport
from cvchat.engine import plan as plans
from cvchat.engine.config import ClientConfig
from cvchat.engine.dispatcher import ChatState, InboundDispatcher, Notify, welcome_message
from cvchat.engine.errors import (
    ApiError,
    AuthenticationError,
    IdentityError,
    TransportError,
)
from cvchat.engine.identity import Identity, resolve_identity
from cvchat.engine.thinking import agent_for_intent, predict_intent
from cvchat.shared.models.message import (
    Message,
    MessageType,
    PlanStatus,
    StepStatus,
    TypingIndicator,
)
from cvchat.shared.services.token_store import TokenStore

logger = logging.getLogger(__name__)

MSG_LOGIN_REQUIRED = "Please log in to start chatting"
MSG_INVALID_AUTH = "Invalid authentication. Please log in again."
MSG_CONNECT_FAILED = "Failed to connect to AI assistant"
MSG_CONNECTION_ERROR = "Connection error occurred"
MSG_NOT_CONNECTED = "Not connected to Watson"

# Steps in these states cannot be started again.
_NOT_EXECUTABLE = frozenset({StepStatus.EXECUTING, StepStatus.COMPLETED, StepStatus.FAILED})


def _log_notify(message: str, *, severity: str = "information", **kwargs) -> None:
    level = logging.WARNING if severity in ("warning", "error") else logging.INFO
    logger.log(level, "notify: %s", message)


class ChatSession:
    """One mounted chat: state, transport and timers."""

    def __init__(
        self,
        config: ClientConfig,
        tokens: TokenStore,
        notify: Notify | None = None,
        conversation_api: ConversationAPI | None = None,
        transport_factory: Callable[..., RealtimeTransport] = RealtimeTransport,
    ) -> None:
        self._config = config
        self._tokens = tokens
        self._notify = notify or _log_notify
        self._conversation_api = conversation_api or ConversationAPI(
            config.api_url, tokens, timeout=config.request_timeout,
        )

        self.state = ChatState(messages=[welcome_message()])
        self._bus = EventBus()
        self._dispatcher = InboundDispatcher(
            self.state, self._notify, self._adopt_conversation,
        )
        self._transport = transport_factory(
            config,
            on_frame=self._bus.make_callback(),
            on_state_change=self._on_connection_change,
            on_auth_failure=self._on_auth_failure,
        )

        self._listeners: list[Callable[[ChatState], None]] = []
        self._auth_listeners: list[Callable[[], None]] = []
        self._consumer_task: asyncio.Task | None = None
        self._rotation_task: asyncio.Task | None = None
        self._fallback_tasks: set[asyncio.Task] = set()
        self._closed = False

    # ── observers ────────────────────────────────────────────────────

    @property
    def transport(self) -> RealtimeTransport:
        return self._transport

    @property
    def dispatcher(self) -> InboundDispatcher:
        return self._dispatcher

    @property
    def closed(self) -> bool:
        return self._closed

    def add_listener(self, listener: Callable[[ChatState], None]) -> None:
        """Call *listener* with the state after every change."""
        self._listeners.append(listener)

    def add_auth_listener(self, listener: Callable[[], None]) -> None:
        """Call *listener* when credentials are rejected and cleared."""
        self._auth_listeners.append(listener)

    def _emit_change(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self.state)
            except Exception:
                logger.exception("Chat state listener failed")

    # ── lifecycle ────────────────────────────────────────────────────

    async def start(self) -> bool:
        """Resolve identity, obtain a conversation and connect.

        Returns True when the transport is open. Failures are reported
        through ``notify`` and never raised.
        """
        token = self._tokens.access_token
        if not token:
            self._notify(MSG_LOGIN_REQUIRED, severity="error")
            return False
        try:
            identity = resolve_identity(token)
        except IdentityError as exc:
            logger.warning("%s", exc)
            self._notify(MSG_INVALID_AUTH, severity="error")
            return False

        conversation_id = self._tokens.conversation_id
        if conversation_id:
            logger.info("Reusing conversation %s", conversation_id)
        else:
            conversation_id = await self._create_conversation(identity)
            if not conversation_id:
                return False
        self.state.conversation_id = conversation_id

        self._ensure_consumer()
        return await self._connect(conversation_id, token)

    async def _create_conversation(self, identity: Identity) -> str | None:
        try:
            conversation_id = await self._conversation_api.create(identity)
        except AuthenticationError as exc:
            logger.warning("Conversation request rejected: %s", exc)
            self._on_auth_failure(401)
            return None
        except ApiError as exc:
            logger.warning("Failed to create conversation: %s", exc)
            self._notify(MSG_CONNECT_FAILED, severity="error")
            return None
        self._tokens.set_conversation_id(conversation_id)
        return conversation_id

    async def _connect(self, conversation_id: str, token: str) -> bool:
        try:
            await self._transport.connect(conversation_id, token)
        except AuthenticationError:
            # on_auth_failure already cleared the stored credentials
            return False
        except TransportError as exc:
            logger.warning("Realtime connect failed: %s", exc)
            self._notify(MSG_CONNECT_FAILED, severity="error")
            return False
        return True

    def _ensure_consumer(self) -> None:
        if self._consumer_task is None or self._consumer_task.done():
            self._consumer_task = asyncio.create_task(
                self.consume_events(), name="cvchat-consumer",
            )

    async def consume_events(self) -> None:
        """Apply inbound events in arrival order until the bus closes."""
        async for event in self._bus.consume():
            self.handle_event(event)

    def handle_event(self, event: ServerEvent) -> None:
        try:
            self._dispatcher.dispatch(event)
        except Exception:
            logger.exception("Error processing event: %s", event.event_type)
        self._sync_rotation()
        self._emit_change()

    async def reconnect(self) -> bool:
        """Reconnect on demand after the automatic attempt gave up."""
        if self._transport.is_open:
            return True
        token = self._tokens.access_token
        conversation_id = self.state.conversation_id
        if not token or not conversation_id:
            return await self.start()
        self._ensure_consumer()
        return await self._connect(conversation_id, token)

    async def new_conversation(self) -> bool:
        """Create a fresh conversation and move the connection to it."""
        token = self._tokens.access_token
        try:
            identity = resolve_identity(token)
        except IdentityError as exc:
            logger.warning("%s", exc)
            self._notify(MSG_INVALID_AUTH if token else MSG_LOGIN_REQUIRED, severity="error")
            return False
        conversation_id = await self._create_conversation(identity)
        if not conversation_id:
            return False

        await self._transport.close()
        self._dispatcher.clear_typing()
        self.state.pending_intent = None
        self.state.conversation_id = conversation_id
        self._sync_rotation()
        self._notify("New conversation started")
        self._emit_change()
        self._ensure_consumer()
        return await self._connect(conversation_id, token)

    async def close(self) -> None:
        """Tear down the transport and every task owned by the session."""
        if self._closed:
            return
        self._closed = True
        tasks = [t for t in (self._rotation_task, self._consumer_task) if t is not None]
        tasks.extend(self._fallback_tasks)
        self._rotation_task = self._consumer_task = None
        self._fallback_tasks.clear()
        for task in tasks:
            task.cancel()

        await self._transport.close()
        self._bus.close()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        await self._conversation_api.close()
        logger.info("Chat session closed")

    # ── callbacks from the transport ─────────────────────────────────

    def _on_connection_change(self, connected: bool) -> None:
        self.state.connected = connected
        if not connected:
            self._dispatcher.clear_typing()
            if not self._closed:
                self._sync_rotation()
        self._emit_change()

    def _on_auth_failure(self, code: int) -> None:
        logger.warning("Credentials rejected (code %s); signing out", code)
        self._tokens.clear_tokens()
        self.state.conversation_id = None
        self._notify(MSG_INVALID_AUTH, severity="error")
        for listener in list(self._auth_listeners):
            try:
                listener()
            except Exception:
                logger.exception("Auth failure listener failed")

    def _adopt_conversation(self, conversation_id: str) -> None:
        self._tokens.set_conversation_id(conversation_id)
        self._transport.set_conversation_id(conversation_id)

    # ── user operations ──────────────────────────────────────────────

    def _require_connection(self) -> str | None:
        conversation_id = self.state.conversation_id
        if not self._transport.is_open or not conversation_id:
            self._notify(MSG_NOT_CONNECTED, severity="warning")
            return None
        return conversation_id

    async def send_message(self, content: str) -> bool:
        """Append a user message, send it, and show the agent as typing."""
        content = content.strip()
        if not content:
            return False
        conversation_id = self._require_connection()
        if conversation_id is None:
            return False

        intent = predict_intent(content)
        self.state.pending_intent = intent
        self.state.messages.append(
            Message(type=MessageType.USER, content=content, intent=intent)
        )
        self._emit_change()
        try:
            await self._transport.send(encode_user_message(content, conversation_id))
        except TransportError as exc:
            logger.warning("Failed to send message: %s", exc)
            self.state.pending_intent = None
            self._notify(MSG_CONNECTION_ERROR, severity="error")
            return False

        self._dispatcher.set_typing(
            TypingIndicator(is_typing=True, agent=agent_for_intent(intent))
        )
        self._sync_rotation()
        self._emit_change()
        return True

    async def execute_step(self, step_id: str) -> bool:
        """Start one plan step, with a timed completion fallback."""
        found = plans.find_step(self.state.messages, step_id)
        if found is None:
            self._notify(f"Unknown step: {step_id}", severity="warning")
            return False
        _, step = found
        if step.status in _NOT_EXECUTABLE:
            logger.debug("Step %s is %s; not executing", step_id, step.status.value)
            return False
        conversation_id = self._require_connection()
        if conversation_id is None:
            return False

        previous = step.status
        self.state.messages = plans.with_step_status(
            self.state.messages, step_id, StepStatus.EXECUTING,
        )
        self._emit_change()
        try:
            await self._transport.send(encode_step_execution(
                step_id, plans.step_display_name(step), conversation_id,
            ))
        except TransportError as exc:
            logger.warning("Failed to request step %s: %s", step_id, exc)
            self.state.messages = plans.with_step_status(
                self.state.messages, step_id, previous,
            )
            self._notify(MSG_CONNECTION_ERROR, severity="error")
            self._emit_change()
            return False

        task = asyncio.create_task(
            self._step_fallback(step_id), name=f"cvchat-fallback-{step_id}",
        )
        self._fallback_tasks.add(task)
        task.add_done_callback(self._fallback_tasks.discard)
        return True

    async def _step_fallback(self, step_id: str) -> None:
        await asyncio.sleep(self._config.step_fallback_delay)
        found = plans.find_step(self.state.messages, step_id)
        if found is None or found[1].status is not StepStatus.EXECUTING:
            return
        logger.info("No result for step %s after %ss; marking completed",
                    step_id, self._config.step_fallback_delay)
        self.state.messages = plans.with_step_status(
            self.state.messages, step_id, StepStatus.COMPLETED,
        )
        self._emit_change()

    async def respond_to_plan(self, plan_id: str, approved: bool) -> bool:
        """Approve or cancel an outstanding execution plan."""
        found = plans.find_plan(self.state.messages, plan_id)
        if found is None:
            self._notify(f"Unknown plan: {plan_id}", severity="warning")
            return False
        _, plan = found
        if plan.status is not PlanStatus.AWAITING_APPROVAL:
            self._notify(f"Plan is already {plan.status.value}", severity="warning")
            return False
        conversation_id = self._require_connection()
        if conversation_id is None:
            return False

        if approved:
            self.state.messages = plans.approve_plan(self.state.messages, plan_id)
        else:
            self.state.messages = plans.cancel_plan(self.state.messages, plan_id)
        self._emit_change()
        try:
            await self._transport.send(
                encode_plan_response(plan_id, approved, conversation_id)
            )
        except TransportError as exc:
            logger.warning("Failed to send plan response: %s", exc)
            self._notify(MSG_CONNECTION_ERROR, severity="error")
            return False
        return True

    # ── thinking rotation ────────────────────────────────────────────

    def _sync_rotation(self) -> None:
        typing = self.state.typing.is_typing
        task = self._rotation_task
        if typing and (task is None or task.done()) and not self._closed:
            self._rotation_task = asyncio.create_task(
                self._rotate_thinking(), name="cvchat-thinking",
            )
        elif not typing and task is not None:
            if not task.done() and task is not asyncio.current_task():
                task.cancel()
            self._rotation_task = None

    async def _rotate_thinking(self) -> None:
        while True:
            await asyncio.sleep(self._config.thinking_interval)
            if not self.state.typing.is_typing:
                return
            self.state.advance_thinking()
            self._emit_change()
