from __future__ import annotations

import asyncio
import functools
import json
from collections import namedtuple

import aiohttp
import pytest

from cvchat.adapters.events import AiResponse, StepFailed, TypingIndicatorEvent
from cvchat.adapters.transport import RealtimeTransport
from cvchat.engine import plan as plans
from cvchat.engine.chat import (
    MSG_CONNECT_FAILED,
    MSG_CONNECTION_ERROR,
    MSG_INVALID_AUTH,
    MSG_LOGIN_REQUIRED,
    MSG_NOT_CONNECTED,
    ChatSession,
)
from cvchat.engine.dispatcher import WELCOME_TEXT
from cvchat.engine.errors import ApiError, AuthenticationError, TransportError
from cvchat.engine.markers import EXECUTION_PLAN_MARKER
from cvchat.shared.models.message import MessageType, PlanStatus, StepStatus

_Msg = namedtuple("_Msg", "type data")


class FakeTransport:
    def __init__(self, config, on_frame, on_state_change=None, on_auth_failure=None) -> None:
        self.on_frame = on_frame
        self.on_state_change = on_state_change
        self.on_auth_failure = on_auth_failure
        self.connects: list[tuple[str, str]] = []
        self.sent: list[dict] = []
        self.is_open = False
        self.connect_error: Exception | None = None
        self.send_error = False
        self.close_calls = 0
        self.conversation_id: str | None = None

    def set_conversation_id(self, conversation_id: str) -> None:
        self.conversation_id = conversation_id

    async def connect(self, conversation_id: str, token: str) -> FakeTransport:
        self.connects.append((conversation_id, token))
        self.conversation_id = conversation_id
        if self.connect_error is not None:
            raise self.connect_error
        self.is_open = True
        self.on_state_change(True)
        return self

    async def send(self, text: str) -> None:
        if not self.is_open or self.send_error:
            raise TransportError("not connected")
        self.sent.append(json.loads(text))

    async def close(self) -> None:
        self.close_calls += 1
        if self.is_open:
            self.is_open = False
            self.on_state_change(False)


class FakeConversationAPI:
    def __init__(self, *results) -> None:
        self.results = list(results) or ["conv-new"]
        self.identities = []
        self.closed = False

    async def create(self, identity) -> str:
        self.identities.append(identity)
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    async def close(self) -> None:
        self.closed = True


class Notices(list):
    def __call__(self, message: str, *, severity: str = "information") -> None:
        self.append((message, severity))

    @property
    def texts(self) -> list[str]:
        return [text for text, _ in self]


def _session(config, tokens, api=None):
    notices = Notices()
    api = api or FakeConversationAPI()
    session = ChatSession(
        config, tokens, notify=notices, conversation_api=api,
        transport_factory=FakeTransport,
    )
    return session, notices, api


async def _until(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.01)


async def _started(config, tokens, api=None):
    session, notices, api = _session(config, tokens, api)
    assert await session.start()
    return session, notices, api


def _with_plan(session: ChatSession) -> str:
    session.handle_event(AiResponse(content=f"{EXECUTION_PLAN_MARKER}\nReady"))
    _, plan = plans.active_plan(session.state.messages)
    return plan.id


def _step_status(session: ChatSession, step_id: str) -> StepStatus:
    return plans.find_step(session.state.messages, step_id)[1].status


class TestStart:
    @pytest.mark.asyncio
    async def test_welcome_message_is_seeded(self, config, tokens) -> None:
        session, _, _ = _session(config, tokens)
        [welcome] = session.state.messages
        assert welcome.type is MessageType.SYSTEM
        assert welcome.content == WELCOME_TEXT
        await session.close()

    @pytest.mark.asyncio
    async def test_creates_conversation_and_connects(self, config, tokens, access_token) -> None:
        session, notices, api = await _started(config, tokens)

        assert api.identities[0].user_id == "user-1"
        assert api.identities[0].workspace_id == "ws-1"
        assert session.transport.connects == [("conv-new", access_token)]
        assert session.state.conversation_id == "conv-new"
        assert session.state.connected
        assert tokens.conversation_id == "conv-new"
        assert notices == []
        await session.close()

    @pytest.mark.asyncio
    async def test_reuses_stored_conversation(self, config, tokens) -> None:
        tokens.set_conversation_id("conv-old")
        session, _, api = await _started(config, tokens)
        assert api.identities == []
        assert session.transport.connects[0][0] == "conv-old"
        await session.close()

    @pytest.mark.asyncio
    async def test_without_token(self, config, tokens) -> None:
        tokens.clear_tokens()
        session, notices, api = _session(config, tokens)
        assert not await session.start()
        assert notices.texts == [MSG_LOGIN_REQUIRED]
        assert session.transport.connects == []
        await session.close()

    @pytest.mark.asyncio
    async def test_with_malformed_token(self, config, tokens) -> None:
        tokens.set_tokens("not-a-jwt", None)
        session, notices, api = _session(config, tokens)
        assert not await session.start()
        assert notices.texts == [MSG_INVALID_AUTH]
        assert api.identities == []
        await session.close()

    @pytest.mark.asyncio
    async def test_rejected_conversation_request_signs_out(self, config, tokens) -> None:
        api = FakeConversationAPI(AuthenticationError("http://watson.test"))
        session, notices, _ = _session(config, tokens, api)
        signed_out = []
        session.add_auth_listener(lambda: signed_out.append(True))

        assert not await session.start()
        assert tokens.access_token is None
        assert notices.texts == [MSG_INVALID_AUTH]
        assert signed_out == [True]
        await session.close()

    @pytest.mark.asyncio
    async def test_conversation_service_failure(self, config, tokens) -> None:
        api = FakeConversationAPI(ApiError("http://watson.test", 500))
        session, notices, _ = _session(config, tokens, api)
        assert not await session.start()
        assert notices.texts == [MSG_CONNECT_FAILED]
        assert tokens.access_token is not None
        await session.close()

    @pytest.mark.asyncio
    async def test_transport_failure(self, config, tokens) -> None:
        session, notices, _ = _session(config, tokens)
        session.transport.connect_error = TransportError("refused")
        assert not await session.start()
        assert notices.texts == [MSG_CONNECT_FAILED]
        await session.close()


class TestSendMessage:
    @pytest.mark.asyncio
    async def test_appends_sends_and_shows_typing(self, config, tokens) -> None:
        session, _, _ = await _started(config, tokens)
        changes = []
        session.add_listener(lambda state: changes.append(len(state.messages)))

        assert await session.send_message("  deploy my app  ")

        user = session.state.messages[-1]
        assert user.type is MessageType.USER
        assert user.content == "deploy my app"
        assert user.intent == "deploy_application"
        frame = session.transport.sent[-1]
        assert frame["type"] == "user_message"
        assert frame["content"] == "deploy my app"
        assert frame["conversation_id"] == "conv-new"
        assert session.state.typing.is_typing
        assert session.state.typing.agent == "Phoenix"
        assert session.state.thinking_messages
        assert changes
        await session.close()

    @pytest.mark.asyncio
    async def test_blank_message_is_ignored(self, config, tokens) -> None:
        session, _, _ = await _started(config, tokens)
        sent_before = list(session.transport.sent)
        assert not await session.send_message("   ")
        assert session.transport.sent == sent_before
        assert len(session.state.messages) == 1
        await session.close()

    @pytest.mark.asyncio
    async def test_requires_connection(self, config, tokens) -> None:
        session, notices, _ = _session(config, tokens)
        assert not await session.send_message("hello")
        assert notices.texts == [MSG_NOT_CONNECTED]
        assert len(session.state.messages) == 1
        await session.close()

    @pytest.mark.asyncio
    async def test_send_failure_notifies(self, config, tokens) -> None:
        session, notices, _ = await _started(config, tokens)
        session.transport.send_error = True
        assert not await session.send_message("hello")
        assert notices.texts == [MSG_CONNECTION_ERROR]
        assert session.state.pending_intent is None
        assert not session.state.typing.is_typing
        await session.close()

    @pytest.mark.asyncio
    async def test_thinking_lines_rotate_while_typing(self, config, tokens) -> None:
        session, _, _ = await _started(config, tokens)
        await session.send_message("how much am I spending?")
        await _until(lambda: session.state.thinking_index > 0)

        session.handle_event(AiResponse(content="About $40 per month"))
        assert not session.state.typing.is_typing
        assert session._rotation_task is None
        await session.close()


class TestInboundFlow:
    @pytest.mark.asyncio
    async def test_frames_reach_the_state_in_order(self, config, tokens) -> None:
        session, _, _ = await _started(config, tokens)
        seen = []
        session.add_listener(lambda state: seen.append(state.messages[-1].content))

        await session.transport.on_frame({"type": "typing_indicator", "is_typing": True})
        await session.transport.on_frame({"type": "ai_response", "content": "first"})
        await session.transport.on_frame({"type": "ai_response", "content": "second"})
        await _until(lambda: len(session.state.messages) == 3)

        assert [m.content for m in session.state.messages[1:]] == ["first", "second"]
        assert seen[-2:] == ["first", "second"]
        await session.close()

    @pytest.mark.asyncio
    async def test_conversation_created_frame_is_persisted(self, config, tokens) -> None:
        session, notices, _ = await _started(config, tokens)
        await session.transport.on_frame({
            "type": "conversation_created", "conversation_id": "conv-server",
        })
        await _until(lambda: session.state.conversation_id == "conv-server")
        assert tokens.conversation_id == "conv-server"
        assert session.transport.conversation_id == "conv-server"
        assert "New conversation started" in notices.texts
        await session.close()

    @pytest.mark.asyncio
    async def test_disconnect_clears_typing(self, config, tokens) -> None:
        session, _, _ = await _started(config, tokens)
        session.handle_event(TypingIndicatorEvent(is_typing=True))
        await session.transport.close()
        assert not session.state.connected
        assert not session.state.typing.is_typing
        await session.close()


class TestExecuteStep:
    @pytest.mark.asyncio
    async def test_marks_executing_and_sends_frame(self, config, tokens) -> None:
        session, _, _ = await _started(config, tokens)
        _with_plan(session)

        assert await session.execute_step("step-2")

        assert _step_status(session, "step-2") is StepStatus.EXECUTING
        frame = session.transport.sent[-1]
        assert frame["content"] == "Execute step: Provision"
        assert frame["step_execution"] == {"step_id": "step-2", "step_name": "Provision"}
        await session.close()

    @pytest.mark.asyncio
    async def test_fallback_completes_silent_step(self, config, tokens) -> None:
        session, _, _ = await _started(config, tokens)
        _with_plan(session)
        await session.execute_step("step-1")

        await _until(lambda: _step_status(session, "step-1") is StepStatus.COMPLETED)
        await session.close()

    @pytest.mark.asyncio
    async def test_fallback_does_not_override_failure(self, config, tokens) -> None:
        session, _, _ = await _started(config, tokens)
        _with_plan(session)
        await session.execute_step("step-1")
        session.handle_event(StepFailed(step_id="step-1"))

        await asyncio.sleep(config.step_fallback_delay * 3)
        assert _step_status(session, "step-1") is StepStatus.FAILED
        await session.close()

    @pytest.mark.asyncio
    async def test_finished_steps_are_not_rerun(self, config, tokens) -> None:
        session, _, _ = await _started(config, tokens)
        _with_plan(session)
        session.state.messages = plans.with_step_status(
            session.state.messages, "step-1", StepStatus.COMPLETED,
        )
        sent_before = len(session.transport.sent)

        assert not await session.execute_step("step-1")
        assert len(session.transport.sent) == sent_before
        await session.close()

    @pytest.mark.asyncio
    async def test_unknown_step(self, config, tokens) -> None:
        session, notices, _ = await _started(config, tokens)
        assert not await session.execute_step("step-7")
        assert notices.texts == ["Unknown step: step-7"]
        await session.close()

    @pytest.mark.asyncio
    async def test_send_failure_reverts_step(self, config, tokens) -> None:
        session, notices, _ = await _started(config, tokens)
        _with_plan(session)
        session.transport.send_error = True

        assert not await session.execute_step("step-3")
        assert _step_status(session, "step-3") is StepStatus.PENDING
        assert notices.texts == [MSG_CONNECTION_ERROR]
        await session.close()


class TestRespondToPlan:
    @pytest.mark.asyncio
    async def test_approve(self, config, tokens) -> None:
        session, notices, _ = await _started(config, tokens)
        plan_id = _with_plan(session)

        assert await session.respond_to_plan(plan_id, approved=True)

        _, plan = plans.find_plan(session.state.messages, plan_id)
        assert plan.status is PlanStatus.APPROVED
        assert session.transport.sent[-1]["plan_response"] == {
            "plan_id": plan_id, "approved": True,
        }
        assert not await session.respond_to_plan(plan_id, approved=False)
        assert notices.texts == ["Plan is already approved"]
        await session.close()

    @pytest.mark.asyncio
    async def test_cancel(self, config, tokens) -> None:
        session, _, _ = await _started(config, tokens)
        plan_id = _with_plan(session)

        assert await session.respond_to_plan(plan_id, approved=False)

        assert plans.active_plan(session.state.messages) is None
        assert session.transport.sent[-1]["content"] == "Cancel execution plan"
        await session.close()


class TestAuthAndLifecycle:
    @pytest.mark.asyncio
    async def test_auth_close_signs_out(self, config, tokens) -> None:
        session, notices, _ = await _started(config, tokens)
        signed_out = []
        session.add_auth_listener(lambda: signed_out.append(True))

        session.transport.on_auth_failure(4401)

        assert tokens.access_token is None
        assert tokens.conversation_id is None
        assert session.state.conversation_id is None
        assert notices.texts == [MSG_INVALID_AUTH]
        assert signed_out == [True]
        await session.close()

    @pytest.mark.asyncio
    async def test_new_conversation_moves_connection(self, config, tokens, access_token) -> None:
        api = FakeConversationAPI("conv-1", "conv-2")
        session, notices, _ = await _started(config, tokens, api)

        assert await session.new_conversation()

        assert session.transport.connects[-1] == ("conv-2", access_token)
        assert session.state.conversation_id == "conv-2"
        assert tokens.conversation_id == "conv-2"
        assert "New conversation started" in notices.texts
        await session.close()

    @pytest.mark.asyncio
    async def test_reconnect_reuses_conversation(self, config, tokens) -> None:
        session, _, _ = await _started(config, tokens)
        await session.transport.close()

        assert await session.reconnect()
        assert [c[0] for c in session.transport.connects] == ["conv-new", "conv-new"]
        await session.close()

    @pytest.mark.asyncio
    async def test_close_cancels_owned_tasks(self, config, tokens) -> None:
        config.step_fallback_delay = 60.0
        session, _, api = await _started(config, tokens)
        _with_plan(session)
        await session.execute_step("step-1")
        await session.send_message("status?")
        fallback_tasks = list(session._fallback_tasks)
        rotation = session._rotation_task

        await session.close()
        await session.close()

        assert session.closed
        assert all(task.cancelled() for task in fallback_tasks)
        assert rotation.cancelled()
        assert not session.transport.is_open
        assert api.closed
        # the optimistic status is left as-is once the session is gone
        assert _step_status(session, "step-1") is StepStatus.EXECUTING


class _Socket:
    """Just enough of aiohttp's client websocket for RealtimeTransport."""

    def __init__(self) -> None:
        self.sent: list[dict] = []
        self.closed = False
        self.close_code: int | None = None
        self._inbox: asyncio.Queue = asyncio.Queue()

    async def send_str(self, text: str) -> None:
        self.sent.append(json.loads(text))

    async def close(self, *, code: int = 1000) -> bool:
        self.server_close(code)
        return True

    def exception(self) -> None:
        return None

    def feed(self, frame: dict) -> None:
        self._inbox.put_nowait(_Msg(aiohttp.WSMsgType.TEXT, json.dumps(frame)))

    def server_close(self, code: int) -> None:
        if not self.closed:
            self.closed = True
            self.close_code = code
            self._inbox.put_nowait(None)

    def __aiter__(self):
        return self

    async def __anext__(self):
        msg = await self._inbox.get()
        if msg is None:
            raise StopAsyncIteration
        return msg


class _SocketFactory:
    def __init__(self) -> None:
        self.params: list[dict] = []
        self.sockets: list[_Socket] = []

    async def __call__(self, url: str, params: dict) -> _Socket:
        self.params.append(dict(params))
        self.sockets.append(_Socket())
        return self.sockets[-1]


class TestRealTransport:
    @pytest.mark.asyncio
    async def test_reconnect_follows_server_assigned_conversation(
        self, config, tokens,
    ) -> None:
        factory = _SocketFactory()
        notices = Notices()
        session = ChatSession(
            config, tokens, notify=notices,
            conversation_api=FakeConversationAPI("conv-old"),
            transport_factory=functools.partial(RealtimeTransport, socket_factory=factory),
        )
        assert await session.start()
        assert factory.params[0]["conversation_id"] == "conv-old"

        factory.sockets[0].feed({
            "type": "conversation_created", "conversation_id": "conv-new",
        })
        await _until(lambda: session.state.conversation_id == "conv-new")
        factory.sockets[0].server_close(1006)
        await _until(lambda: len(factory.sockets) == 2 and session.transport.is_open)

        assert factory.params[1]["conversation_id"] == "conv-new"
        assert factory.sockets[1].sent[0] == {
            "type": "subscribe", "conversation_id": "conv-new",
        }
        assert await session.send_message("hello again")
        assert factory.sockets[1].sent[-1]["conversation_id"] == "conv-new"
        await session.close()
