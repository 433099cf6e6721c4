from __future__ import annotations

import asyncio
import json

import pytest

from cvchat.adapters.commands import (
    encode_ping,
    encode_plan_response,
    encode_step_execution,
    encode_subscribe,
    encode_user_message,
)
from cvchat.adapters.event_bus import EventBus
from cvchat.adapters.events import (
    AgentStatus,
    AiResponse,
    RecoveryProgress,
    ServerEvent,
    TypingIndicatorEvent,
    dict_to_event,
)


class TestOutboundFrames:
    def test_subscribe_and_ping(self) -> None:
        assert json.loads(encode_subscribe("c-1")) == {
            "type": "subscribe", "conversation_id": "c-1",
        }
        assert json.loads(encode_ping()) == {"type": "ping"}

    def test_user_message(self) -> None:
        frame = json.loads(encode_user_message("deploy my app", "c-1", "2024-05-01T10:00:00Z"))
        assert frame == {
            "type": "user_message",
            "content": "deploy my app",
            "conversation_id": "c-1",
            "timestamp": "2024-05-01T10:00:00Z",
        }

    def test_user_message_gets_utc_timestamp(self) -> None:
        frame = json.loads(encode_user_message("hi", "c-1"))
        assert frame["timestamp"].endswith("Z")

    def test_step_execution(self) -> None:
        frame = json.loads(encode_step_execution("step-2", "Provision", "c-1"))
        assert frame["type"] == "user_message"
        assert frame["content"] == "Execute step: Provision"
        assert frame["step_execution"] == {"step_id": "step-2", "step_name": "Provision"}

    @pytest.mark.parametrize("approved,content", [
        (True, "Approve execution plan"),
        (False, "Cancel execution plan"),
    ])
    def test_plan_response(self, approved: bool, content: str) -> None:
        frame = json.loads(encode_plan_response("plan-1", approved, "c-1"))
        assert frame["content"] == content
        assert frame["plan_response"] == {"plan_id": "plan-1", "approved": approved}

    def test_non_ascii_is_kept(self) -> None:
        assert "🚀" in encode_user_message("ship it 🚀", "c-1")


class TestInboundFrames:
    def test_known_type_is_typed(self) -> None:
        event = dict_to_event({
            "type": "ai_response", "content": "hi", "agent": "Watson", "extra": 1,
        })
        assert isinstance(event, AiResponse)
        assert event.agent == "Watson"

    def test_nulls_fall_back_to_defaults(self) -> None:
        event = dict_to_event({"type": "typing_indicator", "is_typing": None})
        assert isinstance(event, TypingIndicatorEvent)
        assert event.is_typing is False

    def test_recovery_kind(self) -> None:
        event = dict_to_event({"type": "recovery_progress", "attempt": 2, "attempts": 3})
        assert isinstance(event, RecoveryProgress)
        assert event.kind == "progress"

    def test_agent_status(self) -> None:
        event = dict_to_event({
            "type": "agent_status", "agent": "Atlas", "status": "executing_tools",
            "progress": {"completed": 1, "total": 3},
        })
        assert isinstance(event, AgentStatus)
        assert event.progress == {"completed": 1, "total": 3}

    def test_unknown_type_is_bare_event(self) -> None:
        event = dict_to_event({"type": "telemetry", "payload": {}})
        assert type(event) is ServerEvent
        assert event.event_type == "telemetry"


class TestEventBus:
    @pytest.mark.asyncio
    async def test_frames_are_consumed_in_order(self) -> None:
        bus = EventBus()
        callback = bus.make_callback()
        for i in range(3):
            await callback({"type": "ai_response", "content": str(i)})

        received = []
        async for event in bus.consume():
            received.append(event.content)
            if len(received) == 3:
                bus.close()
        assert received == ["0", "1", "2"]

    @pytest.mark.asyncio
    async def test_closed_bus_drops_frames(self) -> None:
        bus = EventBus()
        bus.close()
        await bus.make_callback()({"type": "pong"})
        assert bus.closed
        assert bus.pending() == 0

    @pytest.mark.asyncio
    async def test_consumer_stops_after_close(self) -> None:
        bus = EventBus()

        async def drain() -> list:
            return [event async for event in bus.consume()]

        task = asyncio.create_task(drain())
        await asyncio.sleep(0)
        bus.close()
        assert await asyncio.wait_for(task, timeout=2) == []
