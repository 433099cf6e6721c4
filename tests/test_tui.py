"""Tests for the TUI pieces that carry logic: plan panel, slash commands, prompt history."""
from __future__ import annotations

from dataclasses import replace
from unittest.mock import MagicMock

import pytest
from textual.app import App, ComposeResult
from textual.widgets import Button

from cvchat.engine import plan as plans
from cvchat.shared.models.message import Message, MessageType, PlanStatus, StepStatus
from cvchat.tui.handlers.command_handler import CommandHandler
from cvchat.tui.widgets.input_bar import PromptHistory
from cvchat.tui.widgets.plan_panel import PlanPanel, step_button_label, step_is_disabled


def _step(status: StepStatus):
    return replace(plans.build_deployment_plan().steps[1], status=status)


class TestStepButtons:
    def test_labels(self) -> None:
        assert step_button_label(_step(StepStatus.PENDING)) == "Provision"
        assert step_button_label(_step(StepStatus.APPROVED)) == "Execute"
        assert step_button_label(_step(StepStatus.EXECUTING)) == "Running..."
        assert step_button_label(_step(StepStatus.COMPLETED)) == "✓ Done"
        assert step_button_label(_step(StepStatus.FAILED)) == "✗ Failed"

    def test_finished_steps_are_disabled(self) -> None:
        assert not step_is_disabled(_step(StepStatus.PENDING))
        assert not step_is_disabled(_step(StepStatus.APPROVED))
        assert step_is_disabled(_step(StepStatus.EXECUTING))
        assert step_is_disabled(_step(StepStatus.COMPLETED))
        assert step_is_disabled(_step(StepStatus.FAILED))


class _PlanApp(App):
    def __init__(self, plan) -> None:
        super().__init__()
        self.plan = plan
        self.steps: list[str] = []
        self.responses: list[tuple[str, bool]] = []

    def compose(self) -> ComposeResult:
        yield PlanPanel(self.plan, id="plan")

    def on_plan_panel_step_requested(self, event: PlanPanel.StepRequested) -> None:
        self.steps.append(event.step_id)

    def on_plan_panel_plan_responded(self, event: PlanPanel.PlanResponded) -> None:
        self.responses.append((event.plan_id, event.approved))


@pytest.mark.asyncio
async def test_plan_panel_posts_approval_and_step_requests() -> None:
    plan = plans.build_deployment_plan(plan_id="plan-7")
    app = _PlanApp(plan)
    async with app.run_test(size=(120, 40)) as pilot:
        app.query_one(".plan-approve", Button).press()
        await pilot.pause()
        step_buttons = list(app.query(".step-button").results(Button))
        assert [b.name for b in step_buttons] == [s.id for s in plan.steps]
        step_buttons[2].press()
        await pilot.pause()

    assert app.responses == [("plan-7", True)]
    assert app.steps == ["step-3"]


@pytest.mark.asyncio
async def test_plan_panel_hides_actions_once_answered() -> None:
    plan = plans.build_deployment_plan(plan_id="plan-7")
    app = _PlanApp(plan)
    async with app.run_test(size=(120, 40)) as pilot:
        panel = app.query_one(PlanPanel)
        panel.update_plan(replace(plan, status=PlanStatus.APPROVED))
        await pilot.pause()
        assert not app.query(".plan-approve")


def _screen_with_messages(messages):
    screen = MagicMock()
    screen.session.state.messages = messages
    return screen


class TestCommandHandler:
    def test_approve_targets_the_active_plan(self) -> None:
        plan = plans.build_deployment_plan(plan_id="plan-3")
        screen = _screen_with_messages([
            Message(type=MessageType.EXECUTION_PLAN, content="", execution_plan=plan),
        ])
        assert CommandHandler(screen).handle_command("approve", [])
        screen.respond_to_plan.assert_called_once_with("plan-3", True)

    def test_cancel_without_plan_does_nothing(self) -> None:
        screen = _screen_with_messages([])
        assert CommandHandler(screen).handle_command("cancel", [])
        screen.respond_to_plan.assert_not_called()

    def test_run_requires_a_step_id(self) -> None:
        screen = _screen_with_messages([])
        handler = CommandHandler(screen)
        handler.handle_command("run", [])
        screen.execute_step.assert_not_called()
        handler.handle_command("RUN", ["step-4"])
        screen.execute_step.assert_called_once_with("step-4")

    @pytest.mark.parametrize("name,method", [
        ("reconnect", "reconnect"),
        ("new", "new_conversation"),
        ("status", "show_onboarding_status"),
        ("logout", "logout"),
    ])
    def test_session_commands(self, name: str, method: str) -> None:
        screen = _screen_with_messages([])
        assert CommandHandler(screen).handle_command(name, [])
        getattr(screen, method).assert_called_once_with()

    def test_unknown_command(self) -> None:
        screen = _screen_with_messages([])
        assert not CommandHandler(screen).handle_command("deploy", [])
        log = screen.query_one.return_value
        assert "Unknown command" in log.write.call_args[0][0]


class TestPromptHistory:
    def test_recall_walks_back_and_restores_draft(self) -> None:
        history = PromptHistory()
        history.record("deploy my app")
        history.record("/approve")

        assert history.older("half typed") == "/approve"
        assert history.older("/approve") == "deploy my app"
        assert history.older("deploy my app") == "deploy my app"
        assert history.newer() == "/approve"
        assert history.newer() == "half typed"
        assert not history.browsing
        assert history.newer() is None

    def test_repeats_and_limit(self) -> None:
        history = PromptHistory(limit=2)
        for text in ("a", "a", "b", "c"):
            history.record(text)
        assert len(history) == 2
        assert history.older("") == "c"
        assert history.older("") == "b"

    def test_empty_history_recalls_nothing(self) -> None:
        assert PromptHistory().older("draft") is None
