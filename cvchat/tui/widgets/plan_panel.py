"""Execution plan panel — step list with approve/cancel and per-step run buttons."""

from __future__ import annotations

from textual.app import ComposeResult
from textual.containers import Horizontal
from textual.message import Message as TextualMessage
from textual.widget import Widget
from textual.widgets import Button, Static

from cvchat.engine.plan import plan_progress, step_display_name, step_icon
from cvchat.shared.models.message import ExecutionPlan, ExecutionStep, PlanStatus, StepStatus

_STEP_LABELS = {
    StepStatus.APPROVED: "Execute",
    StepStatus.EXECUTING: "Running...",
    StepStatus.COMPLETED: "✓ Done",
    StepStatus.FAILED: "✗ Failed",
    StepStatus.SKIPPED: "− Skipped",
}

_STEP_VARIANTS = {
    StepStatus.APPROVED: "primary",
    StepStatus.EXECUTING: "warning",
    StepStatus.COMPLETED: "success",
    StepStatus.FAILED: "error",
}

_PLAN_STATUS_STYLE = {
    PlanStatus.AWAITING_APPROVAL: "yellow",
    PlanStatus.APPROVED: "cyan",
    PlanStatus.EXECUTING: "yellow bold",
    PlanStatus.COMPLETED: "green",
    PlanStatus.CANCELLED: "dim",
}


def step_button_label(step: ExecutionStep) -> str:
    return _STEP_LABELS.get(step.status, step_display_name(step))


def step_is_disabled(step: ExecutionStep) -> bool:
    return step.status in (StepStatus.EXECUTING, StepStatus.COMPLETED, StepStatus.FAILED)


def _esc(text: str) -> str:
    return text.replace("[", "\\[")


class PlanPanel(Widget):
    """Renders one ExecutionPlan; re-composed whenever the plan changes."""

    class StepRequested(TextualMessage):
        """Fired when the user presses a step's run button."""

        def __init__(self, step_id: str) -> None:
            self.step_id = step_id
            super().__init__()

    class PlanResponded(TextualMessage):
        """Fired when the user approves or cancels the plan."""

        def __init__(self, plan_id: str, approved: bool) -> None:
            self.plan_id = plan_id
            self.approved = approved
            super().__init__()

    DEFAULT_CSS = """
    PlanPanel {
        height: auto;
        margin: 1 0;
        padding: 1 2;
        border: round $accent;
    }
    PlanPanel .plan-header {
        height: auto;
        margin: 0 0 1 0;
    }
    PlanPanel .step-row {
        height: 3;
    }
    PlanPanel .step-text {
        width: 1fr;
        padding: 1 0 0 0;
    }
    PlanPanel .step-button {
        min-width: 14;
    }
    PlanPanel .plan-actions {
        height: auto;
        margin: 1 0 0 0;
    }
    """

    def __init__(self, plan: ExecutionPlan, **kwargs) -> None:
        super().__init__(**kwargs)
        self.plan = plan

    def update_plan(self, plan: ExecutionPlan) -> None:
        if plan == self.plan:
            return
        self.plan = plan
        self.refresh(recompose=True)

    def compose(self) -> ComposeResult:
        plan = self.plan
        done, total = plan_progress(plan)
        style = _PLAN_STATUS_STYLE.get(plan.status, "white")
        estimate = f"  [dim]~{plan.total_estimated_time}[/dim]" if plan.total_estimated_time else ""
        yield Static(
            f"[bold]Execution plan:[/bold] {_esc(plan.objective)}{estimate}\n"
            f"[{style}]{plan.status.value.replace('_', ' ')}[/{style}]"
            f"  [dim]{done} / {total} steps[/dim]",
            classes="plan-header",
            markup=True,
        )
        for step in plan.steps:
            with Horizontal(classes="step-row"):
                eta = f" [dim]({step.estimated_time})[/dim]" if step.estimated_time else ""
                yield Static(
                    f"{step_icon(step)} [bold]{_esc(step_display_name(step))}[/bold]"
                    f" [dim]{step.id}[/dim] {_esc(step.description)}{eta}",
                    classes="step-text",
                    markup=True,
                )
                yield Button(
                    step_button_label(step),
                    name=step.id,
                    classes="step-button",
                    variant=_STEP_VARIANTS.get(step.status, "default"),
                    disabled=step_is_disabled(step) or plan.status is PlanStatus.CANCELLED,
                )
        if plan.status is PlanStatus.AWAITING_APPROVAL:
            with Horizontal(classes="plan-actions"):
                yield Button("Approve", name="approve", classes="plan-approve", variant="success")
                yield Button("Cancel", name="cancel", classes="plan-cancel", variant="error")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        event.stop()
        button = event.button
        if button.has_class("step-button") and button.name:
            self.post_message(self.StepRequested(button.name))
        elif button.has_class("plan-approve"):
            self.post_message(self.PlanResponded(self.plan.id, approved=True))
        elif button.has_class("plan-cancel"):
            self.post_message(self.PlanResponded(self.plan.id, approved=False))
