"""Execution plan state — step lookup and status merging.

Every update returns a new message list in which only the affected
plan message is replaced (via ``dataclasses.replace``); sibling steps,
the plan's other fields and message order are untouched. Unknown step
or plan ids leave the list unchanged.
"""
from __future__ import annotations

import logging
import re
import uuid
from collections.abc import Iterator
from dataclasses import replace

from cvchat.shared.models.message import (
    ExecutionPlan,
    ExecutionStep,
    Message,
    MessageType,
    PlanStatus,
    StepStatus,
)

logger = logging.getLogger(__name__)

# (service, action, description, estimated time)
DEPLOYMENT_TEMPLATE: tuple[tuple[str, str, str, str], ...] = (
    (
        "mercury", "analyze_repository",
        "Analyze repository structure, runtime and build requirements",
        "30s",
    ),
    (
        "atlas", "provision_infrastructure",
        "Provision compute infrastructure for the application",
        "3-5 min",
    ),
    (
        "neptune", "create_dns_record",
        "Create a DNS record pointing at the new infrastructure",
        "1 min",
    ),
    (
        "hermes", "generate_ssh_key",
        "Generate an SSH key pair for deployment access",
        "30s",
    ),
    (
        "phoenix", "deploy_application",
        "Build and deploy the application",
        "5-10 min",
    ),
)
DEPLOYMENT_TOTAL_TIME = "10-17 min"
DEPLOYMENT_OBJECTIVE = "Deploy application"

_REPO_URL_RE = re.compile(
    r"https?://(?:www\.)?(?:github\.com|gitlab\.com|bitbucket\.org)/[\w.-]+/[\w.-]+"
)

# Friendly names for known service/action pairs, then per service
_SERVICE_ACTION_NAMES: dict[str, str] = {
    "mercury_analyze_repository": "Analyze Repo",
    "mercury_get_repository": "Get Repo",
    "atlas_provision_infrastructure": "Provision",
    "atlas_get_infrastructure_overview": "Check Infra",
    "neptune_create_dns_record": "Config DNS",
    "neptune_configure_domain_ssl": "Setup SSL",
    "hermes_generate_ssh_key": "SSH Keys",
    "phoenix_deploy_application": "Deploy App",
    "context_create_deployment_session": "Create Session",
    "context_get_deployment_session": "Get Session",
}
_SERVICE_NAMES: dict[str, str] = {
    "mercury": "Repo",
    "atlas": "Provision",
    "neptune": "DNS",
    "hermes": "SSH",
    "phoenix": "Deploy",
    "context": "Session",
}


def build_deployment_plan(content: str = "", plan_id: str | None = None) -> ExecutionPlan:
    """Synthesize the fixed deployment pipeline plan."""
    params: dict[str, str] = {}
    match = _REPO_URL_RE.search(content or "")
    if match:
        params["repository_url"] = match.group(0).rstrip(".")
    objective = DEPLOYMENT_OBJECTIVE
    if "repository_url" in params:
        objective = f"{DEPLOYMENT_OBJECTIVE} from {params['repository_url']}"

    steps = tuple(
        ExecutionStep(
            id=f"step-{index}",
            service=service,
            action=action,
            description=description,
            parameters=dict(params),
            status=StepStatus.PENDING,
            estimated_time=estimate,
        )
        for index, (service, action, description, estimate)
        in enumerate(DEPLOYMENT_TEMPLATE, start=1)
    )
    return ExecutionPlan(
        id=plan_id or f"plan-{uuid.uuid4().hex[:8]}",
        objective=objective,
        steps=steps,
        status=PlanStatus.AWAITING_APPROVAL,
        total_estimated_time=DEPLOYMENT_TOTAL_TIME,
    )


def iter_plans(messages: list[Message]) -> Iterator[tuple[int, ExecutionPlan]]:
    """Yield ``(index, plan)`` for every plan message, newest first."""
    for index in range(len(messages) - 1, -1, -1):
        message = messages[index]
        if message.type is MessageType.EXECUTION_PLAN and message.execution_plan:
            yield index, message.execution_plan


def has_outstanding_plan(messages: list[Message]) -> bool:
    return any(plan.status.is_outstanding for _, plan in iter_plans(messages))


def active_plan(messages: list[Message]) -> tuple[int, ExecutionPlan] | None:
    """Return the newest plan that is not completed or cancelled."""
    for index, plan in iter_plans(messages):
        if plan.status.is_outstanding:
            return index, plan
    return None


def find_plan(messages: list[Message], plan_id: str) -> tuple[int, ExecutionPlan] | None:
    for index, plan in iter_plans(messages):
        if plan.id == plan_id:
            return index, plan
    return None


def find_step(
    messages: list[Message], step_id: str,
) -> tuple[int, ExecutionStep] | None:
    """Locate *step_id* in the newest plan that contains it."""
    for index, plan in iter_plans(messages):
        step = plan.get_step(step_id)
        if step is not None:
            return index, step
    return None


def derive_plan_status(plan: ExecutionPlan) -> PlanStatus:
    """Recompute a plan's status from its steps."""
    if plan.status is PlanStatus.CANCELLED or not plan.steps:
        return plan.status
    if all(step.status.is_terminal for step in plan.steps):
        return PlanStatus.COMPLETED
    if any(step.status is StepStatus.EXECUTING for step in plan.steps):
        return PlanStatus.EXECUTING
    return plan.status


def _replace_plan(
    messages: list[Message], index: int, plan: ExecutionPlan,
) -> list[Message]:
    updated = list(messages)
    updated[index] = replace(messages[index], execution_plan=plan)
    return updated


def _with_steps(plan: ExecutionPlan, steps: tuple[ExecutionStep, ...]) -> ExecutionPlan:
    plan = replace(plan, steps=steps)
    return replace(plan, status=derive_plan_status(plan))


def with_step_status(
    messages: list[Message], step_id: str, status: StepStatus,
) -> list[Message]:
    """Set one step's status. Unknown ids are a logged no-op."""
    found = find_step(messages, step_id)
    if found is None:
        logger.debug("No plan step matches id=%s; ignoring status %s", step_id, status.value)
        return messages
    index, _ = found
    plan = messages[index].execution_plan
    steps = tuple(
        replace(step, status=status) if step.id == step_id else step
        for step in plan.steps
    )
    return _replace_plan(messages, index, _with_steps(plan, steps))


def resolve_executing_steps(messages: list[Message], failed: bool) -> list[Message]:
    """Finish every executing step of the active plan."""
    found = active_plan(messages)
    if found is None:
        return messages
    index, plan = found
    if not any(step.status is StepStatus.EXECUTING for step in plan.steps):
        return messages
    outcome = StepStatus.FAILED if failed else StepStatus.COMPLETED
    steps = tuple(
        replace(step, status=outcome) if step.status is StepStatus.EXECUTING else step
        for step in plan.steps
    )
    return _replace_plan(messages, index, _with_steps(plan, steps))


def approve_plan(messages: list[Message], plan_id: str) -> list[Message]:
    """Mark a plan approved and its pending steps ready to execute."""
    found = find_plan(messages, plan_id)
    if found is None:
        logger.debug("No plan matches id=%s; ignoring approval", plan_id)
        return messages
    index, plan = found
    steps = tuple(
        replace(step, status=StepStatus.APPROVED)
        if step.status is StepStatus.PENDING else step
        for step in plan.steps
    )
    return _replace_plan(
        messages, index, replace(plan, steps=steps, status=PlanStatus.APPROVED),
    )


def cancel_plan(messages: list[Message], plan_id: str) -> list[Message]:
    found = find_plan(messages, plan_id)
    if found is None:
        logger.debug("No plan matches id=%s; ignoring cancellation", plan_id)
        return messages
    index, plan = found
    return _replace_plan(messages, index, replace(plan, status=PlanStatus.CANCELLED))


def plan_progress(plan: ExecutionPlan) -> tuple[int, int]:
    """Return ``(completed, total)`` step counts."""
    done = sum(1 for step in plan.steps if step.status is StepStatus.COMPLETED)
    return done, len(plan.steps)


def step_display_name(step: ExecutionStep) -> str:
    """Short user-facing label for a step."""
    key = f"{step.service}_{step.action}".lower()
    if key in _SERVICE_ACTION_NAMES:
        return _SERVICE_ACTION_NAMES[key]
    service = step.service.lower()
    if service in _SERVICE_NAMES:
        return _SERVICE_NAMES[service]
    return step.service[:1].upper() + step.service[1:]


def step_icon(step: ExecutionStep) -> str:
    service = step.service.lower()
    action = step.action.lower()
    if "mercury" in service or "repository" in action or "analyze" in action:
        return "📊"
    if "atlas" in service or "provision" in action or "infrastructure" in action:
        return "🏗️"
    if "neptune" in service or "dns" in action or "domain" in action:
        return "🌐"
    if "hermes" in service or "ssh" in action or "key" in action:
        return "🔑"
    if "phoenix" in service or "deploy" in action or "application" in action:
        return "🚀"
    if "context" in service or "session" in action:
        return "📋"
    return "⚙️"
