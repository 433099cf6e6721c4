"""Content markers the orchestration service uses inside ``ai_response``.

The service does not tag step results or execution plans with their own
frame type; it reuses ``ai_response`` and signals them with fixed
substrings in ``content``. These predicates are the only place that
wording is matched.
"""
from __future__ import annotations

EXECUTION_PLAN_MARKER = "🤖 **Deployment Request Analyzed**"
# Any response mentioning deployment is treated as a plan trigger too.
# This also fires on unrelated responses that merely mention the word.
EXECUTION_PLAN_KEYWORD = "deploy"

STEP_COMPLETED_MARKER = "✅ **Step Completed**"
STEP_FAILED_MARKER = "❌ **Step Failed**"
STEP_EXECUTE_MARKER = "⚡ **Executing Step**"

STEP_RESULT_MARKERS: tuple[str, ...] = (
    STEP_COMPLETED_MARKER,
    STEP_FAILED_MARKER,
    STEP_EXECUTE_MARKER,
)
FAILURE_MARKERS: tuple[str, ...] = (STEP_FAILED_MARKER, "❌")


def is_step_result(content: str) -> bool:
    """True when *content* reports the outcome of an executed step."""
    return any(marker in content for marker in STEP_RESULT_MARKERS)


def is_step_failure(content: str) -> bool:
    """True when a step result reports failure."""
    return any(marker in content for marker in FAILURE_MARKERS)


def is_execution_plan(content: str) -> bool:
    """True when *content* proposes a deployment execution plan."""
    return (
        EXECUTION_PLAN_MARKER in content
        or EXECUTION_PLAN_KEYWORD in content.lower()
    )
