"""Thinking messages: progress strings shown while the assistant works.

Purely cosmetic: picks a rotating list of status lines from the current
operation, predicted intent and responding agent.
"""
from __future__ import annotations

import re

DEFAULT_AGENT = "Watson"

OPERATION_MESSAGES: dict[str, list[str]] = {
    "analyze_repository": [
        "Cloning repository metadata",
        "Detecting language and framework",
        "Reading build configuration",
        "Estimating resource requirements",
    ],
    "provision_infrastructure": [
        "Selecting instance size",
        "Creating virtual machine",
        "Configuring firewall rules",
        "Waiting for the server to boot",
    ],
    "create_dns_record": [
        "Looking up DNS zone",
        "Creating DNS record",
        "Waiting for propagation",
    ],
    "generate_ssh_key": [
        "Generating key pair",
        "Storing private key securely",
        "Registering public key",
    ],
    "deploy_application": [
        "Building application",
        "Uploading release",
        "Starting services",
        "Running health checks",
    ],
}

INTENT_MESSAGES: dict[str, list[str]] = {
    "deploy_application": [
        "Analyzing deployment request",
        "Planning deployment pipeline",
        "Checking connected credentials",
    ],
    "create_infrastructure": [
        "Reviewing infrastructure requirements",
        "Comparing cloud provider options",
        "Drafting provisioning plan",
    ],
    "scale_resources": [
        "Reading current resource usage",
        "Calculating target capacity",
    ],
    "monitor_health": [
        "Collecting health metrics",
        "Checking service status",
        "Scanning recent alerts",
    ],
    "manage_costs": [
        "Gathering billing data",
        "Looking for idle resources",
    ],
    "security_scan": [
        "Enumerating exposed ports",
        "Checking key rotation",
        "Reviewing access policies",
    ],
    "general_question": [
        "Thinking it through",
    ],
}

AGENT_MESSAGES: dict[str, list[str]] = {
    "watson": ["Coordinating specialist agents"],
    "mercury": ["Mercury is inspecting the repository"],
    "atlas": ["Atlas is working on infrastructure"],
    "neptune": ["Neptune is updating DNS"],
    "hermes": ["Hermes is handling SSH keys"],
    "phoenix": ["Phoenix is running the deployment"],
}

GENERIC_MESSAGES: list[str] = [
    "Thinking",
    "Processing your request",
    "Consulting the orchestration service",
    "Almost there",
]

# (intent, keywords) in priority order
_INTENT_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("deploy_application", ("deploy", "release", "ship", "launch")),
    ("create_infrastructure", ("provision", "create server", "infrastructure", "droplet", "instance", "cluster")),
    ("scale_resources", ("scale", "autoscal", "replica", "resize")),
    ("monitor_health", ("monitor", "health", "uptime", "status", "logs")),
    ("manage_costs", ("cost", "billing", "spend", "budget", "price")),
    ("security_scan", ("security", "vulnerab", "scan", "audit", "firewall")),
)

_INTENT_AGENTS: dict[str, str] = {
    "deploy_application": "Phoenix",
    "create_infrastructure": "Atlas",
    "scale_resources": "Atlas",
}


def predict_intent(text: str) -> str:
    """Guess the intent of a user message from keywords."""
    lowered = text.lower()
    for intent, keywords in _INTENT_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return intent
    return "general_question"


def agent_for_intent(intent: str | None) -> str:
    return _INTENT_AGENTS.get(intent or "", DEFAULT_AGENT)


def _normalize(key: str | None) -> str:
    if not key:
        return ""
    return re.sub(r"[\s\-]+", "_", key.strip().lower())


def select_thinking_messages(
    operation: str | None = None,
    intent: str | None = None,
    agent: str | None = None,
) -> list[str]:
    """Build the rotating status list, most specific source first.

    Operation table wins over intent table; agent lines are appended;
    generic filler is appended when three or fewer lines remain.
    """
    messages: list[str] = []
    op_key = _normalize(operation)
    intent_key = _normalize(intent)
    if op_key in OPERATION_MESSAGES:
        messages.extend(OPERATION_MESSAGES[op_key])
    elif intent_key in INTENT_MESSAGES:
        messages.extend(INTENT_MESSAGES[intent_key])

    messages.extend(AGENT_MESSAGES.get(_normalize(agent), []))

    if len(messages) <= 3:
        messages.extend(GENERIC_MESSAGES)

    deduped: list[str] = []
    for line in messages:
        if line not in deduped:
            deduped.append(line)
    return deduped


def rotate(index: int, messages: list[str]) -> int:
    """Advance a rotation index, wrapping at the end of *messages*."""
    if not messages:
        return 0
    return (index + 1) % len(messages)
