"""Workspace onboarding check.

A workspace counts as onboarded once credentials for at least two
categories are stored. Provider names and key fragments match exactly;
any stored SSH key counts towards git access.
"""
from __future__ import annotations

from dataclasses import dataclass, field

from cvchat.shared.models.secrets import SecretList

AI_PROVIDERS = frozenset({"openai", "anthropic", "google"})
DNS_PROVIDERS = frozenset({"cloudflare", "aws", "digitalocean"})
CLOUD_PROVIDERS = frozenset({"digitalocean", "aws", "gcp", "azure"})
GIT_PROVIDERS = frozenset({"github", "gitlab"})

CATEGORY_AI = "AI Assistant"
CATEGORY_DNS = "DNS Provider"
CATEGORY_CLOUD = "Cloud Provider"
CATEGORY_GIT = "Git Repositories"

REQUIRED_CATEGORIES = 2


@dataclass
class OnboardingStatus:
    categories: list[str] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return len(self.categories) >= REQUIRED_CATEGORIES


def _key_has(key: str, *needles: str) -> bool:
    return any(needle in key for needle in needles)


def onboarding_status(secrets: SecretList) -> OnboardingStatus:
    creds = secrets.credentials
    providers = {c.provider for c in creds}
    categories: list[str] = []

    if providers & AI_PROVIDERS:
        categories.append(CATEGORY_AI)
    if any(
        c.provider in DNS_PROVIDERS and _key_has(c.key, "api_token", "access_key")
        for c in creds
    ):
        categories.append(CATEGORY_DNS)
    if any(
        c.provider in CLOUD_PROVIDERS
        and _key_has(c.key, "api_token", "access_key", "subscription_id")
        for c in creds
    ):
        categories.append(CATEGORY_CLOUD)
    if providers & GIT_PROVIDERS or secrets.ssh_keys:
        categories.append(CATEGORY_GIT)

    return OnboardingStatus(categories=categories)
