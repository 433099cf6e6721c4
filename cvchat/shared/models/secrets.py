"""Credential-store payloads and listings."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any

CREDENTIAL_TYPES = ("oauth", "api_key", "password", "token")
SSH_KEY_TYPES = ("rsa", "ed25519", "ecdsa")


def _known(cls, data: dict[str, Any]) -> dict[str, Any]:
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in names}


@dataclass
class CredentialData:
    key: str
    value: str
    credential_type: str = "api_key"
    provider: str = ""
    expires_at: str | None = None

    def __post_init__(self) -> None:
        if self.credential_type not in CREDENTIAL_TYPES:
            raise ValueError(
                f"credential_type must be one of {', '.join(CREDENTIAL_TYPES)}"
            )

    def to_payload(self) -> dict[str, Any]:
        payload = {
            "key": self.key,
            "value": self.value,
            "credential_type": self.credential_type,
            "provider": self.provider,
        }
        if self.expires_at:
            payload["expires_at"] = self.expires_at
        return payload


@dataclass
class SSHKeyData:
    key_name: str
    private_key: str
    public_key: str
    key_type: str = "ed25519"
    description: str = ""
    allowed_hosts: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.key_type not in SSH_KEY_TYPES:
            raise ValueError(f"key_type must be one of {', '.join(SSH_KEY_TYPES)}")

    def to_payload(self) -> dict[str, Any]:
        return {
            "key_name": self.key_name,
            "private_key": self.private_key,
            "public_key": self.public_key,
            "key_type": self.key_type,
            "metadata": {
                "description": self.description,
                "allowed_hosts": list(self.allowed_hosts),
            },
        }


@dataclass
class CredentialInfo:
    key: str
    provider: str = ""
    type: str = ""
    created_at: str | None = None
    expires_at: str | None = None


@dataclass
class SSHKeyInfo:
    key: str
    type: str = ""
    fingerprint: str = ""
    created_at: str | None = None


@dataclass
class CertificateInfo:
    key: str
    type: str = ""
    common_name: str = ""
    expires_at: str | None = None


@dataclass
class SecretList:
    credentials: list[CredentialInfo] = field(default_factory=list)
    ssh_keys: list[SSHKeyInfo] = field(default_factory=list)
    certificates: list[CertificateInfo] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> SecretList:
        data = data or {}

        def build(kind, items):
            return [
                kind(**_known(kind, item))
                for item in items or []
                if isinstance(item, dict) and item.get("key")
            ]

        return cls(
            credentials=build(CredentialInfo, data.get("credentials")),
            ssh_keys=build(SSHKeyInfo, data.get("ssh_keys")),
            certificates=build(CertificateInfo, data.get("certificates")),
        )

    def __len__(self) -> int:
        return len(self.credentials) + len(self.ssh_keys) + len(self.certificates)
