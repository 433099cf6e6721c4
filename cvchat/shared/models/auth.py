"""Auth service payload models."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class User:
    id: str
    email: str
    name: str
    workspace_id: str = ""
    provider: str = "email"  # "email", "github", "google"
    role: str = "member"  # "owner", "admin", "member"
    avatar_url: str | None = None
    created_at: str | None = None
    last_login_at: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> User:
        return cls(**{
            k: v for k, v in data.items()
            if k in cls.__dataclass_fields__
        })


@dataclass
class AuthResponse:
    user: User | None
    access_token: str
    refresh_token: str
    expires_in: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AuthResponse:
        user = data.get("user")
        return cls(
            user=User.from_dict(user) if isinstance(user, dict) else None,
            access_token=str(data.get("access_token", "")),
            refresh_token=str(data.get("refresh_token", "")),
            expires_in=int(data.get("expires_in") or 0),
        )
