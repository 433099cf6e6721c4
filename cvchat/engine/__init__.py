"""Chat session core: identity, plans, thinking lines, dispatch and configuration."""
from .config import ClientConfig
from .errors import (
    ApiError,
    AuthenticationError,
    ControlVectorError,
    IdentityError,
    TransportError,
)
from .identity import Identity, resolve_identity

__all__ = [
    # Config
    "ClientConfig",
    # Errors
    "ApiError",
    "AuthenticationError",
    "ControlVectorError",
    "IdentityError",
    "TransportError",
    # Identity
    "Identity",
    "resolve_identity",
    # Session (lazy import)
    "ChatSession",
    "load_yaml_config",
]


def __getattr__(name: str):
    if name == "ChatSession":
        from .chat import ChatSession
        return ChatSession
    if name == "load_yaml_config":
        from .yaml_config import load_yaml_config
        return load_yaml_config
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
