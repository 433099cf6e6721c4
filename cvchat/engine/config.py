"""Client configuration loaded from environment variables.

All settings have sensible defaults. Override via CV_* env vars or the
``client:`` section of a YAML config file (see yaml_config.py).
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path

logger = logging.getLogger(__name__)


def _default_home() -> str:
    return str(Path.home() / ".cvchat")


def ws_url_from_api_url(api_url: str) -> str:
    """Derive the realtime endpoint from the conversation API base URL."""
    base = api_url.rstrip("/")
    if base.startswith("https://"):
        base = "wss://" + base[len("https://"):]
    elif base.startswith("http://"):
        base = "ws://" + base[len("http://"):]
    return f"{base}/ws"


@dataclass
class ClientConfig:
    """Endpoints, timers and local storage locations."""

    # Conversation + realtime service
    api_url: str = "http://localhost:3004"
    # Empty means "derive from api_url"
    ws_url: str = ""
    auth_api_url: str = "http://localhost:3002"
    context_api_url: str = "http://localhost:3005"

    # Timers (seconds)
    ping_interval: float = 30.0
    reconnect_delay: float = 3.0
    step_fallback_delay: float = 3.0
    thinking_interval: float = 2.0
    request_timeout: float = 10.0

    # Logging
    log_level: str = "INFO"

    # Local state (credentials file, logs, config.yaml)
    home_dir: str = ""

    def __post_init__(self) -> None:
        if not self.ws_url:
            self.ws_url = ws_url_from_api_url(self.api_url)
        if not self.home_dir:
            self.home_dir = _default_home()

    @property
    def home_path(self) -> Path:
        return Path(self.home_dir).expanduser()

    @property
    def credentials_path(self) -> Path:
        return self.home_path / "credentials.json"

    @property
    def log_dir(self) -> Path:
        return self.home_path / "logs"

    def with_overrides(self, overrides: dict) -> ClientConfig:
        """Return a copy with known keys from *overrides* applied."""
        known = {f.name: f for f in fields(self)}
        values = {name: getattr(self, name) for name in known}
        for key, value in overrides.items():
            if key not in known:
                logger.warning("Ignoring unknown client config key: %s", key)
                continue
            current = values[key]
            if isinstance(current, float):
                value = float(value)
            elif isinstance(current, str):
                value = str(value)
            values[key] = value
        # Re-derive the realtime URL when only the API URL moved
        if "api_url" in overrides and "ws_url" not in overrides:
            values["ws_url"] = ""
        return ClientConfig(**values)

    @classmethod
    def from_env(cls) -> ClientConfig:
        """Load configuration from CV_* environment variables."""
        cv_vars = {k: v for k, v in os.environ.items() if k.startswith("CV_")}
        if cv_vars:
            logger.info(
                "ClientConfig.from_env: CV_* env overrides: %s",
                ", ".join(sorted(cv_vars)),
            )
        else:
            logger.debug("ClientConfig.from_env: no CV_* env vars set, using defaults")

        config = cls(
            api_url=os.getenv("CV_API_URL", cls.api_url),
            ws_url=os.getenv("CV_WS_URL", ""),
            auth_api_url=os.getenv("CV_AUTH_API_URL", cls.auth_api_url),
            context_api_url=os.getenv("CV_CONTEXT_API_URL", cls.context_api_url),
            ping_interval=float(os.getenv(
                "CV_PING_INTERVAL", str(cls.ping_interval)
            )),
            reconnect_delay=float(os.getenv(
                "CV_RECONNECT_DELAY", str(cls.reconnect_delay)
            )),
            step_fallback_delay=float(os.getenv(
                "CV_STEP_FALLBACK_DELAY", str(cls.step_fallback_delay)
            )),
            thinking_interval=float(os.getenv(
                "CV_THINKING_INTERVAL", str(cls.thinking_interval)
            )),
            request_timeout=float(os.getenv(
                "CV_REQUEST_TIMEOUT", str(cls.request_timeout)
            )),
            log_level=os.getenv("CV_LOG_LEVEL", cls.log_level),
            home_dir=os.getenv("CV_HOME", ""),
        )
        logger.info(
            "ClientConfig.from_env: api=%s ws=%s auth=%s context=%s",
            config.api_url, config.ws_url,
            config.auth_api_url, config.context_api_url,
        )
        return config
