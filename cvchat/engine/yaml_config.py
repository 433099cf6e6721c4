"""YAML configuration loader.

Overlays a ``client:`` section on top of the env-derived ClientConfig.

Example YAML:
    client:
      api_url: https://watson.example.com
      auth_api_url: https://auth.example.com
      context_api_url: https://context.example.com
      ping_interval: 30
      reconnect_delay: 3
      log_level: DEBUG
"""
from __future__ import annotations

import logging
from pathlib import Path

import yaml

from .config import ClientConfig

logger = logging.getLogger(__name__)


def default_config_path(config: ClientConfig) -> Path:
    """Return the implicit config location (``~/.cvchat/config.yaml``)."""
    return config.home_path / "config.yaml"


def load_yaml_config(
    path: str | Path,
    base: ClientConfig | None = None,
) -> ClientConfig:
    """Load *path* and apply its ``client`` section over *base*.

    Raises FileNotFoundError / yaml.YAMLError for an explicit path that
    cannot be read; callers decide whether that is fatal.
    """
    path = Path(path)
    base = base or ClientConfig.from_env()
    logger.info(
        "load_yaml_config: loading %s (exists=%s)", path, path.exists()
    )
    try:
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.error("load_yaml_config: config file not found at %s", path)
        raise
    except yaml.YAMLError as exc:
        logger.error("load_yaml_config: YAML parse error in %s: %s", path, exc)
        raise

    if not isinstance(raw, dict):
        logger.warning(
            "load_yaml_config: %s does not contain a mapping; using defaults",
            path,
        )
        return base

    section = raw.get("client") or {}
    if not isinstance(section, dict):
        logger.warning("load_yaml_config: 'client' section in %s is not a mapping", path)
        return base

    logger.info(
        "load_yaml_config: applying %d client setting(s) from %s",
        len(section), path.name,
    )
    return base.with_overrides(section)


def load_config(explicit_path: str | None = None) -> ClientConfig:
    """Resolve config from env, then an explicit or implicit YAML file."""
    config = ClientConfig.from_env()
    if explicit_path:
        return load_yaml_config(explicit_path, config)
    implicit = default_config_path(config)
    if implicit.is_file():
        try:
            return load_yaml_config(implicit, config)
        except yaml.YAMLError:
            logger.warning("Ignoring unreadable %s; using defaults", implicit)
    return config
