"""cvchat — main application entry point."""

from __future__ import annotations

import asyncio
import logging
import sys
from logging.handlers import RotatingFileHandler

import yaml

from cvchat.adapters.auth_api import AuthAPI
from cvchat.adapters.context_api import ContextAPI
from cvchat.engine.config import ClientConfig
from cvchat.engine.errors import AuthenticationError, ControlVectorError
from cvchat.engine.yaml_config import load_config
from cvchat.shared.services.onboarding import onboarding_status
from cvchat.shared.services.token_store import TokenStore

logger = logging.getLogger(__name__)


def configure_logging(config: ClientConfig, to_stderr: bool = False) -> None:
    """Send logs to ~/.cvchat/logs/cvchat.log (the TUI owns the terminal)."""
    log_dir = config.log_dir
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "cvchat.log"

    root = logging.getLogger()
    root.setLevel(getattr(logging, config.log_level.upper(), logging.INFO))
    root.handlers.clear()
    formatter = logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s [pid=%(process)d] %(message)s"
    )
    file_handler = RotatingFileHandler(
        log_file, maxBytes=2_000_000, backupCount=5, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)
    if to_stderr:
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setFormatter(formatter)
        stream_handler.setLevel(logging.WARNING)
        root.addHandler(stream_handler)


async def _print_status(config: ClientConfig, tokens: TokenStore) -> int:
    if not tokens.access_token:
        print("Not signed in. Run `cvchat` to log in.")
        return 1
    try:
        async with ContextAPI(
            config.context_api_url, tokens, timeout=config.request_timeout,
        ) as context:
            secrets = await context.list_secrets()
    except AuthenticationError:
        print("Session expired. Run `cvchat` to log in again.")
        return 1
    except ControlVectorError as exc:
        print(f"Error: {exc}")
        return 1

    status = onboarding_status(secrets)
    print(f"Credentials stored: {len(secrets.credentials)}")
    print(f"SSH keys stored:    {len(secrets.ssh_keys)}")
    print("Configured categories:")
    if status.categories:
        for category in status.categories:
            print(f"  - {category}")
    else:
        print("  (none)")
    print("Setup complete" if status.is_complete else "Setup incomplete (need 2 categories)")
    return 0


async def _logout(config: ClientConfig, tokens: TokenStore) -> int:
    async with AuthAPI(
        config.auth_api_url, tokens, timeout=config.request_timeout,
    ) as auth:
        await auth.logout()
    print("Signed out.")
    return 0


def main() -> None:
    import argparse

    parser = argparse.ArgumentParser(
        prog="cvchat",
        description="cvchat — terminal chat client for the ControlVector assistant",
    )
    parser.add_argument(
        "--config", metavar="PATH",
        help="YAML config file (default: ~/.cvchat/config.yaml)",
    )
    parser.add_argument(
        "--status", action="store_true",
        help="Print which credential categories are configured and exit",
    )
    parser.add_argument(
        "--logout", action="store_true",
        help="Sign out and clear stored tokens",
    )
    args = parser.parse_args()

    try:
        config = load_config(args.config)
    except (OSError, yaml.YAMLError) as exc:
        print(f"Error: cannot load config {args.config}: {exc}", file=sys.stderr)
        sys.exit(2)

    headless = args.status or args.logout
    configure_logging(config, to_stderr=headless)
    logger.info("Starting cvchat api=%s ws=%s", config.api_url, config.ws_url)
    tokens = TokenStore(config.credentials_path)

    if args.logout:
        sys.exit(asyncio.run(_logout(config, tokens)))
    if args.status:
        sys.exit(asyncio.run(_print_status(config, tokens)))

    # TUI mode
    from cvchat.tui.app import CvChatApp

    app = CvChatApp(config, tokens)
    app.run()


if __name__ == "__main__":
    main()
