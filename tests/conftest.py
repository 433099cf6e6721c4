from __future__ import annotations

import base64
import json

import pytest

from cvchat.engine.config import ClientConfig
from cvchat.shared.services.token_store import TokenStore


def _segment(data: dict) -> str:
    raw = json.dumps(data).encode()
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


@pytest.fixture
def access_token() -> str:
    header = _segment({"alg": "HS256", "typ": "JWT"})
    body = _segment({"user_id": "user-1", "workspace_id": "ws-1"})
    return f"{header}.{body}.sig"


@pytest.fixture
def config(tmp_path) -> ClientConfig:
    return ClientConfig(
        api_url="http://watson.test",
        home_dir=str(tmp_path),
        reconnect_delay=0.01,
        step_fallback_delay=0.05,
        thinking_interval=0.01,
    )


@pytest.fixture
def tokens(tmp_path, access_token) -> TokenStore:
    store = TokenStore(tmp_path / "credentials.json")
    store.set_tokens(access_token, "refresh-1")
    return store
