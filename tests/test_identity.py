from __future__ import annotations

import base64
import json

import pytest

from cvchat.engine.errors import IdentityError
from cvchat.engine.identity import Identity, decode_token_payload, resolve_identity


def _segment(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def make_token(payload) -> str:
    header = _segment(json.dumps({"alg": "HS256", "typ": "JWT"}).encode())
    body = _segment(json.dumps(payload).encode())
    return f"{header}.{body}.signature"


def test_resolves_user_and_workspace() -> None:
    token = make_token({"user_id": "u-1", "workspace_id": "ws-9", "exp": 1})
    assert resolve_identity(token) == Identity(user_id="u-1", workspace_id="ws-9")


def test_payload_needing_padding_is_decoded() -> None:
    # 1- and 2-character remainders both need padding restored
    for user_id in ("a", "ab", "abc"):
        token = make_token({"user_id": user_id, "workspace_id": "w"})
        assert resolve_identity(token).user_id == user_id


def test_missing_token_is_rejected() -> None:
    with pytest.raises(IdentityError, match="no access token"):
        resolve_identity(None)
    with pytest.raises(IdentityError):
        resolve_identity("")


@pytest.mark.parametrize("token", ["abc", "a.b", "a.b.c.d"])
def test_wrong_segment_count_is_rejected(token: str) -> None:
    with pytest.raises(IdentityError, match="three-segment"):
        decode_token_payload(token)


def test_non_json_payload_is_rejected() -> None:
    token = f"x.{_segment(b'not json')}.y"
    with pytest.raises(IdentityError, match="not valid JSON"):
        resolve_identity(token)


def test_non_object_payload_is_rejected() -> None:
    token = f"x.{_segment(b'[1, 2]')}.y"
    with pytest.raises(IdentityError, match="not an object"):
        resolve_identity(token)


@pytest.mark.parametrize(
    "payload",
    [
        {"user_id": "u-1"},
        {"workspace_id": "ws-1"},
        {"user_id": "", "workspace_id": "ws-1"},
        {},
    ],
)
def test_missing_claims_are_rejected(payload: dict) -> None:
    with pytest.raises(IdentityError, match="user_id or workspace_id"):
        resolve_identity(make_token(payload))
