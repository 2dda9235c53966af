from __future__ import annotations

import base64
import json
from datetime import UTC, datetime

from notion_connect.services.notion.state import decode_state, encode_state


def test_state_is_base64_json_with_user_and_frontend() -> None:
    issued = datetime(2026, 1, 2, 3, 4, 5, tzinfo=UTC)
    raw = encode_state(user_id="user-1", frontend_url="http://localhost:5173", issued_at=issued)

    payload = json.loads(base64.b64decode(raw))
    assert payload == {
        "userId": "user-1",
        "frontendUrl": "http://localhost:5173",
        "timestamp": int(issued.timestamp() * 1000),
    }

    state = decode_state(raw)
    assert state is not None
    assert state.user_id == "user-1"
    assert state.frontend_url == "http://localhost:5173"
    assert state.issued_at == issued


def test_decode_state_accepts_plus_mangled_into_space() -> None:
    raw = encode_state(user_id="u>>>?", frontend_url="http://localhost:5173")
    assert "+" in raw
    state = decode_state(raw.replace("+", " "))
    assert state is not None
    assert state.user_id == "u>>>?"


def test_decode_state_returns_none_for_garbage() -> None:
    assert decode_state(None) is None
    assert decode_state("") is None
    assert decode_state("%%%not-base64%%%") is None
    assert decode_state(base64.b64encode(b"not json").decode()) is None
    assert decode_state(base64.b64encode(b"[1, 2, 3]").decode()) is None


def test_decode_state_ignores_fields_of_the_wrong_type() -> None:
    raw = base64.b64encode(
        json.dumps({"userId": 42, "frontendUrl": "", "timestamp": "yesterday"}).encode()
    ).decode()

    state = decode_state(raw)
    assert state is not None
    assert state.user_id is None
    assert state.frontend_url is None
    assert state.issued_at is None
