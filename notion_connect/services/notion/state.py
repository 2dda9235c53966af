"""OAuth `state` parameter carried through the Notion redirect round trip.

The value is standard base64 over a JSON object::

    {"userId": "...", "frontendUrl": "...", "timestamp": 1700000000000}

It only transports context back to the callback; it is not signed.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from notion_connect.core.logs import log_event


@dataclass(frozen=True)
class OAuthState:
    user_id: str | None
    frontend_url: str | None
    issued_at: datetime | None


def encode_state(*, user_id: str, frontend_url: str, issued_at: datetime | None = None) -> str:
    issued_at = issued_at or datetime.now(UTC)
    payload = {
        "userId": user_id,
        "frontendUrl": frontend_url,
        "timestamp": int(issued_at.timestamp() * 1000),
    }
    raw = json.dumps(payload, separators=(",", ":")).encode("utf-8")
    return base64.b64encode(raw).decode("ascii")


def decode_state(raw: str | None) -> OAuthState | None:
    if not raw:
        return None

    try:
        # Query strings may turn '+' into ' '; restore it before decoding.
        decoded = base64.b64decode(raw.replace(" ", "+"), validate=True)
        payload = json.loads(decoded.decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
        log_event(
            "notion.oauth.state.invalid",
            level=logging.WARNING,
            reason=exc.__class__.__name__,
        )
        return None

    if not isinstance(payload, dict):
        log_event("notion.oauth.state.invalid", level=logging.WARNING, reason="not_an_object")
        return None

    user_id = payload.get("userId")
    frontend_url = payload.get("frontendUrl")
    ts = payload.get("timestamp")
    issued_at = None
    if isinstance(ts, int | float) and not isinstance(ts, bool):
        try:
            issued_at = datetime.fromtimestamp(ts / 1000, tz=UTC)
        except (OverflowError, OSError, ValueError):
            issued_at = None

    return OAuthState(
        user_id=user_id if isinstance(user_id, str) and user_id else None,
        frontend_url=frontend_url if isinstance(frontend_url, str) and frontend_url else None,
        issued_at=issued_at,
    )
