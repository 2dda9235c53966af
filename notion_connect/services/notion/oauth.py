from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import urlencode

import httpx

NOTION_API_BASE_URL = "https://api.notion.com/v1"
NOTION_VERSION = "2022-06-28"


class NotionOAuthError(RuntimeError):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class NotionTokenResponse:
    access_token: str
    token_type: str
    workspace_id: str
    workspace_name: str | None
    workspace_icon: str | None
    bot_id: str | None
    refresh_token: str | None
    duplicated_template_id: str | None


@dataclass(frozen=True)
class NotionBotUser:
    id: str
    name: str | None
    workspace_name: str | None


def _optional_str(payload: dict, key: str) -> str | None:
    value = payload.get(key)
    if isinstance(value, str) and value:
        return value
    return None


def build_authorization_url(
    *,
    client_id: str,
    redirect_uri: str,
    state: str,
    api_base_url: str = NOTION_API_BASE_URL,
) -> str:
    params = {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        # Public integrations are installed by a user, not a workspace admin.
        "owner": "user",
        "state": state,
    }
    return f"{api_base_url}/oauth/authorize?{urlencode(params)}"


def exchange_code_for_tokens(
    client: httpx.Client,
    *,
    code: str,
    client_id: str,
    client_secret: str,
    redirect_uri: str,
    api_base_url: str = NOTION_API_BASE_URL,
) -> NotionTokenResponse:
    if not code:
        raise NotionOAuthError("Authorization code is required")

    try:
        res = client.post(
            f"{api_base_url}/oauth/token",
            json={
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
            },
            auth=(client_id, client_secret),
            headers={"Content-Type": "application/json"},
        )
    except httpx.HTTPError as exc:
        raise NotionOAuthError(f"Failed to reach Notion: {exc.__class__.__name__}") from exc

    try:
        payload = res.json()
    except ValueError:
        payload = {}
    if not isinstance(payload, dict):
        payload = {}

    if res.status_code >= 400:
        message = (
            _optional_str(payload, "error_description")
            or _optional_str(payload, "error")
            or f"Failed to exchange code for token (HTTP {res.status_code})"
        )
        raise NotionOAuthError(message, status_code=res.status_code)

    access_token = _optional_str(payload, "access_token")
    if access_token is None:
        raise NotionOAuthError("Notion did not return an access token")
    workspace_id = _optional_str(payload, "workspace_id")
    if workspace_id is None:
        raise NotionOAuthError("Notion did not return a workspace id")

    return NotionTokenResponse(
        access_token=access_token,
        token_type=_optional_str(payload, "token_type") or "bearer",
        workspace_id=workspace_id,
        workspace_name=_optional_str(payload, "workspace_name"),
        workspace_icon=_optional_str(payload, "workspace_icon"),
        bot_id=_optional_str(payload, "bot_id"),
        refresh_token=_optional_str(payload, "refresh_token"),
        duplicated_template_id=_optional_str(payload, "duplicated_template_id"),
    )


def get_bot_user(
    client: httpx.Client,
    *,
    access_token: str,
    api_base_url: str = NOTION_API_BASE_URL,
    notion_version: str = NOTION_VERSION,
) -> NotionBotUser:
    try:
        res = client.get(
            f"{api_base_url}/users/me",
            headers={
                "Authorization": f"Bearer {access_token}",
                "Notion-Version": notion_version,
            },
        )
    except httpx.HTTPError as exc:
        raise NotionOAuthError(f"Failed to reach Notion: {exc.__class__.__name__}") from exc

    if res.status_code >= 400:
        raise NotionOAuthError("Notion bot user lookup failed", status_code=res.status_code)

    try:
        payload = res.json()
    except ValueError as exc:
        raise NotionOAuthError("Notion bot user lookup returned invalid JSON") from exc
    if not isinstance(payload, dict):
        raise NotionOAuthError("Notion bot user lookup returned an unexpected payload")

    bot = payload.get("bot") if isinstance(payload.get("bot"), dict) else {}
    return NotionBotUser(
        id=str(payload.get("id") or ""),
        name=_optional_str(payload, "name"),
        workspace_name=_optional_str(bot, "workspace_name"),
    )
