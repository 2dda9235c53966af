from __future__ import annotations

import logging
from dataclasses import dataclass
from urllib.parse import urlsplit

import httpx
from fastapi import HTTPException, status
from sqlalchemy import delete, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from notion_connect.core.config import Settings, get_settings
from notion_connect.core.crypto import encrypt_bytes
from notion_connect.core.logs import log_event
from notion_connect.models.connections import NotionConnection
from notion_connect.services.notion.oauth import (
    NotionOAuthError,
    NotionTokenResponse,
    build_authorization_url,
    exchange_code_for_tokens,
    get_bot_user,
)
from notion_connect.services.notion.state import decode_state, encode_state


@dataclass(frozen=True)
class AuthorizationRequest:
    auth_url: str
    client_id: str
    redirect_uri: str


@dataclass(frozen=True)
class CompletedOAuth:
    connection: NotionConnection
    frontend_url: str


def token_aad(*, user_id: str, workspace_id: str, kind: str) -> bytes:
    return f"notion_connections:{user_id}:{workspace_id}:{kind}".encode()


def _origin(url: str) -> str | None:
    try:
        parts = urlsplit(url)
        parts.port  # raises ValueError for a malformed or out-of-range port
    except ValueError:
        return None
    if parts.scheme not in {"http", "https"} or not parts.netloc:
        return None
    return f"{parts.scheme}://{parts.netloc}"


def is_allowed_frontend_url(url: str, *, settings: Settings) -> bool:
    origin = _origin(url)
    if origin is None:
        return False
    allowed = {_origin(o) for o in settings.allowed_frontend_origins}
    return origin in allowed


def resolve_frontend_url(candidate: str | None, *, settings: Settings) -> str:
    if candidate and is_allowed_frontend_url(candidate, settings=settings):
        return candidate.rstrip("/")
    if candidate:
        log_event(
            "notion.oauth.frontend_url.rejected",
            level=logging.WARNING,
            frontend_url=candidate,
        )
    return settings.FRONTEND_URL


def build_auth_url(*, user_id: str, frontend_url: str | None) -> AuthorizationRequest:
    settings = get_settings()
    if not settings.notion_oauth_configured:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Notion OAuth is not configured",
        )

    if frontend_url is not None:
        if _origin(frontend_url) is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="frontend_url must be a valid http(s) URL",
            )
        if not is_allowed_frontend_url(frontend_url, settings=settings):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="frontend_url is not an allowed origin",
            )

    state = encode_state(
        user_id=user_id,
        frontend_url=(frontend_url or settings.FRONTEND_URL).rstrip("/"),
    )
    redirect_uri = settings.notion_redirect_uri
    url = build_authorization_url(
        client_id=settings.NOTION_CLIENT_ID,
        redirect_uri=redirect_uri,
        state=state,
        api_base_url=settings.NOTION_API_BASE_URL,
    )
    log_event("notion.oauth.started", user_id=user_id)
    return AuthorizationRequest(
        auth_url=url,
        client_id=settings.NOTION_CLIENT_ID,
        redirect_uri=redirect_uri,
    )


def _resolve_workspace_name(
    *,
    http_client: httpx.Client,
    token: NotionTokenResponse,
    settings: Settings,
) -> str:
    if token.workspace_name:
        return token.workspace_name

    try:
        bot = get_bot_user(
            http_client,
            access_token=token.access_token,
            api_base_url=settings.NOTION_API_BASE_URL,
            notion_version=settings.NOTION_VERSION,
        )
    except NotionOAuthError as exc:
        log_event(
            "notion.oauth.workspace_name.lookup_failed",
            level=logging.WARNING,
            workspace_id=token.workspace_id,
            error=str(exc),
        )
        return settings.DEFAULT_WORKSPACE_NAME

    return bot.workspace_name or settings.DEFAULT_WORKSPACE_NAME


def _insert_for(session: Session):
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert
    if dialect == "sqlite":
        return sqlite_insert
    raise RuntimeError(f"Unsupported database dialect for upsert: {dialect}")


def upsert_connection(
    *,
    session: Session,
    user_id: str,
    token: NotionTokenResponse,
    workspace_name: str,
) -> NotionConnection:
    encrypted_access = encrypt_bytes(
        plaintext=token.access_token.encode("utf-8"),
        aad=token_aad(user_id=user_id, workspace_id=token.workspace_id, kind="access"),
    )
    encrypted_refresh = None
    if token.refresh_token:
        encrypted_refresh = encrypt_bytes(
            plaintext=token.refresh_token.encode("utf-8"),
            aad=token_aad(user_id=user_id, workspace_id=token.workspace_id, kind="refresh"),
        )

    insert = _insert_for(session)
    stmt = insert(NotionConnection).values(
        user_id=user_id,
        workspace_id=token.workspace_id,
        workspace_name=workspace_name,
        workspace_icon=token.workspace_icon,
        encrypted_access_token=encrypted_access,
        encrypted_refresh_token=encrypted_refresh,
        token_type=token.token_type,
        bot_id=token.bot_id,
        duplicated_template_id=token.duplicated_template_id,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[NotionConnection.user_id, NotionConnection.workspace_id],
        set_={
            "workspace_name": stmt.excluded.workspace_name,
            "workspace_icon": stmt.excluded.workspace_icon,
            "encrypted_access_token": stmt.excluded.encrypted_access_token,
            "encrypted_refresh_token": stmt.excluded.encrypted_refresh_token,
            "token_type": stmt.excluded.token_type,
            "bot_id": stmt.excluded.bot_id,
            "duplicated_template_id": stmt.excluded.duplicated_template_id,
            "updated_at": func.now(),
        },
    )
    connection = session.scalars(
        stmt.returning(NotionConnection),
        execution_options={"populate_existing": True},
    ).one()

    log_event(
        "notion.connection.saved",
        connection_id=connection.id,
        user_id=user_id,
        workspace_id=token.workspace_id,
        has_refresh_token=encrypted_refresh is not None,
        has_bot_id=token.bot_id is not None,
    )
    return connection


def complete_oauth(
    *,
    session: Session,
    http_client: httpx.Client,
    code: str,
    state: str | None,
) -> CompletedOAuth:
    settings = get_settings()
    oauth_state = decode_state(state)
    user_id = (oauth_state.user_id if oauth_state else None) or settings.DEFAULT_USER_ID
    frontend_url = resolve_frontend_url(
        oauth_state.frontend_url if oauth_state else None, settings=settings
    )

    token = exchange_code_for_tokens(
        http_client,
        code=code,
        client_id=settings.NOTION_CLIENT_ID,
        client_secret=settings.NOTION_CLIENT_SECRET,
        redirect_uri=settings.notion_redirect_uri,
        api_base_url=settings.NOTION_API_BASE_URL,
    )
    workspace_name = _resolve_workspace_name(
        http_client=http_client, token=token, settings=settings
    )
    connection = upsert_connection(
        session=session,
        user_id=user_id,
        token=token,
        workspace_name=workspace_name,
    )
    return CompletedOAuth(connection=connection, frontend_url=frontend_url)


def list_connections(*, session: Session, user_id: str) -> list[NotionConnection]:
    return list(
        session.execute(
            select(NotionConnection)
            .where(NotionConnection.user_id == user_id)
            .order_by(NotionConnection.created_at.asc(), NotionConnection.id.asc())
        )
        .scalars()
        .all()
    )


def delete_connection(*, session: Session, user_id: str, connection_id: int) -> bool:
    deleted_id = session.execute(
        delete(NotionConnection)
        .where(
            NotionConnection.id == connection_id,
            NotionConnection.user_id == user_id,
        )
        .returning(NotionConnection.id)
    ).scalar_one_or_none()
    if deleted_id is None:
        return False

    log_event("notion.connection.deleted", connection_id=deleted_id, user_id=user_id)
    return True
