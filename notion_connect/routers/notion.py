from __future__ import annotations

import logging
from urllib.parse import urlencode

import httpx
from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from fastapi.responses import RedirectResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from notion_connect.core.config import get_settings
from notion_connect.core.crypto import EncryptionKeyError
from notion_connect.core.http import get_http_client
from notion_connect.core.logs import log_event
from notion_connect.core.metrics import observe_oauth_callback
from notion_connect.db.session import get_session
from notion_connect.schemas.notion import (
    NotionAuthUrlResponse,
    NotionConnectionDeleteResponse,
    NotionConnectionOut,
)
from notion_connect.services.notion.connections import (
    build_auth_url,
    complete_oauth,
    delete_connection,
    list_connections,
)
from notion_connect.services.notion.oauth import NotionOAuthError

router = APIRouter(prefix="/notion", tags=["notion"])
# Older Notion app registrations point their redirect URI at `/callback`.
legacy_router = APIRouter(tags=["notion"])


def current_user_id(
    user_id: str | None = Query(default=None, min_length=1, max_length=255),
    user_id_camel: str | None = Query(default=None, alias="userId", min_length=1, max_length=255),
) -> str:
    # The SPA sends `userId`; `user_id` is accepted for other clients.
    # TODO: resolve the user from an authenticated session once the frontend has login.
    return user_id or user_id_camel or get_settings().DEFAULT_USER_ID


def requested_frontend_url(
    frontend_url: str | None = Query(default=None, max_length=2048),
    frontend_url_camel: str | None = Query(default=None, alias="frontendUrl", max_length=2048),
) -> str | None:
    return frontend_url or frontend_url_camel


def _redirect(base_url: str, path: str, params: dict[str, str]) -> RedirectResponse:
    url = f"{base_url}{path}?{urlencode(params)}"
    return RedirectResponse(
        url=url,
        status_code=status.HTTP_303_SEE_OTHER,
        headers={"Cache-Control": "no-store"},
    )


def _error_redirect(base_url: str, message: str) -> RedirectResponse:
    return _redirect(base_url, "/notion/error", {"message": message})


@router.get("/auth/url", response_model=NotionAuthUrlResponse)
def notion_auth_url(
    frontend_url: str | None = Depends(requested_frontend_url),
    user_id: str = Depends(current_user_id),
) -> NotionAuthUrlResponse:
    req = build_auth_url(user_id=user_id, frontend_url=frontend_url)
    return NotionAuthUrlResponse(
        auth_url=req.auth_url,
        client_id=req.client_id,
        redirect_uri=req.redirect_uri,
    )


@router.get("/callback")
def notion_oauth_callback(
    state: str | None = None,
    code: str | None = None,
    error: str | None = None,
    session: Session = Depends(get_session),
    http_client: httpx.Client = Depends(get_http_client),
) -> RedirectResponse:
    settings = get_settings()

    if error:
        log_event("notion.oauth.callback.denied", level=logging.WARNING, error=error)
        observe_oauth_callback(outcome="denied")
        return _error_redirect(settings.FRONTEND_URL, error)
    if not code:
        log_event("notion.oauth.callback.missing_code", level=logging.WARNING)
        observe_oauth_callback(outcome="missing_code")
        return _error_redirect(settings.FRONTEND_URL, "No authorization code received")

    try:
        completed = complete_oauth(
            session=session,
            http_client=http_client,
            code=code,
            state=state,
        )
        session.commit()
    except NotionOAuthError as exc:
        session.rollback()
        log_event(
            "notion.oauth.callback.failed",
            level=logging.ERROR,
            error=str(exc),
            upstream_status=exc.status_code,
        )
        observe_oauth_callback(outcome="exchange_failed")
        return _error_redirect(settings.FRONTEND_URL, str(exc))
    except (SQLAlchemyError, EncryptionKeyError) as exc:
        session.rollback()
        log_event(
            "notion.oauth.callback.failed",
            level=logging.ERROR,
            error=exc.__class__.__name__,
        )
        observe_oauth_callback(outcome="db_failed")
        return _error_redirect(settings.FRONTEND_URL, "Failed to save Notion connection")

    observe_oauth_callback(outcome="connected")
    log_event(
        "notion.oauth.callback.connected",
        connection_id=completed.connection.id,
        workspace_id=completed.connection.workspace_id,
    )
    return _redirect(
        completed.frontend_url,
        "/notion/connected",
        {"success": "true", "workspace_id": completed.connection.workspace_id},
    )


@router.get("/connections", response_model=list[NotionConnectionOut])
def notion_connections_list(
    user_id: str = Depends(current_user_id),
    session: Session = Depends(get_session),
) -> list[NotionConnectionOut]:
    try:
        rows = list_connections(session=session, user_id=user_id)
    except SQLAlchemyError as exc:
        log_event(
            "notion.connections.list_failed",
            level=logging.ERROR,
            user_id=user_id,
            error=exc.__class__.__name__,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch connections",
        ) from exc
    return [NotionConnectionOut.model_validate(row) for row in rows]


@router.delete("/connections/{connection_id}", response_model=NotionConnectionDeleteResponse)
def notion_connection_delete(
    connection_id: int = Path(ge=1),
    user_id: str = Depends(current_user_id),
    session: Session = Depends(get_session),
) -> NotionConnectionDeleteResponse:
    try:
        deleted = delete_connection(session=session, user_id=user_id, connection_id=connection_id)
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        log_event(
            "notion.connections.delete_failed",
            level=logging.ERROR,
            connection_id=connection_id,
            error=exc.__class__.__name__,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to remove connection",
        ) from exc

    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Connection not found")
    return NotionConnectionDeleteResponse(success=True, message="Connection removed successfully")


legacy_router.add_api_route(
    "/callback",
    notion_oauth_callback,
    methods=["GET"],
    include_in_schema=False,
)
