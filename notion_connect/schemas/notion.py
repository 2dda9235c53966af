from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class NotionAuthUrlResponse(BaseModel):
    # The SPA reads `authUrl`, `clientId` and `redirectUri`.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    auth_url: str
    client_id: str
    redirect_uri: str


class NotionConnectionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    workspace_id: str
    workspace_name: str | None
    workspace_icon: str | None
    bot_id: str | None
    created_at: datetime
    updated_at: datetime


class NotionConnectionDeleteResponse(BaseModel):
    success: bool
    message: str
