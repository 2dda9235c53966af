from __future__ import annotations

from notion_connect.models.base import Base as Base  # noqa: F401
from notion_connect.models.connections import NotionConnection  # noqa: F401
