from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, LargeBinary, Text, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from notion_connect.models.base import Base


class NotionConnection(Base):
    __tablename__ = "notion_connections"
    __table_args__ = (
        UniqueConstraint("user_id", "workspace_id", name="notion_connections_user_workspace_key"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    workspace_id: Mapped[str] = mapped_column(Text, nullable=False)
    workspace_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    workspace_icon: Mapped[str | None] = mapped_column(Text, nullable=True)

    # AES-GCM ciphertexts; see services.notion.connections for the AAD layout.
    encrypted_access_token: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    encrypted_refresh_token: Mapped[bytes | None] = mapped_column(LargeBinary, nullable=True)
    token_type: Mapped[str] = mapped_column(
        Text, nullable=False, server_default=text("'bearer'")
    )

    bot_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    duplicated_template_id: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )
