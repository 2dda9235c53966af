"""notion_connections

Revision ID: 20261019_1200
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261019_1200"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Portable DDL: runs on PostgreSQL (prod) and SQLite (local tests).
    op.create_table(
        "notion_connections",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Text(), nullable=False),
        sa.Column("workspace_id", sa.Text(), nullable=False),
        sa.Column("workspace_name", sa.Text(), nullable=True),
        sa.Column("workspace_icon", sa.Text(), nullable=True),
        sa.Column("encrypted_access_token", sa.LargeBinary(), nullable=False),
        sa.Column("encrypted_refresh_token", sa.LargeBinary(), nullable=True),
        sa.Column("token_type", sa.Text(), nullable=False, server_default=sa.text("'bearer'")),
        sa.Column("bot_id", sa.Text(), nullable=True),
        sa.Column("duplicated_template_id", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.UniqueConstraint(
            "user_id", "workspace_id", name="notion_connections_user_workspace_key"
        ),
    )
    op.create_index(
        "ix_notion_connections_user_id", "notion_connections", ["user_id"], unique=False
    )


def downgrade() -> None:
    op.drop_index("ix_notion_connections_user_id", table_name="notion_connections")
    op.drop_table("notion_connections")
