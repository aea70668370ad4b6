"""Initial CMS schema: lessons, lesson units and file attachments."""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "20261019_01"
down_revision = None
branch_labels = None
depends_on = None


def _owner_table(name: str) -> None:
    op.create_table(
        name,
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("title", sa.String(length=255), nullable=False, server_default=""),
        sa.Column(
            "created_at",
            sa.DateTime(),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    )


def upgrade() -> None:
    _owner_table("lesson")
    _owner_table("lesson_unit")

    op.create_table(
        "file_attachment",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("filename", sa.String(length=255), nullable=False),
        sa.Column("mime_type", sa.String(length=64)),
        sa.Column("filesize", sa.Integer()),
        sa.Column("owner_collection", sa.String(length=32)),
        sa.Column("owner_id", sa.String(length=64)),
        sa.Column(
            "created_at",
            sa.DateTime(),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    )
    op.create_index("ix_file_attachment_owner_id", "file_attachment", ["owner_id"])
    op.create_index("ix_file_attachment_created_at", "file_attachment", ["created_at"])


def downgrade() -> None:
    op.drop_index("ix_file_attachment_created_at", table_name="file_attachment")
    op.drop_index("ix_file_attachment_owner_id", table_name="file_attachment")
    op.drop_table("file_attachment")
    op.drop_table("lesson_unit")
    op.drop_table("lesson")
