"""document versions and chats

Revision ID: 0001
Revises:
Create Date: 2026-10-19 00:00:00

"""
from alembic import op
import sqlalchemy as sa

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "document_versions",
        sa.Column("uuid", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("kind", sa.Enum("text", "code", "image", "sheet", name="artifact_kind"), nullable=False),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("chat_id", sa.Uuid(as_uuid=True), nullable=True),
        sa.Column("is_current", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("visibility", sa.String(length=16), nullable=False, server_default="private"),
        sa.Column("author", sa.Text(), nullable=True),
        sa.Column("style", sa.JSON(), nullable=True),
        sa.Column("slug", sa.Text(), nullable=True),
    )
    op.create_index("ix_document_versions_user_slug", "document_versions", ["user_id", "slug"], unique=True)
    op.create_index("ix_document_versions_identity", "document_versions", ["id", "user_id", "is_current"])

    op.create_table(
        "chats",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("document_context", sa.JSON(), nullable=True),
    )


def downgrade() -> None:
    op.drop_table("chats")
    op.drop_index("ix_document_versions_identity", table_name="document_versions")
    op.drop_index("ix_document_versions_user_slug", table_name="document_versions")
    op.drop_table("document_versions")
    sa.Enum(name="artifact_kind").drop(op.get_bind(), checkfirst=True)
