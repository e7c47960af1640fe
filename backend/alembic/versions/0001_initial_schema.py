"""Initial schema: users, tokens, shared files and their download log.

Revision ID: 0001
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

token_type = sa.Enum("EMAIL_VERIFICATION", "FORGOT_PASSWORD", name="tokentype")
file_status = sa.Enum("PENDING", "ACTIVE", name="filestatus")


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False, unique=True),
        sa.Column(
            "is_verified", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("hashed_password", sa.String(length=255), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )

    op.create_table(
        "tokens",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("token_type", token_type, nullable=False),
        sa.Column("hashed_token", sa.String(length=255), nullable=False, unique=True),
        sa.Column(
            "user_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("user_id", "token_type", name="uq_tokens_user_type"),
    )
    op.create_index("ix_tokens_expires", "tokens", ["expires_at"])

    op.create_table(
        "shared_files",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column(
            "user_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("size_bytes", sa.BigInteger(), nullable=False),
        sa.Column("storage_handle", sa.String(length=1024), nullable=False, unique=True),
        sa.Column("mime_type", sa.String(length=255), nullable=False),
        sa.Column("status", file_status, nullable=False),
        sa.Column(
            "is_password_protected",
            sa.Boolean(),
            nullable=False,
            server_default=sa.true(),
        ),
        sa.Column("uploaded_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("max_downloads", sa.Integer(), nullable=False),
        sa.Column("download_count", sa.Integer(), nullable=False, server_default="0"),
        sa.CheckConstraint("download_count <= max_downloads", name="ck_files_quota"),
        sa.CheckConstraint(
            "max_downloads >= 1 AND max_downloads <= 10", name="ck_files_max_downloads"
        ),
    )
    op.create_index("ix_files_user", "shared_files", ["user_id"])
    op.create_index("ix_files_expires", "shared_files", ["expires_at"])

    op.create_table(
        "file_downloads",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column(
            "file_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("shared_files.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("downloaded_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("requester_ip", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.String(length=512), nullable=True),
    )
    op.create_index("ix_file_downloads_file_id", "file_downloads", ["file_id"])


def downgrade() -> None:
    op.drop_index("ix_file_downloads_file_id", table_name="file_downloads")
    op.drop_table("file_downloads")
    op.drop_index("ix_files_expires", table_name="shared_files")
    op.drop_index("ix_files_user", table_name="shared_files")
    op.drop_table("shared_files")
    op.drop_index("ix_tokens_expires", table_name="tokens")
    op.drop_table("tokens")
    op.drop_table("users")
    file_status.drop(op.get_bind(), checkfirst=True)
    token_type.drop(op.get_bind(), checkfirst=True)
