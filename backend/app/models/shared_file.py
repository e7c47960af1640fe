"""Metadata for encrypted files held in object storage."""

from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base
from app.models.mixins import utcnow

if TYPE_CHECKING:  # pragma: no cover - typing only imports
    from app.models.user import User


class FileStatus(str, enum.Enum):
    """Write-ahead state of an upload."""

    PENDING = "pending"
    ACTIVE = "active"


class SharedFile(Base):
    """An uploaded file with its expiry and download quota."""

    __tablename__ = "shared_files"
    __table_args__ = (
        CheckConstraint("download_count <= max_downloads", name="ck_files_quota"),
        CheckConstraint(
            "max_downloads >= 1 AND max_downloads <= 10", name="ck_files_max_downloads"
        ),
        Index("ix_files_user", "user_id"),
        Index("ix_files_expires", "expires_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True, default=uuid.uuid4, unique=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    size_bytes: Mapped[int] = mapped_column(BigInteger(), nullable=False)
    storage_handle: Mapped[str] = mapped_column(
        String(1024), nullable=False, unique=True
    )
    mime_type: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[FileStatus] = mapped_column(
        Enum(FileStatus), default=FileStatus.PENDING, nullable=False
    )
    is_password_protected: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False
    )
    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    max_downloads: Mapped[int] = mapped_column(Integer(), nullable=False)
    download_count: Mapped[int] = mapped_column(Integer(), default=0, nullable=False)

    owner: Mapped["User"] = relationship("User", back_populates="files")
    download_history: Mapped[list["FileDownload"]] = relationship(
        "FileDownload",
        back_populates="file",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="FileDownload.downloaded_at",
        lazy="selectin",
    )


class FileDownload(Base):
    """One successful decrypt-and-serve of a shared file."""

    __tablename__ = "file_downloads"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    file_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("shared_files.id", ondelete="CASCADE"), nullable=False, index=True
    )
    downloaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    requester_ip: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(String(512))

    file: Mapped["SharedFile"] = relationship(
        "SharedFile", back_populates="download_history"
    )
