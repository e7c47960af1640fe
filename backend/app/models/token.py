"""Single-use tokens for email verification and password reset."""

from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, Enum, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base
from app.models.mixins import utcnow

if TYPE_CHECKING:  # pragma: no cover - typing only imports
    from app.models.user import User


class TokenType(str, enum.Enum):
    """Purpose a token was issued for."""

    EMAIL_VERIFICATION = "email_verification"
    FORGOT_PASSWORD = "forgot_password"


class Token(Base):
    """Hashed token; the cleartext only ever leaves the server in an email."""

    __tablename__ = "tokens"
    __table_args__ = (
        UniqueConstraint("user_id", "token_type", name="uq_tokens_user_type"),
        Index("ix_tokens_expires", "expires_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True, default=uuid.uuid4, unique=True
    )
    token_type: Mapped[TokenType] = mapped_column(Enum(TokenType), nullable=False)
    hashed_token: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    user: Mapped["User"] = relationship("User", back_populates="tokens")
