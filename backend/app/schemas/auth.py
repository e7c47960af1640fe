"""Authentication schemas."""
from __future__ import annotations

from pydantic import BaseModel


class Token(BaseModel):
    """Response body for bearer credentials."""

    token: str
    token_type: str = "bearer"
