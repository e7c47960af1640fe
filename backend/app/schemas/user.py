"""User-related schemas."""

from __future__ import annotations

import uuid

from pydantic import (
    BaseModel,
    EmailStr,
    Field,
    TypeAdapter,
    field_validator,
    model_validator,
)


_ALLOWED_DEV_EMAIL_DOMAINS = {"sealedshare.local"}
_EMAIL_ADAPTER = TypeAdapter(EmailStr)


def normalise_email(value: str) -> str:
    """Validate an address, allowing *.local placeholders used in development."""

    email = value.strip()
    try:
        validated = _EMAIL_ADAPTER.validate_python(email)
    except ValueError as exc:
        local_part, _, domain = email.partition("@")
        if local_part and domain:
            if domain.endswith(".local") or domain in _ALLOWED_DEV_EMAIL_DOMAINS:
                return email.lower()
        raise ValueError("Invalid email") from exc
    return str(validated).lower()


class EmailPayload(BaseModel):
    """Body carrying only an email address."""

    email: str

    @field_validator("email")
    @classmethod
    def _validate_email(cls, value: str) -> str:
        return normalise_email(value)


class RegisterRequest(EmailPayload):
    """Self-service registration payload."""

    name: str = Field(min_length=1, max_length=120)
    password: str = Field(min_length=3, max_length=256)
    confirm_password: str

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        name = value.strip()
        if not name:
            raise ValueError("Name cannot be empty")
        return name

    @model_validator(mode="after")
    def _passwords_match(self) -> "RegisterRequest":
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


class RegisterResponse(BaseModel):
    id: uuid.UUID
    message: str = "Registration successful, check your inbox to verify your email"


class LoginRequest(EmailPayload):
    """Login payload."""

    password: str = Field(min_length=1)


class ResetPasswordRequest(BaseModel):
    """Payload to finalise a password reset."""

    new_password: str = Field(min_length=3, max_length=256)
    confirm_new_password: str

    @model_validator(mode="after")
    def _passwords_match(self) -> "ResetPasswordRequest":
        if self.new_password != self.confirm_new_password:
            raise ValueError("Passwords do not match")
        return self


class MessageResponse(BaseModel):
    message: str
