"""Service layer exports."""
from app.services import (
    auth_service,
    expiry_service,
    file_service,
    notification_service,
    sharing_service,
    token_service,
    user_service,
)

__all__ = [
    "auth_service",
    "expiry_service",
    "file_service",
    "notification_service",
    "sharing_service",
    "token_service",
    "user_service",
]
