"""API router modules."""

from fastapi import APIRouter

from app.core.config import get_settings

from .routes import files, health, users

settings = get_settings()

api_router = APIRouter(prefix=settings.api_prefix)
api_router.include_router(users.router, prefix="/user", tags=["users"])
api_router.include_router(files.router, prefix="/file", tags=["files"])
api_router.include_router(health.router, prefix="/health", tags=["health"])

__all__ = ["api_router"]
