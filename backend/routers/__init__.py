"""Routers package."""

from .auth import router as auth_router
from .oauth import admin_router as admin_connections_router
from .oauth import router as oauth_router
from .onboarding import router as onboarding_router
from .platforms import router as platforms_router

__all__ = [
    "admin_connections_router",
    "auth_router",
    "oauth_router",
    "onboarding_router",
    "platforms_router",
]
