"""Database models."""

from database import Base

# Accounts
from models.user import User, UserRole
from models.client import Client, ClientStatus

# Onboarding
from models.onboarding import LinkStatus, OnboardingLink, OnboardingRequest, RequestStatus

# Platform connections
from models.platform_connection import (
    AdminPlatformConnection,
    ClientPlatformConnection,
    Platform,
)

__all__ = [
    # Base
    "Base",
    # Accounts
    "User",
    "UserRole",
    "Client",
    "ClientStatus",
    # Onboarding
    "LinkStatus",
    "OnboardingLink",
    "OnboardingRequest",
    "RequestStatus",
    # Platform connections
    "AdminPlatformConnection",
    "ClientPlatformConnection",
    "Platform",
]
