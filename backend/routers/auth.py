"""Authentication router - admin signup and login."""

import logging
import re
from datetime import datetime, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, EmailStr
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config import Settings, get_settings
from database import get_db
from middleware.rate_limit import AUTH_LIMIT, limiter
from models.user import User, UserRole
from services.auth_service import AuthService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/auth", tags=["auth"])


def check_password_strength(password: str) -> list[str]:
    """Return a list of problems with the password; empty when it is acceptable."""
    problems = []

    if len(password) < 8:
        problems.append("Password should be at least 8 characters")
    if not re.search(r"[A-Za-z]", password):
        problems.append("Password should contain at least one letter")
    if not re.search(r"\d", password):
        problems.append("Password should contain at least one number")

    return problems


# Request/Response schemas
class SignupRequest(BaseModel):
    email: EmailStr
    password: str
    full_name: str | None = None
    company_name: str | None = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class UserResponse(BaseModel):
    id: str
    email: str
    full_name: str | None
    company_name: str | None
    role: str


class AuthResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


def _auth_response(user: User, settings: Settings) -> AuthResponse:
    return AuthResponse(
        access_token=AuthService.create_access_token(user.id, user.email, user.role.value, settings),
        user=UserResponse(
            id=user.id,
            email=user.email,
            full_name=user.full_name,
            company_name=user.company_name,
            role=user.role.value,
        ),
    )


@router.post("/signup", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(AUTH_LIMIT)
async def signup(
    request: Request,
    signup_data: SignupRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
):
    """Create an admin account."""
    problems = check_password_strength(signup_data.password)
    if problems:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="; ".join(problems))

    email = signup_data.email.lower()
    result = await db.execute(select(User).where(User.email == email))
    if result.scalar_one_or_none() is not None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="An account with this email already exists",
        )

    user = User(
        email=email,
        password_hash=AuthService.hash_password(signup_data.password),
        full_name=signup_data.full_name,
        company_name=signup_data.company_name,
        role=UserRole.ADMIN,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)

    logger.info(f"Admin account created: {user.email}")
    return _auth_response(user, settings)


@router.post("/login", response_model=AuthResponse)
@limiter.limit(AUTH_LIMIT)
async def login(
    request: Request,
    login_data: LoginRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
):
    """Login with email and password, returns a JWT access token."""
    result = await db.execute(select(User).where(User.email == login_data.email.lower()))
    user = result.scalar_one_or_none()

    if (
        user is None
        or user.password_hash is None
        or not AuthService.verify_password(login_data.password, user.password_hash)
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is deactivated",
        )

    user.last_login = datetime.now(timezone.utc)
    await db.commit()

    return _auth_response(user, settings)
