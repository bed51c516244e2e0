"""Onboarding router - link generation, validation and client submission."""

import logging
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from config import Settings, get_settings
from database import get_db
from middleware.auth import require_admin
from middleware.rate_limit import LINK_VALIDATE_LIMIT, SUBMIT_LIMIT, limiter
from models.client import Client
from models.onboarding import OnboardingLink
from models.user import User
from services.link_service import (
    create_onboarding_link,
    effective_status,
    get_link_by_token,
    is_link_valid,
    link_url,
    list_links,
    short_link_id,
)
from services.onboarding_service import OnboardingError, submit_onboarding
from services.scopes import get_scope_description

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["onboarding"])


# Request/Response schemas
class GenerateLinkRequest(BaseModel):
    platforms: list[str]
    requested_permissions: dict[str, list[str]] = Field(default_factory=dict)
    link_name: str | None = None
    client_id: str | None = None
    expires_in_days: int | None = Field(default=None, ge=1, le=90)


class LinkResponse(BaseModel):
    id: str
    short_id: str
    token: str
    url: str
    link_name: str | None
    client_id: str | None
    platforms: list[str]
    requested_permissions: dict[str, list[str]]
    status: str
    is_used: bool
    expires_at: datetime
    created_at: datetime


class LinksListResponse(BaseModel):
    links: list[LinkResponse]


class ScopeDescription(BaseModel):
    scope: str
    description: str


class ValidateLinkResponse(BaseModel):
    valid: bool
    link: LinkResponse
    scopes: dict[str, list[ScopeDescription]]


class SubmitRequest(BaseModel):
    token: str
    permissions: list[str] | None = None
    data: dict | None = None
    # {"google": ["123", "456"]} - asset ids the client chose to share
    assets: dict[str, list[str]] | None = None


class SubmitResponse(BaseModel):
    success: bool
    request_id: str
    client_id: str
    granted_permissions: dict[str, list[str]]


def link_response(link: OnboardingLink, settings: Settings) -> LinkResponse:
    return LinkResponse(
        id=link.id,
        short_id=short_link_id(link.token),
        token=link.token,
        url=link_url(link, settings),
        link_name=link.link_name,
        client_id=link.client_id,
        platforms=list(link.platforms or []),
        requested_permissions=dict(link.requested_permissions or {}),
        status=effective_status(link).value,
        is_used=link.is_used,
        expires_at=link.expires_at,
        created_at=link.created_at,
    )


async def _get_valid_link(db: AsyncSession, token: str) -> OnboardingLink:
    link = await get_link_by_token(db, token)
    if link is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Onboarding link not found")
    if not is_link_valid(link.expires_at):
        raise HTTPException(status_code=status.HTTP_410_GONE, detail="Onboarding link has expired")
    return link


# Admin link management

@router.post("/links/generate", response_model=LinkResponse, status_code=status.HTTP_201_CREATED)
async def generate_link(
    body: GenerateLinkRequest,
    current_user: Annotated[User, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
):
    """Create an onboarding link for one or more platforms."""
    if body.client_id:
        client = await db.get(Client, body.client_id)
        if client is None or client.admin_id != current_user.id:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Client not found")

    try:
        link = await create_onboarding_link(
            db,
            admin_id=current_user.id,
            platforms=body.platforms,
            requested_permissions=body.requested_permissions,
            settings=settings,
            link_name=body.link_name,
            client_id=body.client_id,
            expires_in_days=body.expires_in_days,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return link_response(link, settings)


@router.get("/links", response_model=LinksListResponse)
async def get_links(
    current_user: Annotated[User, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
):
    """List the admin's onboarding links, newest first."""
    links = await list_links(db, current_user.id)
    return LinksListResponse(links=[link_response(link, settings) for link in links])


# Public onboarding endpoints

@router.get("/links/validate", response_model=ValidateLinkResponse)
@limiter.limit(LINK_VALIDATE_LIMIT)
async def validate_link(
    request: Request,
    token: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
):
    """Check an onboarding link and describe the access it requests."""
    link = await _get_valid_link(db, token)
    scopes = {
        platform: [
            ScopeDescription(scope=scope, description=get_scope_description(platform, scope))
            for scope in link.scopes_for(platform)
        ]
        for platform in link.platforms or []
    }
    return ValidateLinkResponse(valid=True, link=link_response(link, settings), scopes=scopes)


@router.post("/onboarding/submit", response_model=SubmitResponse)
@limiter.limit(SUBMIT_LIMIT)
async def submit(
    request: Request,
    body: SubmitRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Complete onboarding and store the client's platform connections."""
    link = await _get_valid_link(db, body.token)

    try:
        onboarding_request, client = await submit_onboarding(
            db,
            link,
            permissions=body.permissions,
            data=body.data,
            selected_assets=body.assets,
        )
    except OnboardingError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return SubmitResponse(
        success=True,
        request_id=onboarding_request.id,
        client_id=client.id,
        granted_permissions=onboarding_request.granted_permissions,
    )
