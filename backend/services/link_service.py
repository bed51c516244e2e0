"""Onboarding link generation and lookup."""

import logging
from datetime import datetime, timedelta, timezone
from uuid import uuid4

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config import Settings
from database import as_utc
from models.onboarding import LinkStatus, OnboardingLink
from services.platforms import PROVIDERS
from services.scopes import validate_scopes

logger = logging.getLogger(__name__)


class GeneratedLink(BaseModel):
    token: str
    url: str
    expires_at: datetime


def generate_onboarding_link(app_url: str, expires_in_days: int = 7) -> GeneratedLink:
    token = str(uuid4())
    return GeneratedLink(
        token=token,
        url=f"{app_url.rstrip('/')}/onboarding/{token}",
        expires_at=datetime.now(timezone.utc) + timedelta(days=expires_in_days),
    )


def is_link_valid(expires_at: datetime) -> bool:
    return datetime.now(timezone.utc) < as_utc(expires_at)


def short_link_id(token: str) -> str:
    """Display id for a link: first 8 characters of the token, upper-cased."""
    return token[:8].upper()


def link_url(link: OnboardingLink, settings: Settings) -> str:
    return f"{settings.app_url.rstrip('/')}/onboarding/{link.token}"


async def create_onboarding_link(
    db: AsyncSession,
    admin_id: str,
    platforms: list[str],
    requested_permissions: dict[str, list[str]],
    settings: Settings,
    link_name: str | None = None,
    client_id: str | None = None,
    expires_in_days: int | None = None,
) -> OnboardingLink:
    """Create and store a link. Raises ValueError on unknown platforms or scopes."""
    if not platforms:
        raise ValueError("At least one platform is required")

    unknown = [p for p in platforms if p not in PROVIDERS]
    if unknown:
        raise ValueError(f"Unsupported platform(s): {', '.join(unknown)}")

    for platform, scopes in requested_permissions.items():
        if platform not in platforms:
            raise ValueError(f"Permissions given for platform not on the link: {platform}")
        invalid = validate_scopes(platform, scopes)
        if invalid:
            raise ValueError(f"Invalid {platform} scopes: {', '.join(invalid)}")

    generated = generate_onboarding_link(settings.app_url, expires_in_days or settings.link_expiry_days)
    link = OnboardingLink(
        admin_id=admin_id,
        client_id=client_id,
        link_name=link_name,
        token=generated.token,
        platforms=list(platforms),
        requested_permissions={p: list(s) for p, s in requested_permissions.items()},
        expires_at=generated.expires_at,
        status=LinkStatus.PENDING,
    )
    db.add(link)
    await db.commit()
    await db.refresh(link)

    logger.info(f"Created onboarding link {short_link_id(link.token)} for platforms {platforms}")
    return link


async def get_link_by_token(db: AsyncSession, token: str) -> OnboardingLink | None:
    result = await db.execute(select(OnboardingLink).where(OnboardingLink.token == token))
    return result.scalar_one_or_none()


async def list_links(db: AsyncSession, admin_id: str) -> list[OnboardingLink]:
    result = await db.execute(
        select(OnboardingLink)
        .where(OnboardingLink.admin_id == admin_id)
        .order_by(OnboardingLink.created_at.desc())
    )
    return list(result.scalars().all())


def effective_status(link: OnboardingLink) -> LinkStatus:
    """Stored status, reporting pending/in-progress links past expiry as expired."""
    if link.status != LinkStatus.COMPLETED and not is_link_valid(link.expires_at):
        return LinkStatus.EXPIRED
    return link.status
