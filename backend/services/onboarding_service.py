"""Client onboarding: recording OAuth results and final submission."""

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models.client import Client
from models.onboarding import LinkStatus, OnboardingLink, OnboardingRequest, RequestStatus
from models.platform_connection import ClientPlatformConnection, Platform
from services.assets import Asset, assets_from_dicts
from services.connection_service import get_active_client_connection, upsert_client_connection
from services.oauth_common import OAuthTokenResponse, PlatformUserInfo

logger = logging.getLogger(__name__)


class OnboardingError(ValueError):
    """Submission cannot be processed with the data given."""


async def get_open_request(db: AsyncSession, link: OnboardingLink) -> OnboardingRequest | None:
    """Most recent request on the link that has not been submitted yet."""
    result = await db.execute(
        select(OnboardingRequest)
        .where(
            OnboardingRequest.link_id == link.id,
            OnboardingRequest.status != RequestStatus.COMPLETED,
        )
        .order_by(OnboardingRequest.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_or_create_request(db: AsyncSession, link: OnboardingLink) -> OnboardingRequest:
    request = await get_open_request(db, link)
    if request is None:
        request = OnboardingRequest(
            link_id=link.id,
            client_id=link.client_id,
            status=RequestStatus.IN_PROGRESS,
            granted_permissions={},
            platform_connections={},
        )
        db.add(request)
        await db.flush()
    return request


async def record_oauth_result(
    db: AsyncSession,
    link: OnboardingLink,
    platform: Platform,
    tokens: OAuthTokenResponse,
    scopes: list[str],
    user_info: PlatformUserInfo,
    assets: list[Asset],
) -> OnboardingRequest:
    """Store a completed OAuth connection on the link's open request.

    When the link already targets a known client, the client's connection
    is upserted right away as well.
    """
    request = await get_or_create_request(db, link)
    expires_at = tokens.expires_at()

    connections = dict(request.platform_connections or {})
    connections[platform.value] = {
        "access_token": tokens.access_token,
        "refresh_token": tokens.refresh_token,
        "token_expires_at": expires_at.isoformat() if expires_at else None,
        "scopes": list(scopes),
        "platform_user_id": user_info.id,
        "platform_username": user_info.display_name,
        "assets": [a.to_dict() for a in assets],
        "connected_at": datetime.now(timezone.utc).isoformat(),
    }
    request.platform_connections = connections
    request.status = RequestStatus.IN_PROGRESS
    if link.status == LinkStatus.PENDING:
        link.status = LinkStatus.IN_PROGRESS
    await db.commit()

    logger.info(
        f"Recorded {platform.value} connection on link {link.token[:8]} "
        f"({len(assets)} asset(s), user {user_info.id})"
    )

    if link.client_id:
        await upsert_client_connection(
            db,
            link.client_id,
            platform,
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            token_expires_at=expires_at,
            scopes=scopes,
            user_info=user_info,
            assets=assets,
        )

    return request


def parse_permissions(permissions: list[str]) -> dict[str, list[str]]:
    """["google:analytics.readonly", "meta:ads_read"] -> {"google": [...], "meta": [...]}."""
    granted: dict[str, list[str]] = {}
    for permission in permissions:
        platform, sep, scope = permission.partition(":")
        if not sep or not platform or not scope:
            raise OnboardingError(f"Invalid permission format: {permission!r}")
        granted.setdefault(platform, [])
        if scope not in granted[platform]:
            granted[platform].append(scope)
    return granted


def default_permissions(link: OnboardingLink) -> list[str]:
    """Permissions implied by the link when the client submits none."""
    permissions = []
    for platform in link.platforms or []:
        scopes = link.scopes_for(platform) or ["basic"]
        permissions.extend(f"{platform}:{scope}" for scope in scopes)
    return permissions


def select_assets(discovered: list[dict], selected_ids: list[str] | None) -> list[dict]:
    """Keep the assets the client picked; no selection keeps everything."""
    if not selected_ids:
        return discovered
    chosen = [a for a in discovered if str(a.get("id")) in selected_ids]
    if not chosen:
        logger.warning(f"Asset selection {selected_ids} matched nothing, keeping all discovered assets")
        return discovered
    return chosen


async def resolve_client(
    db: AsyncSession,
    link: OnboardingLink,
    email: str | None,
    full_name: str | None,
    company_name: str | None,
) -> Client:
    """Client targeted by the link, else the admin's client with this email, else a new one."""
    client = await db.get(Client, link.client_id) if link.client_id else None

    if client is None:
        if not email:
            raise OnboardingError("Client email is required")
        result = await db.execute(
            select(Client).where(Client.admin_id == link.admin_id, Client.email == email)
        )
        client = result.scalar_one_or_none()

    if client is None:
        client = Client(
            admin_id=link.admin_id,
            email=email,
            full_name=full_name,
            company_name=company_name,
        )
        db.add(client)
        logger.info(f"Creating client {email} for admin {link.admin_id}")
    else:
        if full_name:
            client.full_name = full_name
        if company_name:
            client.company_name = company_name

    await db.flush()
    return client


async def submit_onboarding(
    db: AsyncSession,
    link: OnboardingLink,
    permissions: list[str] | None = None,
    data: dict | None = None,
    selected_assets: dict[str, list[str]] | None = None,
) -> tuple[OnboardingRequest, Client]:
    """Finish onboarding: persist the client's connections and close the request."""
    data = data or {}
    granted = parse_permissions(permissions or default_permissions(link))

    request = await get_or_create_request(db, link)
    client = await resolve_client(
        db,
        link,
        email=data.get("email") or request.client_email,
        full_name=data.get("name") or data.get("full_name") or request.client_name,
        company_name=data.get("company") or data.get("company_name") or request.company_name,
    )

    # Request and link are closed only after every connection is written
    for platform_name, stored in (request.platform_connections or {}).items():
        try:
            platform = Platform(platform_name)
        except ValueError:
            logger.warning(f"Skipping stored connection for unknown platform {platform_name!r}")
            continue
        if not isinstance(stored, dict) or not stored.get("access_token"):
            logger.warning(f"Skipping {platform_name} connection without an access token")
            continue

        expires_at = stored.get("token_expires_at")
        await upsert_client_connection(
            db,
            client.id,
            platform,
            access_token=stored["access_token"],
            refresh_token=stored.get("refresh_token"),
            token_expires_at=datetime.fromisoformat(expires_at) if expires_at else None,
            scopes=stored.get("scopes") or granted.get(platform_name, []),
            user_info=PlatformUserInfo(
                id=stored.get("platform_user_id") or "unknown",
                username=stored.get("platform_username"),
            ),
            assets=select_assets(
                stored.get("assets") or [],
                (selected_assets or {}).get(platform_name),
            ),
        )

    now = datetime.now(timezone.utc)
    request.client_id = client.id
    request.client_email = client.email
    request.client_name = client.full_name
    request.company_name = client.company_name
    request.granted_permissions = granted
    request.status = RequestStatus.COMPLETED
    request.submitted_at = now

    link.is_used = True
    link.status = LinkStatus.COMPLETED
    client.last_onboarding_at = now
    await db.commit()

    logger.info(
        f"Onboarding submitted on link {link.token[:8]} for client {client.email}: "
        f"{sorted(granted)}"
    )
    return request, client


async def find_assets(db: AsyncSession, platform: Platform, client_or_request_id: str) -> list[Asset] | None:
    """Stored assets for a platform, looked up by onboarding request id or client id."""
    request = await db.get(OnboardingRequest, client_or_request_id)
    if request is not None:
        stored = (request.platform_connections or {}).get(platform.value)
        if stored is not None:
            return assets_from_dicts(stored.get("assets"))
        if request.client_id:
            client_or_request_id = request.client_id
        else:
            return None

    connection: ClientPlatformConnection | None = await get_active_client_connection(
        db, client_or_request_id, platform
    )
    if connection is None:
        return None
    return assets_from_dicts(connection.assets)
