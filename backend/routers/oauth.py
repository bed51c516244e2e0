"""OAuth router - platform connect flows for onboarding clients and admins.

Clients connect through their onboarding link; the callback exchanges the
code, fetches the identity, discovers assets and stores the result on the
link's onboarding request. Admins connect their own accounts from settings.
Every failure ends in a redirect back to the app with an `error` parameter.
"""

import logging
from datetime import datetime
from typing import Annotated
from urllib.parse import urlencode

import httpx
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import RedirectResponse
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from config import Settings, get_settings
from database import get_db
from middleware.auth import require_admin
from models.platform_connection import AdminPlatformConnection, Platform
from models.user import User
from services.assets import Asset
from services.connection_service import (
    deactivate_connection,
    get_active_admin_connection,
    list_admin_connections,
    refresh_connection_assets,
    upsert_admin_connection,
)
from services.exceptions import InvalidStateError, OAuthError, OAuthNotConfiguredError
from services.http_client import get_http_client
from services.link_service import get_link_by_token, is_link_valid
from services.oauth_common import OAuthTokenResponse, PlatformUserInfo
from services.oauth_state import OAuthState, decode_oauth_state, encode_oauth_state
from services.onboarding_service import record_oauth_result
from services.platforms import (
    build_authorization_url,
    exchange_code_for_token,
    fetch_platform_assets,
    fetch_platform_user_info,
)
from services.shopify_service import normalize_shop, resolve_shop
from services.scopes import DEFAULT_SCOPES, get_scopes_for_platform, resolve_granted_scopes

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/oauth", tags=["oauth"])
admin_router = APIRouter(prefix="/api/admin/platform-connections", tags=["admin"])


# Response schemas
class AuthUrlResponse(BaseModel):
    auth_url: str


class AdminConnectRequest(BaseModel):
    scopes: list[str] | None = None
    shop: str | None = None


class AssetResponse(BaseModel):
    id: str
    name: str
    type: str


class ConnectionResponse(BaseModel):
    id: str
    platform: str
    platform_user_id: str
    platform_username: str | None
    scopes: list[str]
    assets: list[AssetResponse]
    token_expires_at: datetime | None
    is_expired: bool
    created_at: datetime
    updated_at: datetime


class ConnectionsListResponse(BaseModel):
    connections: list[ConnectionResponse]


def connection_response(conn) -> ConnectionResponse:
    return ConnectionResponse(
        id=conn.id,
        platform=conn.platform.value,
        platform_user_id=conn.platform_user_id,
        platform_username=conn.platform_username,
        scopes=list(conn.scopes or []),
        assets=[AssetResponse(**a) for a in conn.assets or []],
        token_expires_at=conn.token_expires_at,
        is_expired=conn.is_expired(),
        created_at=conn.created_at,
        updated_at=conn.updated_at,
    )


def _redirect(base: str, **params) -> RedirectResponse:
    query = urlencode({k: v for k, v in params.items() if v is not None})
    return RedirectResponse(url=f"{base}?{query}" if query else base, status_code=status.HTTP_302_FOUND)


def _error_redirect(base: str, platform: Platform, exc: Exception) -> RedirectResponse:
    error = "oauth_not_configured" if isinstance(exc, OAuthNotConfiguredError) else "oauth_failed"
    message = exc.message if isinstance(exc, OAuthError) else "Unexpected error during connection"
    return _redirect(base, error=error, platform=platform.value, message=message)


def _next_step(platform: Platform) -> int:
    return list(Platform).index(platform) + 1


def _state_shop(platform: Platform, shop: str | None, settings: Settings) -> str | None:
    """Canonical shop to sign into the state. Raises OAuthError for a bad shop."""
    if platform != Platform.SHOPIFY:
        return None
    return resolve_shop(shop, settings)


async def _complete_oauth(
    platform: Platform,
    code: str,
    state: OAuthState,
    settings: Settings,
    http: httpx.AsyncClient,
    shop: str | None,
) -> tuple[OAuthTokenResponse, PlatformUserInfo, list[str], list[Asset]]:
    """Exchange, identify and discover. Raises OAuthError before anything is stored."""
    redirect_uri = settings.redirect_uri(state.flow, platform.value)
    if platform == Platform.SHOPIFY and shop and normalize_shop(shop) != state.shop:
        raise InvalidStateError(platform.value, "Callback shop does not match the authorized shop")
    shop = state.shop

    tokens = await exchange_code_for_token(
        platform.value, code, redirect_uri, settings, client=http, shop=shop
    )
    user_info = await fetch_platform_user_info(
        platform.value, tokens.access_token, settings, id_token=tokens.id_token, client=http, shop=shop
    )
    scopes = resolve_granted_scopes(platform.value, tokens.scope, state.scopes)
    logger.info(f"{platform.value} connected as {user_info.id} with scopes {scopes}")

    assets = await fetch_platform_assets(
        platform.value, tokens.access_token, scopes, settings, client=http, shop=shop
    )
    return tokens, user_info, scopes, assets


# Client connect flow

@router.get("/client/connect/{platform}")
async def client_connect(
    platform: Platform,
    db: Annotated[AsyncSession, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
    http: Annotated[httpx.AsyncClient, Depends(get_http_client)],
    token: str | None = None,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    error_description: str | None = None,
    shop: str | None = None,
) -> RedirectResponse:
    """Start a client's OAuth flow (`?token=`) or handle the provider callback."""
    app_url = settings.app_url.rstrip("/")

    if code or error:
        try:
            oauth_state = decode_oauth_state(state, platform.value, settings)
        except OAuthError as e:
            logger.warning(f"Client OAuth callback for {platform.value} rejected: {e.message}")
            base = f"{app_url}/onboarding/{token}" if token else f"{app_url}/"
            return _error_redirect(base, platform, e)

        flow_token = oauth_state.token or token
        base = f"{app_url}/onboarding/{flow_token}" if flow_token else f"{app_url}/"

        if error:
            logger.info(f"Client denied {platform.value} authorization: {error}")
            return _redirect(
                base, error="oauth_denied", platform=platform.value, message=error_description or error
            )

        link = await get_link_by_token(db, flow_token) if flow_token else None
        if link is None or oauth_state.flow != "client":
            return _redirect(
                base, error="oauth_failed", platform=platform.value, message="Onboarding link not found"
            )

        try:
            tokens, user_info, scopes, assets = await _complete_oauth(
                platform, code, oauth_state, settings, http, shop
            )
        except OAuthError as e:
            logger.exception(f"Client OAuth callback error for {platform.value}: {e.message}")
            return _error_redirect(base, platform, e)

        await record_oauth_result(db, link, platform, tokens, scopes, user_info, assets)
        return _redirect(base, connected=platform.value, success="true", step=_next_step(platform))

    # Initiate
    if not token:
        return _redirect(f"{app_url}/", error="missing_onboarding_token", platform=platform.value)

    base = f"{app_url}/onboarding/{token}"
    link = await get_link_by_token(db, token)
    if link is None or not is_link_valid(link.expires_at):
        return _redirect(
            base, error="oauth_failed", platform=platform.value, message="Onboarding link is invalid or expired"
        )

    scopes = link.scopes_for(platform.value) or DEFAULT_SCOPES.get(platform.value, [])
    try:
        shop = _state_shop(platform, shop, settings)
        signed_state = encode_oauth_state(
            OAuthState(flow="client", platform=platform.value, token=token, scopes=scopes, shop=shop),
            settings,
        )
        auth_url = build_authorization_url(
            platform.value,
            settings.redirect_uri("client", platform.value),
            scopes,
            signed_state,
            settings,
            shop=shop,
        )
    except OAuthError as e:
        logger.error(f"Cannot start {platform.value} OAuth: {e.message}")
        return _error_redirect(base, platform, e)

    logger.info(f"Redirecting client to {platform.value} consent for link {token[:8]}")
    return RedirectResponse(url=auth_url, status_code=status.HTTP_302_FOUND)


# Admin connect flow

@router.post("/admin/connect/{platform}/start", response_model=AuthUrlResponse)
async def admin_connect_start(
    platform: Platform,
    current_user: Annotated[User, Depends(require_admin)],
    settings: Annotated[Settings, Depends(get_settings)],
    body: AdminConnectRequest | None = None,
):
    """Start an admin's own OAuth flow. Returns the authorization URL."""
    body = body or AdminConnectRequest()
    scopes = body.scopes or get_scopes_for_platform(platform.value)

    try:
        shop = _state_shop(platform, body.shop, settings)
        signed_state = encode_oauth_state(
            OAuthState(
                flow="admin",
                platform=platform.value,
                admin_id=current_user.id,
                scopes=scopes,
                shop=shop,
            ),
            settings,
        )
        auth_url = build_authorization_url(
            platform.value,
            settings.redirect_uri("admin", platform.value),
            scopes,
            signed_state,
            settings,
            shop=shop,
        )
    except OAuthNotConfiguredError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=e.message)
    except OAuthError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)

    return AuthUrlResponse(auth_url=auth_url)


@router.get("/admin/connect/{platform}")
async def admin_connect_callback(
    platform: Platform,
    db: Annotated[AsyncSession, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
    http: Annotated[httpx.AsyncClient, Depends(get_http_client)],
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    error_description: str | None = None,
    shop: str | None = None,
) -> RedirectResponse:
    """Provider callback for an admin's connection."""
    base = f"{settings.app_url.rstrip('/')}/admin/settings"

    try:
        oauth_state = decode_oauth_state(state, platform.value, settings)
    except OAuthError as e:
        logger.warning(f"Admin OAuth callback for {platform.value} rejected: {e.message}")
        return _error_redirect(base, platform, e)

    if error or not code:
        return _redirect(
            base,
            error="oauth_denied",
            platform=platform.value,
            message=error_description or error or "No authorization code returned",
        )

    if oauth_state.flow != "admin" or not oauth_state.admin_id:
        return _redirect(base, error="oauth_failed", platform=platform.value, message="Invalid state parameter")

    try:
        tokens, user_info, scopes, assets = await _complete_oauth(
            platform, code, oauth_state, settings, http, shop
        )
    except OAuthError as e:
        logger.exception(f"Admin OAuth callback error for {platform.value}: {e.message}")
        return _error_redirect(base, platform, e)

    await upsert_admin_connection(
        db,
        oauth_state.admin_id,
        platform,
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        token_expires_at=tokens.expires_at(),
        scopes=scopes,
        user_info=user_info,
        assets=assets,
    )
    return _redirect(
        base,
        connected=platform.value,
        success="true",
        username=user_info.display_name or user_info.id,
    )


# Admin connection management

async def _get_admin_connection_or_404(
    db: AsyncSession, admin_id: str, platform: Platform
) -> AdminPlatformConnection:
    connection = await get_active_admin_connection(db, admin_id, platform)
    if connection is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No active {platform.value} connection",
        )
    return connection


@admin_router.get("", response_model=ConnectionsListResponse)
async def list_platform_connections(
    current_user: Annotated[User, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """List the admin's active platform connections."""
    connections = await list_admin_connections(db, current_user.id)
    return ConnectionsListResponse(connections=[connection_response(c) for c in connections])


@admin_router.post("/{platform}/refresh-assets", response_model=ConnectionResponse)
async def refresh_platform_assets(
    platform: Platform,
    current_user: Annotated[User, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
    http: Annotated[httpx.AsyncClient, Depends(get_http_client)],
):
    """Re-run asset discovery with the stored token."""
    connection = await _get_admin_connection_or_404(db, current_user.id, platform)
    assets = await fetch_platform_assets(
        platform.value, connection.access_token, list(connection.scopes or []), settings, client=http
    )
    await refresh_connection_assets(db, connection, assets)
    return connection_response(connection)


@admin_router.delete("/{platform}")
async def disconnect_platform(
    platform: Platform,
    current_user: Annotated[User, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Deactivate the admin's connection for a platform."""
    connection = await _get_admin_connection_or_404(db, current_user.id, platform)
    await deactivate_connection(db, connection)
    return {"message": f"{platform.value} disconnected successfully"}
