"""Platform dispatch for token exchange, identity fetch and asset discovery."""

import logging
from types import ModuleType

import httpx
from pydantic import ValidationError

from config import Settings
from services import google_service, meta_service, shopify_service, tiktok_service
from services.assets import Asset, error_asset
from services.exceptions import IdentityFetchError, TokenExchangeError, UnsupportedPlatformError
from services.oauth_common import OAuthTokenResponse, PlatformUserInfo

logger = logging.getLogger(__name__)

PROVIDERS: dict[str, ModuleType] = {
    "meta": meta_service,
    "google": google_service,
    "tiktok": tiktok_service,
    "shopify": shopify_service,
}

PLATFORM_LABELS = {
    "meta": "Meta",
    "google": "Google",
    "tiktok": "TikTok",
    "shopify": "Shopify",
}


def get_provider(platform: str) -> ModuleType:
    provider = PROVIDERS.get(platform)
    if provider is None:
        raise UnsupportedPlatformError(platform)
    return provider


def _shop_kwargs(platform: str, shop: str | None) -> dict:
    return {"shop": shop} if platform == "shopify" else {}


def build_authorization_url(
    platform: str,
    redirect_uri: str,
    scopes: list[str],
    state: str,
    settings: Settings,
    shop: str | None = None,
) -> str:
    provider = get_provider(platform)
    return provider.build_auth_url(settings, redirect_uri, scopes, state, **_shop_kwargs(platform, shop))


async def exchange_code_for_token(
    platform: str,
    code: str,
    redirect_uri: str,
    settings: Settings,
    client: httpx.AsyncClient | None = None,
    shop: str | None = None,
) -> OAuthTokenResponse:
    """Exchange an authorization code; raises TokenExchangeError on failure."""
    provider = get_provider(platform)
    logger.info(f"Exchanging {platform} authorization code")
    try:
        return await provider.exchange_code_for_tokens(
            code, redirect_uri, settings, client, **_shop_kwargs(platform, shop)
        )
    except ValidationError as e:
        raise TokenExchangeError(platform, 200, f"Malformed token response: {e}") from e


async def fetch_platform_user_info(
    platform: str,
    access_token: str,
    settings: Settings,
    id_token: str | None = None,
    client: httpx.AsyncClient | None = None,
    shop: str | None = None,
) -> PlatformUserInfo:
    """Fetch the connected identity; raises IdentityFetchError on failure."""
    provider = get_provider(platform)
    extra = {"id_token": id_token} if platform == "google" else _shop_kwargs(platform, shop)
    try:
        return await provider.get_user_info(access_token, settings, client, **extra)
    except ValidationError as e:
        raise IdentityFetchError(platform, 200, f"Malformed user info response: {e}") from e


async def fetch_platform_assets(
    platform: str,
    access_token: str,
    scopes: list[str],
    settings: Settings,
    client: httpx.AsyncClient | None = None,
    log: logging.Logger = logger,
    shop: str | None = None,
) -> list[Asset]:
    """Discover assets reachable with the token. Never raises.

    An unexpected failure anywhere in the provider's pass yields a single
    error asset.
    """
    try:
        provider = get_provider(platform)
        return await provider.discover_assets(
            access_token, scopes, settings, client, log, **_shop_kwargs(platform, shop)
        )
    except Exception:
        log.exception(f"Error fetching {platform} assets")
        return [error_asset()]
