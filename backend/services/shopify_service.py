"""Shopify OAuth and store discovery.

Every call is scoped to a shop (`{shop}.myshopify.com`) taken from the
shop recorded in the signed OAuth state or the configured default shop.
"""

import logging
import re
from urllib.parse import urlencode

import httpx

from config import Settings
from services.assets import Asset, AssetType, ProviderRecord, ensure_assets, has_scope, probe
from services.exceptions import IdentityFetchError, OAuthError, OAuthNotConfiguredError, TokenExchangeError
from services.http_client import use_client
from services.oauth_common import (
    OAuthTokenResponse,
    PlatformUserInfo,
    get_identity,
    post_token_request,
)

logger = logging.getLogger(__name__)

PLATFORM = "shopify"
API_VERSION = "2023-10"

# Subdomain part of `{shop}.myshopify.com`
SHOP_NAME_RE = re.compile(r"^[a-z0-9][a-z0-9-]*$")


class ShopifyShop(ProviderRecord):
    id: str
    name: str | None = None
    email: str | None = None
    domain: str | None = None
    myshopify_domain: str | None = None

    def to_asset(self) -> Asset:
        return Asset.build(self.id, self.name or self.myshopify_domain, AssetType.BUSINESS_ACCOUNT)


class ShopifyShopResponse(ProviderRecord):
    shop: ShopifyShop


def parse_shop(body: dict) -> list[Asset]:
    return [ShopifyShopResponse.model_validate(body).shop.to_asset()]


def normalize_shop(shop: str | None) -> str | None:
    """'https://acme.myshopify.com/' -> 'acme'.

    Raises OAuthError for anything that is not a bare myshopify subdomain.
    """
    if not shop:
        return None
    shop = shop.strip().lower()
    for prefix in ("https://", "http://"):
        shop = shop.removeprefix(prefix)
    shop = shop.split("/")[0].removesuffix(".myshopify.com")
    if not shop:
        return None
    if not SHOP_NAME_RE.fullmatch(shop):
        raise OAuthError(PLATFORM, f"Invalid Shopify shop domain: {shop!r}")
    return shop


def resolve_shop(shop: str | None, settings: Settings) -> str:
    resolved = normalize_shop(shop) or normalize_shop(settings.shopify_shop_domain)
    if not resolved:
        raise OAuthError(PLATFORM, "Shopify shop domain not provided")
    return resolved


def shop_base_url(shop: str) -> str:
    return f"https://{shop}.myshopify.com"


def build_auth_url(
    settings: Settings,
    redirect_uri: str,
    scopes: list[str],
    state: str,
    shop: str | None = None,
) -> str:
    if not settings.shopify_client_id:
        raise OAuthNotConfiguredError(PLATFORM)

    params = {
        "client_id": settings.shopify_client_id,
        "scope": ",".join(scopes),
        "redirect_uri": redirect_uri,
        "state": state,
    }
    return f"{shop_base_url(resolve_shop(shop, settings))}/admin/oauth/authorize?{urlencode(params)}"


async def exchange_code_for_tokens(
    code: str,
    redirect_uri: str,
    settings: Settings,
    client: httpx.AsyncClient | None = None,
    shop: str | None = None,
) -> OAuthTokenResponse:
    """Exchange authorization code for an offline (non-expiring) access token."""
    if not settings.shopify_client_id or not settings.shopify_client_secret:
        raise OAuthNotConfiguredError(PLATFORM)
    shop = resolve_shop(shop, settings)

    async with use_client(client, settings.http_timeout_seconds) as http:
        data = await post_token_request(
            http,
            PLATFORM,
            f"{shop_base_url(shop)}/admin/oauth/access_token",
            {
                "client_id": settings.shopify_client_id,
                "client_secret": settings.shopify_client_secret,
                "code": code,
            },
        )

    if not data.get("access_token"):
        raise TokenExchangeError(PLATFORM, 200, "No access token in response")

    return OAuthTokenResponse.model_validate(data)


async def get_user_info(
    access_token: str,
    settings: Settings,
    client: httpx.AsyncClient | None = None,
    shop: str | None = None,
) -> PlatformUserInfo:
    """The connected identity for Shopify is the store itself."""
    shop = resolve_shop(shop, settings)

    async with use_client(client, settings.http_timeout_seconds) as http:
        data = await get_identity(
            http,
            PLATFORM,
            f"{shop_base_url(shop)}/admin/api/{API_VERSION}/shop.json",
            headers={"X-Shopify-Access-Token": access_token},
        )

    store = data.get("shop")
    if not isinstance(store, dict) or not store.get("id"):
        raise IdentityFetchError(PLATFORM, 200, "No shop id in response")

    return PlatformUserInfo(
        id=str(store["id"]),
        username=store.get("myshopify_domain") or shop,
        name=store.get("name"),
        email=store.get("email"),
    )


async def discover_assets(
    access_token: str,
    scopes: list[str],
    settings: Settings,
    client: httpx.AsyncClient | None = None,
    log: logging.Logger = logger,
    shop: str | None = None,
) -> list[Asset]:
    assets: list[Asset] = []
    log.info(f"[Shopify] Starting asset fetch with scopes: {scopes}")

    shop = normalize_shop(shop) or normalize_shop(settings.shopify_shop_domain)
    if not shop:
        log.warning("[Shopify] No shop domain available, skipping store lookup")
    elif has_scope(scopes, "read_", "store_access"):
        async with use_client(client, settings.http_timeout_seconds) as http:
            assets += await probe(
                http,
                "[Shopify] Store",
                f"{shop_base_url(shop)}/admin/api/{API_VERSION}/shop.json",
                parse_shop,
                headers={"X-Shopify-Access-Token": access_token},
                log=log,
            )

    return ensure_assets(assets, "Shopify", log)
