"""Meta (Facebook / Instagram) OAuth and Graph API asset discovery.

The access token travels as the `access_token` query parameter, following
Graph API convention.
"""

import logging
from typing import Generic, TypeVar
from urllib.parse import urlencode

import httpx

from config import Settings
from services.assets import (
    Asset,
    AssetType,
    ProviderRecord,
    count_type,
    ensure_assets,
    has_scope,
    probe,
)
from services.exceptions import IdentityFetchError, OAuthNotConfiguredError, TokenExchangeError
from services.http_client import use_client
from services.oauth_common import (
    OAuthTokenResponse,
    PlatformUserInfo,
    get_identity,
    post_token_request,
)

logger = logging.getLogger(__name__)

PLATFORM = "meta"
GRAPH_BASE = "https://graph.facebook.com/v18.0"
DIALOG_URL = "https://www.facebook.com/v18.0/dialog/oauth"

CATALOG_PLACEHOLDER_ID = "catalog_placeholder"


# Graph API response records

NodeT = TypeVar("NodeT")


class GraphList(ProviderRecord, Generic[NodeT]):
    """Standard Graph list envelope: {"data": [...], "paging": {...}}."""
    data: list[NodeT] = []


class GraphNode(ProviderRecord):
    id: str
    name: str | None = None


class GraphAdAccount(GraphNode):
    def to_asset(self) -> Asset:
        return Asset.build(self.id, self.name, AssetType.AD_ACCOUNT)


class GraphPage(GraphNode):
    def to_asset(self) -> Asset:
        return Asset.build(self.id, self.name, AssetType.PAGE)


class GraphCatalog(GraphNode):
    def to_asset(self) -> Asset:
        return Asset.build(self.id, self.name, AssetType.CATALOG)


class GraphBusiness(GraphNode):
    def to_asset(self) -> Asset:
        return Asset.build(self.id, self.name, AssetType.BUSINESS_DATASET)


class GraphUserCatalogs(ProviderRecord):
    """/me?fields=owned_product_catalogs{...}"""
    owned_product_catalogs: GraphList[GraphCatalog] | None = None


class GraphBusinessCatalogs(ProviderRecord):
    id: str | None = None
    owned_product_catalogs: GraphList[GraphCatalog] | None = None


class GraphInstagramAccount(ProviderRecord):
    id: str
    name: str | None = None
    username: str | None = None

    def to_asset(self) -> Asset:
        return Asset.build(self.id, self.name or self.username, AssetType.INSTAGRAM_ACCOUNT)


class GraphPageInstagram(ProviderRecord):
    id: str | None = None
    instagram_business_account: GraphInstagramAccount | None = None


# Response mappers

def parse_ad_accounts(body: dict) -> list[Asset]:
    # The consent dialog has the user pick a primary ad account; others are dropped
    accounts = GraphList[GraphAdAccount].model_validate(body).data
    if len(accounts) > 1:
        logger.info(f"[Meta] {len(accounts)} ad accounts available - keeping only the first")
    return [accounts[0].to_asset()] if accounts else []


def parse_pages(body: dict) -> list[Asset]:
    return [page.to_asset() for page in GraphList[GraphPage].model_validate(body).data]


def parse_user_catalogs(body: dict) -> list[Asset]:
    owned = GraphUserCatalogs.model_validate(body).owned_product_catalogs
    return [catalog.to_asset() for catalog in owned.data] if owned else []


def parse_business_catalogs(body: dict) -> list[Asset]:
    assets = []
    for business in GraphList[GraphBusinessCatalogs].model_validate(body).data:
        if business.owned_product_catalogs:
            assets.extend(c.to_asset() for c in business.owned_product_catalogs.data)
    return assets


def parse_businesses(body: dict) -> list[Asset]:
    return [b.to_asset() for b in GraphList[GraphBusiness].model_validate(body).data]


def parse_instagram_accounts(body: dict) -> list[Asset]:
    return [
        page.instagram_business_account.to_asset()
        for page in GraphList[GraphPageInstagram].model_validate(body).data
        if page.instagram_business_account
    ]


def catalog_placeholder() -> Asset:
    return Asset(id=CATALOG_PLACEHOLDER_ID, name="Product Catalog (Placeholder)", type=AssetType.CATALOG)


# OAuth

def build_auth_url(settings: Settings, redirect_uri: str, scopes: list[str], state: str) -> str:
    """Build the Facebook login dialog URL."""
    if not settings.meta_app_id:
        raise OAuthNotConfiguredError(PLATFORM)

    params = {
        "client_id": settings.meta_app_id,
        "redirect_uri": redirect_uri,
        "scope": ",".join(scopes),
        "response_type": "code",
        "state": state,
    }
    return f"{DIALOG_URL}?{urlencode(params)}"


async def exchange_code_for_tokens(
    code: str,
    redirect_uri: str,
    settings: Settings,
    client: httpx.AsyncClient | None = None,
) -> OAuthTokenResponse:
    """Exchange authorization code for an access token.

    Meta does not return granted scopes or a refresh token here.
    """
    if not settings.meta_app_id or not settings.meta_app_secret:
        raise OAuthNotConfiguredError(PLATFORM)

    async with use_client(client, settings.http_timeout_seconds) as http:
        data = await post_token_request(
            http,
            PLATFORM,
            f"{GRAPH_BASE}/oauth/access_token",
            {
                "client_id": settings.meta_app_id,
                "client_secret": settings.meta_app_secret,
                "redirect_uri": redirect_uri,
                "code": code,
            },
        )

    if not data.get("access_token"):
        raise TokenExchangeError(PLATFORM, 200, "No access token in response")

    return OAuthTokenResponse(
        access_token=data["access_token"],
        refresh_token=data.get("refresh_token"),
        expires_in=data.get("expires_in"),
        token_type=data.get("token_type"),
        scope=data.get("scope"),
    )


async def get_user_info(
    access_token: str,
    settings: Settings,
    client: httpx.AsyncClient | None = None,
) -> PlatformUserInfo:
    """Fetch the Facebook user behind the token."""
    async with use_client(client, settings.http_timeout_seconds) as http:
        data = await get_identity(
            http,
            PLATFORM,
            f"{GRAPH_BASE}/me",
            params={"fields": "id,name,email", "access_token": access_token},
        )

    if not data.get("id"):
        raise IdentityFetchError(PLATFORM, 200, "No user id in response")

    return PlatformUserInfo(
        id=str(data["id"]),
        username=data.get("name"),
        name=data.get("name"),
        email=data.get("email"),
    )


# Asset discovery

async def _fetch_catalogs(
    http: httpx.AsyncClient, access_token: str, log: logging.Logger
) -> list[Asset]:
    """User-owned catalogs, then Business Manager catalogs, then a placeholder."""
    catalogs = await probe(
        http,
        "[Meta] User catalogs",
        f"{GRAPH_BASE}/me",
        parse_user_catalogs,
        params={"fields": "owned_product_catalogs{business,name,id}", "access_token": access_token},
        log=log,
    )

    if not catalogs:
        log.info("[Meta] No user catalogs found, trying business catalogs...")
        catalogs = await probe(
            http,
            "[Meta] Business catalogs",
            f"{GRAPH_BASE}/me/businesses",
            parse_business_catalogs,
            params={"fields": "owned_product_catalogs{name,id}", "access_token": access_token},
            log=log,
        )

    if count_type(catalogs, AssetType.CATALOG) == 0:
        log.warning(
            "[Meta] No catalogs found despite catalog_management scope - adding placeholder catalog"
        )
        catalogs = [catalog_placeholder()]

    return catalogs


async def discover_assets(
    access_token: str,
    scopes: list[str],
    settings: Settings,
    client: httpx.AsyncClient | None = None,
    log: logging.Logger = logger,
) -> list[Asset]:
    """Enumerate ad accounts, pages, catalogs, businesses and Instagram accounts.

    Each lookup runs only when a granted scope covers it. Always returns at
    least one asset.
    """
    assets: list[Asset] = []
    log.info(f"[Meta] Starting asset fetch with scopes: {scopes}")

    async with use_client(client, settings.http_timeout_seconds) as http:
        if has_scope(scopes, "ads_management", "ads_read"):
            assets += await probe(
                http,
                "[Meta] Ad accounts",
                f"{GRAPH_BASE}/me/adaccounts",
                parse_ad_accounts,
                params={"fields": "id,name,account_id", "access_token": access_token},
                log=log,
            )
        else:
            log.debug("[Meta] ads_management/ads_read scope not granted, skipping ad accounts")

        if has_scope(scopes, "pages_"):
            assets += await probe(
                http,
                "[Meta] Pages",
                f"{GRAPH_BASE}/me/accounts",
                parse_pages,
                params={"fields": "id,name", "access_token": access_token},
                log=log,
            )
        else:
            log.debug("[Meta] pages_* scope not granted, skipping pages")

        if has_scope(scopes, "catalog_management"):
            assets += await _fetch_catalogs(http, access_token, log)
        else:
            log.debug("[Meta] catalog_management scope not granted, skipping catalogs")

        if has_scope(scopes, "business_management"):
            assets += await probe(
                http,
                "[Meta] Business datasets",
                f"{GRAPH_BASE}/me/businesses",
                parse_businesses,
                params={"fields": "id,name", "access_token": access_token},
                log=log,
            )

        if has_scope(scopes, "instagram_basic"):
            assets += await probe(
                http,
                "[Meta] Instagram accounts",
                f"{GRAPH_BASE}/me/accounts",
                parse_instagram_accounts,
                params={
                    "fields": "instagram_business_account{id,name,username}",
                    "access_token": access_token,
                },
                log=log,
            )

    assets = ensure_assets(assets, "Meta", log)
    log.info(f"[Meta] Final assets list: {[a.to_dict() for a in assets]}")
    return assets
