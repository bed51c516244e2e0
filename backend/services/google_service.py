"""Google OAuth and Google APIs asset discovery.

Covers Ads, Analytics (GA4 admin), Business Profile, Tag Manager, Search
Console and Merchant Center. All calls use a bearer token.
"""

import logging
from urllib.parse import urlencode

import httpx
from pydantic import Field

from config import Settings
from services.assets import (
    Asset,
    AssetType,
    ProviderRecord,
    ensure_assets,
    has_scope,
    probe,
    strip_prefix,
)
from services.exceptions import IdentityFetchError, OAuthNotConfiguredError, TokenExchangeError
from services.http_client import use_client
from services.oauth_common import (
    OAuthTokenResponse,
    PlatformUserInfo,
    decode_jwt_claims,
    get_identity,
    post_token_request,
)
from services.scopes import expand_google_scopes

logger = logging.getLogger(__name__)

PLATFORM = "google"
AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"

ADS_CUSTOMERS_URL = "https://googleads.googleapis.com/v14/customers:listAccessibleCustomers"
ANALYTICS_SUMMARIES_URL = "https://analyticsadmin.googleapis.com/v1beta/accountSummaries"
BUSINESS_ACCOUNTS_URL = "https://mybusinessaccountmanagement.googleapis.com/v1/accounts"
TAGMANAGER_ACCOUNTS_URL = "https://tagmanager.googleapis.com/tagmanager/v2/accounts"
SEARCH_CONSOLE_SITES_URL = "https://www.googleapis.com/webmasters/v3/sites"
MERCHANT_ACCOUNTS_URL = "https://merchantapi.googleapis.com/accounts/v1beta/accounts"

DEBUG_ANALYTICS_PROPERTY_ID = "test-analytics-123"


# Google API response records

class AdsAccessibleCustomers(ProviderRecord):
    resource_names: list[str] = Field(default=[], alias="resourceNames")


class AnalyticsPropertySummary(ProviderRecord):
    property: str
    display_name: str | None = Field(default=None, alias="displayName")

    def to_asset(self) -> Asset:
        return Asset.build(
            strip_prefix(self.property, "properties/"),
            self.display_name,
            AssetType.ANALYTICS_PROPERTY,
        )


class AnalyticsAccountSummary(ProviderRecord):
    account: str | None = None
    display_name: str | None = Field(default=None, alias="displayName")
    property_summaries: list[AnalyticsPropertySummary] = Field(default=[], alias="propertySummaries")


class AnalyticsAccountSummaries(ProviderRecord):
    account_summaries: list[AnalyticsAccountSummary] = Field(default=[], alias="accountSummaries")


class BusinessProfileAccount(ProviderRecord):
    name: str
    account_name: str | None = Field(default=None, alias="accountName")

    def to_asset(self) -> Asset:
        return Asset.build(
            strip_prefix(self.name, "accounts/"),
            self.account_name,
            AssetType.BUSINESS_ACCOUNT,
        )


class BusinessProfileAccounts(ProviderRecord):
    accounts: list[BusinessProfileAccount] = []


class TagManagerAccount(ProviderRecord):
    account_id: str = Field(alias="accountId")
    name: str | None = None

    def to_asset(self) -> Asset:
        return Asset.build(self.account_id, self.name, AssetType.TAGMANAGER_ACCOUNT)


class TagManagerAccounts(ProviderRecord):
    account: list[TagManagerAccount] = []


class SearchConsoleSite(ProviderRecord):
    site_url: str = Field(alias="siteUrl")
    permission_level: str | None = Field(default=None, alias="permissionLevel")

    def to_asset(self) -> Asset:
        return Asset.build(self.site_url, self.site_url, AssetType.SEARCHCONSOLE_SITE)


class SearchConsoleSites(ProviderRecord):
    site_entry: list[SearchConsoleSite] = Field(default=[], alias="siteEntry")


class MerchantAccount(ProviderRecord):
    name: str | None = None
    account_id: str | None = Field(default=None, alias="accountId")
    account_name: str | None = Field(default=None, alias="accountName")

    def to_asset(self) -> Asset | None:
        asset_id = self.account_id or (strip_prefix(self.name, "accounts/") if self.name else None)
        if not asset_id:
            return None
        return Asset.build(asset_id, self.account_name, AssetType.MERCHANT_ACCOUNT)


class MerchantAccounts(ProviderRecord):
    accounts: list[MerchantAccount] = []


# Response mappers

def parse_ads_customers(body: dict) -> list[Asset]:
    return [
        Asset.build(strip_prefix(resource, "customers/"), None, AssetType.AD_ACCOUNT)
        for resource in AdsAccessibleCustomers.model_validate(body).resource_names
    ]


def parse_analytics_properties(body: dict) -> list[Asset]:
    summaries = AnalyticsAccountSummaries.model_validate(body).account_summaries
    return [prop.to_asset() for account in summaries for prop in account.property_summaries]


def parse_business_accounts(body: dict) -> list[Asset]:
    return [a.to_asset() for a in BusinessProfileAccounts.model_validate(body).accounts]


def parse_tagmanager_accounts(body: dict) -> list[Asset]:
    return [a.to_asset() for a in TagManagerAccounts.model_validate(body).account]


def parse_search_console_sites(body: dict) -> list[Asset]:
    return [s.to_asset() for s in SearchConsoleSites.model_validate(body).site_entry]


def parse_merchant_accounts(body: dict) -> list[Asset]:
    assets = (a.to_asset() for a in MerchantAccounts.model_validate(body).accounts)
    return [asset for asset in assets if asset is not None]


# OAuth

def build_auth_url(settings: Settings, redirect_uri: str, scopes: list[str], state: str) -> str:
    """Build the Google consent screen URL with offline access."""
    if not settings.google_client_id:
        raise OAuthNotConfiguredError(PLATFORM)

    params = {
        "client_id": settings.google_client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": " ".join(expand_google_scopes(scopes)),
        "access_type": "offline",
        "prompt": "consent",
        "include_granted_scopes": "true",
        "state": state,
    }
    return f"{AUTH_URL}?{urlencode(params)}"


async def exchange_code_for_tokens(
    code: str,
    redirect_uri: str,
    settings: Settings,
    client: httpx.AsyncClient | None = None,
) -> OAuthTokenResponse:
    """Exchange authorization code for access, refresh and ID tokens."""
    if not settings.google_client_id or not settings.google_client_secret:
        raise OAuthNotConfiguredError(PLATFORM)

    async with use_client(client, settings.http_timeout_seconds) as http:
        data = await post_token_request(
            http,
            PLATFORM,
            TOKEN_URL,
            {
                "client_id": settings.google_client_id,
                "client_secret": settings.google_client_secret,
                "code": code,
                "grant_type": "authorization_code",
                "redirect_uri": redirect_uri,
            },
        )

    if not data.get("access_token"):
        raise TokenExchangeError(PLATFORM, 200, "No access token in response")

    return OAuthTokenResponse.model_validate(data)


async def get_user_info(
    access_token: str,
    settings: Settings,
    client: httpx.AsyncClient | None = None,
    id_token: str | None = None,
) -> PlatformUserInfo:
    """Fetch the Google account profile.

    The stable user id is the ID token's `sub` claim when available.
    """
    async with use_client(client, settings.http_timeout_seconds) as http:
        data = await get_identity(
            http,
            PLATFORM,
            USERINFO_URL,
            headers={"Authorization": f"Bearer {access_token}"},
        )

    claims = decode_jwt_claims(id_token) or {}
    user_id = claims.get("sub") or data.get("id")
    if not user_id:
        raise IdentityFetchError(PLATFORM, 200, "No user id in response")

    return PlatformUserInfo(
        id=str(user_id),
        username=data.get("email"),
        name=data.get("name"),
        email=data.get("email"),
        picture=data.get("picture"),
    )


# Asset discovery

async def discover_assets(
    access_token: str,
    scopes: list[str],
    settings: Settings,
    client: httpx.AsyncClient | None = None,
    log: logging.Logger = logger,
) -> list[Asset]:
    """Enumerate every Google property the granted scopes can reach.

    Always returns at least one asset.
    """
    assets: list[Asset] = []
    bearer = {"Authorization": f"Bearer {access_token}"}
    log.info(f"[Google] Starting asset fetch with scopes: {scopes}")

    async with use_client(client, settings.http_timeout_seconds) as http:
        if has_scope(scopes, "adwords"):
            if settings.google_ads_developer_token:
                assets += await probe(
                    http,
                    "[Google] Ads customers",
                    ADS_CUSTOMERS_URL,
                    parse_ads_customers,
                    method="POST",
                    headers={**bearer, "developer-token": settings.google_ads_developer_token},
                    log=log,
                )
            else:
                log.warning("[Google] Ads scope granted but no developer token configured, skipping")

        if has_scope(scopes, "analytics.readonly"):
            assets += await probe(
                http,
                "[Google] Analytics properties",
                ANALYTICS_SUMMARIES_URL,
                parse_analytics_properties,
                headers=bearer,
                log=log,
            )
            if settings.debug_assets:
                log.info("[Google] debug_assets enabled, adding test analytics property")
                assets.append(
                    Asset(
                        id=DEBUG_ANALYTICS_PROPERTY_ID,
                        name="Test Analytics Property",
                        type=AssetType.ANALYTICS_PROPERTY,
                    )
                )

        if has_scope(scopes, "business.manage"):
            assets += await probe(
                http,
                "[Google] Business Profile accounts",
                BUSINESS_ACCOUNTS_URL,
                parse_business_accounts,
                headers=bearer,
                log=log,
            )

        if has_scope(scopes, "tagmanager.readonly"):
            assets += await probe(
                http,
                "[Google] Tag Manager accounts",
                TAGMANAGER_ACCOUNTS_URL,
                parse_tagmanager_accounts,
                headers=bearer,
                log=log,
            )

        if has_scope(scopes, "webmasters.readonly"):
            assets += await probe(
                http,
                "[Google] Search Console sites",
                SEARCH_CONSOLE_SITES_URL,
                parse_search_console_sites,
                headers=bearer,
                log=log,
            )

        if has_scope(scopes, "content"):
            assets += await probe(
                http,
                "[Google] Merchant Center accounts",
                MERCHANT_ACCOUNTS_URL,
                parse_merchant_accounts,
                headers=bearer,
                log=log,
            )

    assets = ensure_assets(assets, "Google", log)
    log.info(f"[Google] Final assets list: {[a.to_dict() for a in assets]}")
    return assets
