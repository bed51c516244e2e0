"""TikTok Login Kit OAuth and TikTok for Business advertiser discovery."""

import logging
from urllib.parse import urlencode

import httpx
from pydantic import Field

from config import Settings
from services.assets import Asset, AssetType, ProviderRecord, ensure_assets, has_scope, probe
from services.exceptions import IdentityFetchError, OAuthNotConfiguredError, TokenExchangeError
from services.http_client import use_client
from services.oauth_common import (
    OAuthTokenResponse,
    PlatformUserInfo,
    get_identity,
    post_token_request,
)

logger = logging.getLogger(__name__)

PLATFORM = "tiktok"
AUTH_URL = "https://www.tiktok.com/auth/authorize/"
TOKEN_URL = "https://open-api.tiktok.com/oauth/access_token/"
USER_INFO_URL = "https://open-api.tiktok.com/user/info/"
ADVERTISERS_URL = "https://business-api.tiktok.com/open_api/v1.3/oauth2/advertiser/get/"


class TikTokAdvertiser(ProviderRecord):
    advertiser_id: str
    advertiser_name: str | None = None

    def to_asset(self) -> Asset:
        return Asset.build(self.advertiser_id, self.advertiser_name, AssetType.AD_ACCOUNT)


class TikTokAdvertiserPage(ProviderRecord):
    advertisers: list[TikTokAdvertiser] = Field(default=[], alias="list")


class TikTokAdvertiserResponse(ProviderRecord):
    """Business API envelope; `code` is non-zero on errors even with HTTP 200."""
    code: int = 0
    message: str | None = None
    data: TikTokAdvertiserPage | None = None


def parse_advertisers(body: dict) -> list[Asset]:
    result = TikTokAdvertiserResponse.model_validate(body)
    if result.code != 0:
        raise ValueError(f"TikTok API error {result.code}: {result.message}")
    if not result.data:
        return []
    return [a.to_asset() for a in result.data.advertisers]


def _unwrap(body: dict) -> dict:
    """TikTok v1 responses nest the payload under `data`; accept flat bodies too."""
    data = body.get("data")
    return data if isinstance(data, dict) else body


def build_auth_url(settings: Settings, redirect_uri: str, scopes: list[str], state: str) -> str:
    if not settings.tiktok_client_key:
        raise OAuthNotConfiguredError(PLATFORM)

    params = {
        "client_key": settings.tiktok_client_key,
        "scope": ",".join(scopes),
        "response_type": "code",
        "redirect_uri": redirect_uri,
        "state": state,
    }
    return f"{AUTH_URL}?{urlencode(params)}"


async def exchange_code_for_tokens(
    code: str,
    redirect_uri: str,
    settings: Settings,
    client: httpx.AsyncClient | None = None,
) -> OAuthTokenResponse:
    if not settings.tiktok_client_key or not settings.tiktok_client_secret:
        raise OAuthNotConfiguredError(PLATFORM)

    async with use_client(client, settings.http_timeout_seconds) as http:
        body = await post_token_request(
            http,
            PLATFORM,
            TOKEN_URL,
            {
                "client_key": settings.tiktok_client_key,
                "client_secret": settings.tiktok_client_secret,
                "code": code,
                "grant_type": "authorization_code",
                "redirect_uri": redirect_uri,
            },
        )

    data = _unwrap(body)
    if not data.get("access_token"):
        raise TokenExchangeError(
            PLATFORM, 200, str(data.get("description") or "No access token in response")
        )

    return OAuthTokenResponse.model_validate(data)


async def get_user_info(
    access_token: str,
    settings: Settings,
    client: httpx.AsyncClient | None = None,
) -> PlatformUserInfo:
    async with use_client(client, settings.http_timeout_seconds) as http:
        body = await get_identity(
            http,
            PLATFORM,
            USER_INFO_URL,
            headers={"Authorization": f"Bearer {access_token}"},
        )

    user = _unwrap(body).get("user")
    if not isinstance(user, dict) or not user.get("open_id"):
        raise IdentityFetchError(PLATFORM, 200, "No open_id in response")

    return PlatformUserInfo(
        id=str(user["open_id"]),
        username=user.get("display_name"),
        name=user.get("display_name"),
        picture=user.get("avatar_url"),
    )


async def discover_assets(
    access_token: str,
    scopes: list[str],
    settings: Settings,
    client: httpx.AsyncClient | None = None,
    log: logging.Logger = logger,
) -> list[Asset]:
    """List advertiser accounts when an ads scope was granted."""
    assets: list[Asset] = []
    log.info(f"[TikTok] Starting asset fetch with scopes: {scopes}")

    async with use_client(client, settings.http_timeout_seconds) as http:
        if has_scope(scopes, "advertiser", "ads"):
            assets += await probe(
                http,
                "[TikTok] Advertisers",
                ADVERTISERS_URL,
                parse_advertisers,
                params={
                    "app_id": settings.tiktok_client_key,
                    "secret": settings.tiktok_client_secret,
                },
                headers={"Access-Token": access_token},
                log=log,
            )

    return ensure_assets(assets, "TikTok", log)
