import pytest
from jose import jwt

from services import google_service, meta_service, platforms, shopify_service, tiktok_service
from services.assets import AssetType
from services.exceptions import (
    IdentityFetchError,
    OAuthNotConfiguredError,
    TokenExchangeError,
    UnsupportedPlatformError,
)

REDIRECT = "http://app.test/api/oauth/client/connect/google"


async def test_failed_exchange_raises_before_any_other_call(settings, fake, http):
    fake.add("POST", google_service.TOKEN_URL, status=400, json={"error": "invalid_grant"})

    with pytest.raises(TokenExchangeError) as exc_info:
        await platforms.exchange_code_for_token("google", "bad-code", REDIRECT, settings, client=http)

    assert exc_info.value.status_code == 400
    assert "invalid_grant" in exc_info.value.body
    assert len(fake.calls) == 1


async def test_exchange_without_access_token_raises(settings, fake, http):
    fake.add("POST", f"{meta_service.GRAPH_BASE}/oauth/access_token", json={"token_type": "bearer"})

    with pytest.raises(TokenExchangeError):
        await platforms.exchange_code_for_token("meta", "code", REDIRECT, settings, client=http)


async def test_google_exchange_and_identity_from_id_token(settings, fake, http):
    id_token = jwt.encode({"sub": "google-sub-1", "email": "owner@acme.com"}, "provider-key")
    fake.add(
        "POST",
        google_service.TOKEN_URL,
        json={
            "access_token": "ya29",
            "refresh_token": "1//refresh",
            "expires_in": 3599,
            "scope": "openid https://www.googleapis.com/auth/analytics.readonly",
            "token_type": "Bearer",
            "id_token": id_token,
        },
    )
    fake.add(
        "GET",
        google_service.USERINFO_URL,
        json={"id": "1180000", "email": "owner@acme.com", "name": "Owner"},
    )

    tokens = await platforms.exchange_code_for_token("google", "code", REDIRECT, settings, client=http)
    user = await platforms.fetch_platform_user_info(
        "google", tokens.access_token, settings, id_token=tokens.id_token, client=http
    )

    assert tokens.refresh_token == "1//refresh"
    assert tokens.expires_at() is not None
    assert user.id == "google-sub-1"
    assert user.email == "owner@acme.com"

    token_request = fake.called(google_service.TOKEN_URL)[0]
    assert b"grant_type=authorization_code" in token_request.content
    assert fake.called(google_service.USERINFO_URL)[0].headers["Authorization"] == "Bearer ya29"


async def test_google_identity_falls_back_to_userinfo_id(settings, fake, http):
    fake.add("GET", google_service.USERINFO_URL, json={"id": "1180000", "name": "Owner"})

    user = await platforms.fetch_platform_user_info("google", "ya29", settings, client=http)

    assert user.id == "1180000"


async def test_identity_failure_raises(settings, fake, http):
    fake.add("GET", f"{meta_service.GRAPH_BASE}/me", status=401, json={"error": "expired"})

    with pytest.raises(IdentityFetchError):
        await platforms.fetch_platform_user_info("meta", "tok", settings, client=http)


async def test_tiktok_envelope_is_unwrapped(settings, fake, http):
    fake.add(
        "POST",
        tiktok_service.TOKEN_URL,
        json={
            "data": {
                "access_token": "act.123",
                "expires_in": 86400,
                "open_id": "oid-1",
                "refresh_token": "rft.456",
                "scope": "user.info.basic,video.list",
            },
            "message": "success",
        },
    )
    fake.add(
        "GET",
        tiktok_service.USER_INFO_URL,
        json={"data": {"user": {"open_id": "oid-1", "display_name": "acme_tt"}}},
    )

    tokens = await platforms.exchange_code_for_token("tiktok", "code", REDIRECT, settings, client=http)
    user = await platforms.fetch_platform_user_info("tiktok", tokens.access_token, settings, client=http)

    assert tokens.access_token == "act.123"
    assert tokens.scope == "user.info.basic,video.list"
    assert (user.id, user.username) == ("oid-1", "acme_tt")


async def test_tiktok_error_envelope_raises(settings, fake, http):
    fake.add(
        "POST",
        tiktok_service.TOKEN_URL,
        json={"data": {"error_code": 10007, "description": "Authorization code expired"}, "message": "error"},
    )

    with pytest.raises(TokenExchangeError, match="Authorization code expired"):
        await platforms.exchange_code_for_token("tiktok", "code", REDIRECT, settings, client=http)


async def test_shopify_uses_shop_domain(settings, fake, http):
    fake.add("POST", "https://acme.myshopify.com/admin/oauth/access_token", json={"access_token": "shpat_1", "scope": "read_products"})
    fake.add(
        "GET",
        f"https://acme.myshopify.com/admin/api/{shopify_service.API_VERSION}/shop.json",
        json={"shop": {"id": 5501, "name": "Acme Store", "myshopify_domain": "acme.myshopify.com"}},
    )

    tokens = await platforms.exchange_code_for_token(
        "shopify", "code", REDIRECT, settings, client=http, shop="acme.myshopify.com"
    )
    user = await platforms.fetch_platform_user_info("shopify", tokens.access_token, settings, client=http)
    assets = await platforms.fetch_platform_assets("shopify", tokens.access_token, ["read_products"], settings, client=http)

    assert user.id == "5501"
    assert [a.to_dict() for a in assets] == [
        {"id": "5501", "name": "Acme Store", "type": "business_account"}
    ]
    assert fake.calls[-1].headers["X-Shopify-Access-Token"] == "shpat_1"


async def test_missing_credentials(settings, http):
    settings.meta_app_secret = ""

    with pytest.raises(OAuthNotConfiguredError, match="Meta OAuth credentials not configured"):
        await platforms.exchange_code_for_token("meta", "code", REDIRECT, settings, client=http)


async def test_unknown_platform(settings, http):
    with pytest.raises(UnsupportedPlatformError):
        await platforms.exchange_code_for_token("myspace", "code", REDIRECT, settings, client=http)


async def test_unexpected_discovery_failure_yields_error_asset(settings, http, monkeypatch):
    async def broken(*args, **kwargs):
        raise RuntimeError("bug in discovery")

    monkeypatch.setattr(google_service, "discover_assets", broken)

    assets = await platforms.fetch_platform_assets("google", "ya29", ["openid"], settings, client=http)

    assert [a.to_dict() for a in assets] == [
        {"id": "error", "name": "Unable to fetch assets", "type": "error"}
    ]


async def test_tiktok_advertisers(settings, fake, http):
    fake.add(
        "GET",
        tiktok_service.ADVERTISERS_URL,
        json={
            "code": 0,
            "message": "OK",
            "data": {"list": [{"advertiser_id": 7001, "advertiser_name": "Acme Ads"}]},
        },
    )

    assets = await platforms.fetch_platform_assets("tiktok", "act.123", ["advertiser.read"], settings, client=http)

    assert [(a.id, a.type) for a in assets] == [("7001", AssetType.AD_ACCOUNT)]
    request = fake.called(tiktok_service.ADVERTISERS_URL)[0]
    assert request.headers["Access-Token"] == "act.123"
    assert request.url.params["app_id"] == "tiktok-key"


def test_google_auth_url_expands_scopes(settings):
    url = platforms.build_authorization_url(
        "google", REDIRECT, ["analytics.readonly"], "signed-state", settings
    )

    assert url.startswith(google_service.AUTH_URL)
    assert "access_type=offline" in url
    assert "prompt=consent" in url
    assert "https%3A%2F%2Fwww.googleapis.com%2Fauth%2Fanalytics.readonly" in url
    assert "openid" in url


async def test_non_object_token_body_raises_exchange_error(settings, fake, http):
    fake.add("POST", f"{meta_service.GRAPH_BASE}/oauth/access_token", json=["access_token", "abc"])

    with pytest.raises(TokenExchangeError, match="not a JSON object"):
        await platforms.exchange_code_for_token("meta", "code", REDIRECT, settings, client=http)


async def test_malformed_token_fields_raise_exchange_error(settings, fake, http):
    fake.add(
        "POST",
        google_service.TOKEN_URL,
        json={"access_token": "ya29", "expires_in": "soon"},
    )

    with pytest.raises(TokenExchangeError, match="Malformed token response"):
        await platforms.exchange_code_for_token("google", "code", REDIRECT, settings, client=http)


@pytest.mark.parametrize(
    "platform, url, body",
    [
        ("meta", f"{meta_service.GRAPH_BASE}/me", "just a string"),
        ("tiktok", tiktok_service.USER_INFO_URL, {"data": {"user": ["oid-1"]}}),
        ("shopify", f"https://acme.myshopify.com/admin/api/{shopify_service.API_VERSION}/shop.json", {"shop": [5501]}),
    ],
)
async def test_unusable_identity_bodies_raise_identity_error(settings, fake, http, platform, url, body):
    fake.add("GET", url, json=body)

    with pytest.raises(IdentityFetchError):
        await platforms.fetch_platform_user_info(platform, "tok", settings, client=http)
