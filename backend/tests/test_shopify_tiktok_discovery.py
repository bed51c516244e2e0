import httpx
import pytest

from services import platforms, shopify_service, tiktok_service
from services.exceptions import OAuthError

SHOP_URL = f"https://acme.myshopify.com/admin/api/{shopify_service.API_VERSION}/shop.json"
BASIC = [{"id": "placeholder", "name": "Basic Access (no advanced assets)", "type": "basic"}]


@pytest.mark.parametrize(
    "raw",
    ["acme", "ACME", "https://acme.myshopify.com/", "acme.myshopify.com/admin", " acme-store "],
)
def test_normalize_shop_accepts_myshopify_forms(raw):
    assert shopify_service.normalize_shop(raw) in ("acme", "acme-store")


@pytest.mark.parametrize(
    "raw",
    ["evil.test#", "evil.test", "acme.myshopify.com.evil.test", "user@evil.test", "-acme", "acme?x=1"],
)
def test_normalize_shop_rejects_other_hosts(raw):
    with pytest.raises(OAuthError, match="Invalid Shopify shop domain"):
        shopify_service.normalize_shop(raw)


async def test_exchange_never_contacts_a_foreign_host(settings, fake, http):
    with pytest.raises(OAuthError):
        await shopify_service.exchange_code_for_tokens(
            "code", "http://app.test/cb", settings, client=http, shop="evil.test#"
        )

    assert fake.calls == []


def test_auth_url_rejects_foreign_shop(settings):
    with pytest.raises(OAuthError):
        shopify_service.build_auth_url(settings, "http://app.test/cb", ["read_products"], "state", shop="evil.test#")


async def test_shopify_store_is_a_business_account(settings, fake, http):
    fake.add(
        "GET",
        SHOP_URL,
        json={"shop": {"id": 5501, "name": "Acme Store", "myshopify_domain": "acme.myshopify.com"}},
    )

    assets = await shopify_service.discover_assets("shpat_1", ["store_access"], settings, client=http, shop="acme")

    assert [a.to_dict() for a in assets] == [
        {"id": "5501", "name": "Acme Store", "type": "business_account"}
    ]
    assert fake.called(SHOP_URL)[0].headers["X-Shopify-Access-Token"] == "shpat_1"


async def test_shopify_failures_yield_single_basic_asset(settings, fake, http):
    fake.add("GET", SHOP_URL, error=httpx.ConnectError("connection refused"))

    assets = await shopify_service.discover_assets("shpat_1", ["read_products"], settings, client=http)

    assert [a.to_dict() for a in assets] == BASIC


async def test_shopify_without_store_scope_skips_lookup(settings, fake, http):
    assets = await shopify_service.discover_assets("shpat_1", ["write_script_tags"], settings, client=http)

    assert [a.to_dict() for a in assets] == BASIC
    assert fake.calls == []


async def test_tiktok_error_code_yields_single_basic_asset(settings, fake, http):
    fake.add(
        "GET",
        tiktok_service.ADVERTISERS_URL,
        json={"code": 40001, "message": "Access token is invalid", "data": {}},
    )

    assets = await platforms.fetch_platform_assets("tiktok", "act.123", ["advertiser.read"], settings, client=http)

    assert [a.to_dict() for a in assets] == BASIC


async def test_tiktok_http_failure_yields_single_basic_asset(settings, fake, http):
    fake.add("GET", tiktok_service.ADVERTISERS_URL, status=500, json={"message": "boom"})

    assets = await tiktok_service.discover_assets("act.123", ["ads.read", "user.info.basic"], settings, client=http)

    assert [a.to_dict() for a in assets] == BASIC
