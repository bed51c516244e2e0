import httpx

from services import meta_service
from services.assets import AssetType

GRAPH = meta_service.GRAPH_BASE


def _types(assets):
    return [a.type for a in assets]


async def test_pages_skipped_without_pages_scope(settings, fake, http):
    fake.add("GET", f"{GRAPH}/me/accounts", json={"data": [{"id": "p1", "name": "Page"}]})

    assets = await meta_service.discover_assets("tok", ["ads_read"], settings, client=http)

    assert fake.called(f"{GRAPH}/me/accounts") == []
    assert AssetType.PAGE not in _types(assets)


async def test_only_first_ad_account_is_kept(settings, fake, http):
    fake.add(
        "GET",
        f"{GRAPH}/me/adaccounts",
        json={
            "data": [
                {"id": "act_1", "name": "Primary"},
                {"id": "act_2", "name": "Second"},
                {"id": "act_3", "name": "Third"},
            ]
        },
    )

    assets = await meta_service.discover_assets("tok", ["ads_management"], settings, client=http)

    assert [a.to_dict() for a in assets] == [
        {"id": "act_1", "name": "Primary", "type": "ad_account"}
    ]


async def test_pages_are_listed_with_token_as_query_param(settings, fake, http):
    fake.add(
        "GET",
        f"{GRAPH}/me/accounts",
        json={"data": [{"id": 101, "name": "Shop Page"}, {"id": "102"}]},
        params={"fields": "id,name"},
    )

    assets = await meta_service.discover_assets("tok", ["pages_show_list"], settings, client=http)

    assert [a.to_dict() for a in assets] == [
        {"id": "101", "name": "Shop Page", "type": "page"},
        {"id": "102", "name": "Page (102)", "type": "page"},
    ]
    assert fake.called(f"{GRAPH}/me/accounts")[0].url.params["access_token"] == "tok"


async def test_catalog_placeholder_when_no_catalogs_found(settings, fake, http):
    fake.add("GET", f"{GRAPH}/me", json={"id": "u1"})
    fake.add("GET", f"{GRAPH}/me/businesses", json={"data": []})

    assets = await meta_service.discover_assets("tok", ["catalog_management"], settings, client=http)

    assert [a.to_dict() for a in assets] == [
        {"id": "catalog_placeholder", "name": "Product Catalog (Placeholder)", "type": "catalog"}
    ]
    # User catalogs were tried before business catalogs
    assert [r.url.path for r in fake.calls] == ["/v18.0/me", "/v18.0/me/businesses"]


async def test_business_catalogs_used_when_user_has_none(settings, fake, http):
    fake.add("GET", f"{GRAPH}/me", json={"id": "u1", "owned_product_catalogs": {"data": []}})
    fake.add(
        "GET",
        f"{GRAPH}/me/businesses",
        json={
            "data": [
                {"id": "b1", "owned_product_catalogs": {"data": [{"id": "c1", "name": "Spring"}]}},
                {"id": "b2"},
            ]
        },
    )

    assets = await meta_service.discover_assets("tok", ["catalog_management"], settings, client=http)

    assert [a.to_dict() for a in assets] == [{"id": "c1", "name": "Spring", "type": "catalog"}]


async def test_user_catalogs_skip_business_lookup(settings, fake, http):
    fake.add(
        "GET",
        f"{GRAPH}/me",
        json={"owned_product_catalogs": {"data": [{"id": "c9", "name": "Main"}]}},
    )

    assets = await meta_service.discover_assets("tok", ["catalog_management"], settings, client=http)

    assert [a.id for a in assets] == ["c9"]
    assert fake.called(f"{GRAPH}/me/businesses") == []


async def test_instagram_accounts_from_pages(settings, fake, http):
    fake.add(
        "GET",
        f"{GRAPH}/me/accounts",
        json={
            "data": [
                {"id": "p1", "instagram_business_account": {"id": "ig1", "username": "acme.store"}},
                {"id": "p2"},
            ]
        },
        params={"fields": "instagram_business_account{id,name,username}"},
    )

    assets = await meta_service.discover_assets("tok", ["instagram_basic"], settings, client=http)

    assert [a.to_dict() for a in assets] == [
        {"id": "ig1", "name": "acme.store", "type": "instagram_account"}
    ]


async def test_all_failures_yield_single_basic_asset(settings, fake, http):
    fake.add("GET", f"{GRAPH}/me/adaccounts", status=500, json={"error": "boom"})
    fake.add("GET", f"{GRAPH}/me/accounts", error=httpx.ConnectError("connection refused"))
    fake.add("GET", f"{GRAPH}/me/businesses", json={"data": "not-a-list"})

    assets = await meta_service.discover_assets(
        "tok",
        ["ads_read", "pages_show_list", "business_management", "instagram_basic"],
        settings,
        client=http,
    )

    assert [a.to_dict() for a in assets] == [
        {"id": "placeholder", "name": "Basic Access (no advanced assets)", "type": "basic"}
    ]


async def test_business_datasets(settings, fake, http):
    fake.add("GET", f"{GRAPH}/me/businesses", json={"data": [{"id": "900", "name": "Acme Biz"}]})

    assets = await meta_service.discover_assets("tok", ["business_management"], settings, client=http)

    assert [a.to_dict() for a in assets] == [
        {"id": "900", "name": "Acme Biz", "type": "business_dataset"}
    ]
