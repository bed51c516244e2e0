from datetime import datetime, timedelta, timezone

import pytest

from models import LinkStatus
from services import link_service, scopes
from services.exceptions import InvalidStateError
from services.oauth_state import OAuthState, decode_oauth_state, encode_oauth_state


def test_generate_onboarding_link():
    link = link_service.generate_onboarding_link("https://portal.test/", expires_in_days=7)

    assert link.url == f"https://portal.test/onboarding/{link.token}"
    assert len(link.token) == 36
    remaining = link.expires_at - datetime.now(timezone.utc)
    assert timedelta(days=6, hours=23) < remaining <= timedelta(days=7)


def test_link_validity_and_short_id():
    now = datetime.now(timezone.utc)

    assert link_service.is_link_valid(now + timedelta(minutes=1))
    assert not link_service.is_link_valid(now - timedelta(minutes=1))
    # Naive datetimes (as returned by SQLite) are read as UTC
    assert link_service.is_link_valid((now + timedelta(hours=1)).replace(tzinfo=None))
    assert link_service.short_link_id("a1b2c3d4-e5f6-0000-0000-000000000000") == "A1B2C3D4"


async def test_create_link_validates_platforms_and_scopes(db, admin, settings):
    with pytest.raises(ValueError, match="Unsupported platform"):
        await link_service.create_onboarding_link(db, admin.id, ["myspace"], {}, settings)

    with pytest.raises(ValueError, match="Invalid google scopes: youtube.upload"):
        await link_service.create_onboarding_link(
            db, admin.id, ["google"], {"google": ["analytics.readonly", "youtube.upload"]}, settings
        )


async def test_create_and_list_links(db, admin, settings):
    link = await link_service.create_onboarding_link(
        db,
        admin.id,
        ["google", "meta"],
        {"google": ["analytics.readonly"], "meta": ["ads_read", "pages_show_list"]},
        settings,
        link_name="Acme onboarding",
    )

    assert link.status == LinkStatus.PENDING
    assert link.scopes_for("meta") == ["ads_read", "pages_show_list"]
    assert link.scopes_for("tiktok") == []
    assert link_service.link_url(link, settings) == f"http://app.test/onboarding/{link.token}"
    assert [item.id for item in await link_service.list_links(db, admin.id)] == [link.id]
    assert (await link_service.get_link_by_token(db, link.token)).id == link.id


def test_validate_scopes_accepts_short_google_names():
    assert scopes.validate_scopes("google", ["analytics.readonly", "openid email profile"]) == []
    assert scopes.validate_scopes("meta", ["ads_management", "user_posts"]) == ["user_posts"]
    assert scopes.validate_scopes("unknown", ["x"]) == ["x"]


def test_scope_descriptions():
    assert scopes.get_scope_description("google", "analytics.readonly").startswith("Google Analytics")
    assert scopes.get_scope_description("shopify", "store_access") == "Access to your Shopify store data"
    assert scopes.get_scope_description("meta", "not_a_scope") == "not_a_scope"


def test_expand_google_scopes():
    assert scopes.expand_google_scopes(["analytics.readonly", "openid email profile"]) == [
        "openid",
        "email",
        "profile",
        "https://www.googleapis.com/auth/analytics.readonly",
    ]


def test_resolve_granted_scopes():
    assert scopes.resolve_granted_scopes("google", "openid email", ["analytics.readonly"]) == ["openid", "email"]
    assert scopes.resolve_granted_scopes("shopify", "read_products,read_orders", None) == [
        "read_products",
        "read_orders",
    ]
    # Meta omits scope from the token response
    assert scopes.resolve_granted_scopes("meta", None, ["ads_read"]) == ["ads_read"]
    assert scopes.resolve_granted_scopes("meta", None, []) == [
        "pages_read_engagement",
        "pages_manage_posts",
        "ads_read",
        "pages_show_list",
    ]


def test_oauth_state_round_trip(settings):
    raw = encode_oauth_state(
        OAuthState(flow="client", platform="google", token="tok-1", scopes=["analytics.readonly"]),
        settings,
    )

    state = decode_oauth_state(raw, "google", settings)

    assert state.flow == "client"
    assert state.token == "tok-1"
    assert state.scopes == ["analytics.readonly"]


def test_oauth_state_rejects_tampering_and_mismatch(settings):
    raw = encode_oauth_state(OAuthState(flow="admin", platform="meta", admin_id="a1"), settings)

    with pytest.raises(InvalidStateError):
        decode_oauth_state(raw + "x", "meta", settings)
    with pytest.raises(InvalidStateError, match="different platform"):
        decode_oauth_state(raw, "google", settings)
    with pytest.raises(InvalidStateError, match="Missing state"):
        decode_oauth_state(None, "meta", settings)


def test_oauth_state_expires(settings):
    settings.oauth_state_ttl_minutes = -1
    raw = encode_oauth_state(OAuthState(flow="client", platform="meta", token="t"), settings)

    with pytest.raises(InvalidStateError, match="expired"):
        decode_oauth_state(raw, "meta", settings)
