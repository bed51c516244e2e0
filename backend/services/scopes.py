"""OAuth scope catalog per platform, with human-readable descriptions."""

from services.oauth_common import parse_scope_string

GOOGLE_SCOPE_PREFIX = "https://www.googleapis.com/auth/"
GOOGLE_IDENTITY_SCOPES = ["openid", "email", "profile"]

SCOPE_CATALOG: dict[str, dict[str, str]] = {
    "google": {
        "openid email profile": "Basic profile access (name, email, profile picture)",
        f"{GOOGLE_SCOPE_PREFIX}adwords": "Google Ads Account - Manage ad campaigns and billing",
        f"{GOOGLE_SCOPE_PREFIX}analytics.readonly": "Google Analytics Account - Read website and app analytics data",
        f"{GOOGLE_SCOPE_PREFIX}business.manage": "Google Business Profile Location - Manage business listings and reviews",
        f"{GOOGLE_SCOPE_PREFIX}tagmanager.readonly": "Google Tag Manager - Read tag configuration and data",
        f"{GOOGLE_SCOPE_PREFIX}webmasters.readonly": "Google Search Console - Read search performance and sitemap data",
        f"{GOOGLE_SCOPE_PREFIX}content": "Google Merchant Center - Manage product listings and shopping campaigns",
    },
    "meta": {
        "pages_show_list": "View list of your Facebook Pages",
        "pages_read_engagement": "Read Page content and engagement data",
        "ads_management": "Ad Account - Manage Facebook and Instagram ad campaigns",
        "ads_read": "Ad Account - Read ad campaign performance",
        "pages_manage_posts": "Pages - Create and manage posts on your Pages",
        "catalog_management": "Catalogs - Manage product catalogs for shopping ads",
        "business_management": "Datasets - Access business data and insights",
        "instagram_basic": "Instagram Accounts - Access Instagram account information",
    },
    "tiktok": {
        "user.info.basic": "Access basic user information",
        "video.publish": "Publish videos on your behalf",
        "video.list": "View your video content",
        "advertiser.read": "Ad Accounts - Read TikTok advertiser accounts",
    },
    "shopify": {
        "store_access": "Access to your Shopify store data",
        "read_products": "Read products, variants and collections",
        "read_orders": "Read orders and transactions",
    },
}

# Used when the token response omits the granted scopes and none were requested
DEFAULT_SCOPES: dict[str, list[str]] = {
    "meta": ["pages_read_engagement", "pages_manage_posts", "ads_read", "pages_show_list"],
    "google": list(GOOGLE_IDENTITY_SCOPES),
    "tiktok": ["user.info.basic", "video.list"],
    "shopify": ["store_access"],
}


def get_scopes_for_platform(platform: str) -> list[str]:
    return list(SCOPE_CATALOG.get(platform, {}))


def get_scope_description(platform: str, scope: str) -> str:
    catalog = SCOPE_CATALOG.get(platform, {})
    if scope in catalog:
        return catalog[scope]
    for key, description in catalog.items():
        if key.endswith(f"/{scope}"):
            return description
    return scope


def validate_scopes(platform: str, scopes: list[str]) -> list[str]:
    """Return the scopes that are not in the platform's catalog.

    Short Google names ("analytics.readonly") match their full URL.
    """
    catalog = SCOPE_CATALOG.get(platform)
    if catalog is None:
        return list(scopes)
    return [
        scope
        for scope in scopes
        if scope not in catalog and not any(key.endswith(f"/{scope}") for key in catalog)
    ]


def expand_google_scopes(scopes: list[str]) -> list[str]:
    """Expand short Google scope names into full URLs, identity scopes first."""
    expanded = list(GOOGLE_IDENTITY_SCOPES)
    for entry in scopes:
        for scope in entry.split():
            if scope in GOOGLE_IDENTITY_SCOPES or scope.startswith("https://"):
                full = scope
            else:
                full = f"{GOOGLE_SCOPE_PREFIX}{scope}"
            if full not in expanded:
                expanded.append(full)
    return expanded


def resolve_granted_scopes(platform: str, token_scope: str | None, requested: list[str] | None) -> list[str]:
    """Granted scopes from the token response, else the requested ones, else defaults."""
    granted = parse_scope_string(token_scope)
    if granted:
        return granted
    if requested:
        return list(requested)
    return list(DEFAULT_SCOPES.get(platform, []))
