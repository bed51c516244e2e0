"""Normalized platform assets and the shared probe helpers used by discovery.

Every provider's discovery pass is a sequence of scope-gated probes. A probe
is one HTTP call whose JSON body is validated against a provider record model
and mapped into Asset objects. Probes never raise: a bad status, a network
error or an unexpected body shape is logged and yields no assets.
"""

import enum
import json
import logging
from collections.abc import Callable, Iterable
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)


class AssetType(str, enum.Enum):
    """Fixed vocabulary of asset kinds a connection can expose."""
    AD_ACCOUNT = "ad_account"
    PAGE = "page"
    CATALOG = "catalog"
    BUSINESS_DATASET = "business_dataset"
    INSTAGRAM_ACCOUNT = "instagram_account"
    ANALYTICS_PROPERTY = "analytics_property"
    TAGMANAGER_ACCOUNT = "tagmanager_account"
    SEARCHCONSOLE_SITE = "searchconsole_site"
    BUSINESS_ACCOUNT = "business_account"
    MERCHANT_ACCOUNT = "merchant_account"
    BASIC = "basic"
    ERROR = "error"


TYPE_LABELS: dict[AssetType, str] = {
    AssetType.AD_ACCOUNT: "Ad Account",
    AssetType.PAGE: "Page",
    AssetType.CATALOG: "Product Catalog",
    AssetType.BUSINESS_DATASET: "Business",
    AssetType.INSTAGRAM_ACCOUNT: "Instagram Account",
    AssetType.ANALYTICS_PROPERTY: "Analytics Property",
    AssetType.TAGMANAGER_ACCOUNT: "Tag Manager Account",
    AssetType.SEARCHCONSOLE_SITE: "Search Console Site",
    AssetType.BUSINESS_ACCOUNT: "Business Profile",
    AssetType.MERCHANT_ACCOUNT: "Merchant Center Account",
    AssetType.BASIC: "Basic Access",
    AssetType.ERROR: "Error",
}


class Asset(BaseModel):
    """Handle to a third-party resource a connection can access."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    type: AssetType

    @classmethod
    def build(cls, asset_id: str, name: str | None, asset_type: AssetType) -> "Asset":
        """Create an asset, falling back to "<TypeLabel> (<id>)" for the name."""
        return cls(
            id=asset_id,
            name=name or f"{TYPE_LABELS[asset_type]} ({asset_id})",
            type=asset_type,
        )

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "type": self.type.value}


class ProviderRecord(BaseModel):
    """Base for raw provider response records.

    Unknown fields are ignored and numeric ids are accepted as strings.
    """

    model_config = ConfigDict(
        extra="ignore",
        coerce_numbers_to_str=True,
        populate_by_name=True,
    )


def basic_asset() -> Asset:
    return Asset(id="placeholder", name="Basic Access (no advanced assets)", type=AssetType.BASIC)


def error_asset() -> Asset:
    return Asset(id="error", name="Unable to fetch assets", type=AssetType.ERROR)


def strip_prefix(resource_name: str, prefix: str) -> str:
    """'properties/123' -> '123'."""
    if resource_name.startswith(prefix):
        return resource_name[len(prefix):]
    return resource_name


def has_scope(scopes: Iterable[str], *markers: str) -> bool:
    """True if any granted scope contains any of the markers."""
    return any(marker in scope for scope in scopes for marker in markers)


def count_type(assets: Iterable[Asset], asset_type: AssetType) -> int:
    return sum(1 for asset in assets if asset.type == asset_type)


def ensure_assets(assets: list[Asset], provider: str, log: logging.Logger = logger) -> list[Asset]:
    """Return assets unchanged, or a single basic placeholder when empty."""
    if assets:
        return assets
    log.info(f"[{provider}] No assets found, adding placeholder")
    return [basic_asset()]


def serialize_assets(assets: Iterable[Asset | dict]) -> str:
    """Canonical JSON form used to compare asset lists."""
    items = [a.to_dict() if isinstance(a, Asset) else a for a in assets]
    return json.dumps(items, sort_keys=True)


def assets_equal(stored: Iterable[Asset | dict] | None, discovered: Iterable[Asset | dict]) -> bool:
    return serialize_assets(stored or []) == serialize_assets(discovered)


def assets_from_dicts(items: Iterable[dict] | None) -> list[Asset]:
    """Rebuild Asset objects from stored JSON, skipping malformed entries."""
    assets = []
    for item in items or []:
        try:
            assets.append(Asset.model_validate(item))
        except ValueError:
            logger.warning(f"Skipping malformed stored asset: {item!r}")
    return assets


async def probe(
    client: httpx.AsyncClient,
    label: str,
    url: str,
    parse: Callable[[Any], list[Asset]],
    *,
    method: str = "GET",
    params: dict | None = None,
    headers: dict | None = None,
    log: logging.Logger = logger,
) -> list[Asset]:
    """Call one asset-listing endpoint and map its body into assets.

    Any failure is logged and yields an empty list.
    """
    log.info(f"{label}: fetching {url}")
    try:
        response = await client.request(method, url, params=params, headers=headers)
    except httpx.HTTPError as e:
        log.warning(f"{label}: request failed: {e!r}")
        return []

    if not response.is_success:
        log.warning(f"{label}: fetch failed: {response.status_code} - {response.text[:500]}")
        return []

    try:
        assets = parse(response.json())
    except (ValueError, TypeError, KeyError, AttributeError) as e:
        # ValueError covers both JSON decoding and pydantic validation errors
        log.warning(f"{label}: unexpected response body: {e}")
        return []

    log.info(f"{label}: found {len(assets)} asset(s)")
    return assets

