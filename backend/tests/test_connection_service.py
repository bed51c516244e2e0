from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from models import Client, ClientPlatformConnection, Platform
from services import connection_service
from services.assets import Asset, AssetType
from services.oauth_common import PlatformUserInfo

PROPERTY = Asset(id="123456", name="Main Site", type=AssetType.ANALYTICS_PROPERTY)


@pytest.fixture
async def client(db, admin):
    record = Client(admin_id=admin.id, email="owner@acme.com", company_name="Acme")
    db.add(record)
    await db.commit()
    await db.refresh(record)
    return record


def _payload(**overrides):
    payload = {
        "access_token": "ya29",
        "refresh_token": "1//refresh",
        "token_expires_at": datetime(2030, 1, 1, tzinfo=timezone.utc),
        "scopes": ["https://www.googleapis.com/auth/analytics.readonly"],
        "user_info": PlatformUserInfo(id="google-sub-1", name="Owner"),
        "assets": [PROPERTY],
    }
    payload.update(overrides)
    return payload


async def _count(db):
    return await db.scalar(select(func.count()).select_from(ClientPlatformConnection))


async def test_identical_upsert_keeps_one_row_and_updated_at(db, client):
    first = await connection_service.upsert_client_connection(db, client.id, Platform.GOOGLE, **_payload())
    updated_at = first.updated_at

    second = await connection_service.upsert_client_connection(db, client.id, Platform.GOOGLE, **_payload())

    assert second.id == first.id
    assert second.updated_at == updated_at
    assert await _count(db) == 1
    assert second.assets == [{"id": "123456", "name": "Main Site", "type": "analytics_property"}]
    assert second.platform_username == "Owner"


async def test_upsert_updates_existing_row(db, client):
    first = await connection_service.upsert_client_connection(db, client.id, Platform.GOOGLE, **_payload())

    second = await connection_service.upsert_client_connection(
        db,
        client.id,
        Platform.GOOGLE,
        **_payload(access_token="ya29-new", token_expires_at=datetime.now(timezone.utc) + timedelta(hours=1)),
    )

    assert second.id == first.id
    assert second.access_token == "ya29-new"
    assert await _count(db) == 1


async def test_platforms_are_separate_rows(db, client):
    await connection_service.upsert_client_connection(db, client.id, Platform.GOOGLE, **_payload())
    await connection_service.upsert_client_connection(
        db, client.id, Platform.META, **_payload(scopes=["ads_read"], assets=[])
    )

    connections = await connection_service.list_client_connections(db, client.id)

    assert sorted(c.platform.value for c in connections) == ["google", "meta"]


async def test_deactivated_connection_is_reactivated_by_upsert(db, client):
    connection = await connection_service.upsert_client_connection(db, client.id, Platform.GOOGLE, **_payload())
    await connection_service.deactivate_connection(db, connection)

    assert await connection_service.get_active_client_connection(db, client.id, Platform.GOOGLE) is None

    again = await connection_service.upsert_client_connection(db, client.id, Platform.GOOGLE, **_payload())

    assert again.id == connection.id
    assert again.is_active is True
    assert await _count(db) == 1


async def test_refresh_assets_skips_identical_lists(db, client):
    connection = await connection_service.upsert_client_connection(db, client.id, Platform.GOOGLE, **_payload())

    assert await connection_service.refresh_connection_assets(db, connection, [PROPERTY]) is False

    extra = Asset(id="789", name="Blog", type=AssetType.ANALYTICS_PROPERTY)
    assert await connection_service.refresh_connection_assets(db, connection, [PROPERTY, extra]) is True
    assert [a["id"] for a in connection.assets] == ["123456", "789"]


async def test_admin_connections(db, admin):
    await connection_service.upsert_admin_connection(
        db, admin.id, Platform.META, **_payload(scopes=["pages_show_list"], assets=[])
    )

    connections = await connection_service.list_admin_connections(db, admin.id)

    assert [c.platform for c in connections] == [Platform.META]
    assert connections[0].platform_user_id == "google-sub-1"
