"""Persistence of platform connections for clients and admins.

One row per (subject, platform). Upserts look the row up by subject and
platform, never by token value, and skip the write when nothing changed.
"""

import logging
from datetime import datetime
from typing import TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database import as_utc
from models.platform_connection import (
    AdminPlatformConnection,
    ClientPlatformConnection,
    ConnectionColumns,
    Platform,
)
from services.assets import Asset, assets_equal, serialize_assets
from services.oauth_common import PlatformUserInfo

logger = logging.getLogger(__name__)

ConnectionT = TypeVar("ConnectionT", ClientPlatformConnection, AdminPlatformConnection)


def _asset_dicts(assets: list[Asset | dict]) -> list[dict]:
    return [a.to_dict() if isinstance(a, Asset) else dict(a) for a in assets]


def _same_instant(a: datetime | None, b: datetime | None) -> bool:
    if a is None or b is None:
        return a is b
    return as_utc(a) == as_utc(b)


def _apply(
    connection: ConnectionColumns,
    *,
    access_token: str,
    refresh_token: str | None,
    token_expires_at: datetime | None,
    scopes: list[str],
    user_info: PlatformUserInfo,
    assets: list[Asset | dict],
) -> bool:
    """Copy new values onto the connection. Returns False when nothing changed."""
    values = {
        "access_token": access_token,
        "refresh_token": refresh_token,
        "scopes": list(scopes),
        "platform_user_id": user_info.id,
        "platform_username": user_info.display_name,
        "is_active": True,
    }
    changed = any(getattr(connection, field) != value for field, value in values.items())
    changed = changed or not _same_instant(connection.token_expires_at, token_expires_at)
    changed = changed or not assets_equal(connection.assets, assets)
    if not changed:
        return False

    for field, value in values.items():
        setattr(connection, field, value)
    connection.token_expires_at = token_expires_at
    connection.assets = _asset_dicts(assets)
    return True


async def _upsert(
    db: AsyncSession,
    model: type[ConnectionT],
    subject_column: str,
    subject_id: str,
    platform: Platform,
    **fields,
) -> ConnectionT:
    result = await db.execute(
        select(model).where(
            getattr(model, subject_column) == subject_id,
            model.platform == platform,
        )
    )
    connection = result.scalar_one_or_none()

    if connection is None:
        connection = model(platform=platform, scopes=[], assets=[], **{subject_column: subject_id})
        _apply(connection, **fields)
        db.add(connection)
        logger.info(f"Creating {platform.value} connection for {subject_column}={subject_id}")
    elif _apply(connection, **fields):
        logger.info(f"Updating {platform.value} connection for {subject_column}={subject_id}")
    else:
        logger.info(f"{platform.value} connection for {subject_column}={subject_id} unchanged")
        return connection

    await db.commit()
    await db.refresh(connection)
    return connection


async def upsert_client_connection(
    db: AsyncSession,
    client_id: str,
    platform: Platform,
    *,
    access_token: str,
    refresh_token: str | None,
    token_expires_at: datetime | None,
    scopes: list[str],
    user_info: PlatformUserInfo,
    assets: list[Asset | dict],
) -> ClientPlatformConnection:
    """Insert or update the client's connection for a platform."""
    return await _upsert(
        db,
        ClientPlatformConnection,
        "client_id",
        client_id,
        platform,
        access_token=access_token,
        refresh_token=refresh_token,
        token_expires_at=token_expires_at,
        scopes=scopes,
        user_info=user_info,
        assets=assets,
    )


async def upsert_admin_connection(
    db: AsyncSession,
    admin_id: str,
    platform: Platform,
    *,
    access_token: str,
    refresh_token: str | None,
    token_expires_at: datetime | None,
    scopes: list[str],
    user_info: PlatformUserInfo,
    assets: list[Asset | dict],
) -> AdminPlatformConnection:
    """Insert or update the admin's own connection for a platform."""
    return await _upsert(
        db,
        AdminPlatformConnection,
        "admin_id",
        admin_id,
        platform,
        access_token=access_token,
        refresh_token=refresh_token,
        token_expires_at=token_expires_at,
        scopes=scopes,
        user_info=user_info,
        assets=assets,
    )


async def refresh_connection_assets(
    db: AsyncSession,
    connection: ConnectionColumns,
    assets: list[Asset | dict],
) -> bool:
    """Store re-discovered assets if they differ. Returns True when written."""
    if serialize_assets(connection.assets or []) == serialize_assets(assets):
        return False
    connection.assets = _asset_dicts(assets)
    await db.commit()
    await db.refresh(connection)
    logger.info(f"Refreshed {connection.platform.value} assets ({len(assets)} asset(s))")
    return True


async def deactivate_connection(db: AsyncSession, connection: ConnectionColumns) -> None:
    connection.is_active = False
    await db.commit()


async def get_active_client_connection(
    db: AsyncSession, client_id: str, platform: Platform
) -> ClientPlatformConnection | None:
    result = await db.execute(
        select(ClientPlatformConnection).where(
            ClientPlatformConnection.client_id == client_id,
            ClientPlatformConnection.platform == platform,
            ClientPlatformConnection.is_active.is_(True),
        )
    )
    return result.scalar_one_or_none()


async def get_active_admin_connection(
    db: AsyncSession, admin_id: str, platform: Platform
) -> AdminPlatformConnection | None:
    result = await db.execute(
        select(AdminPlatformConnection).where(
            AdminPlatformConnection.admin_id == admin_id,
            AdminPlatformConnection.platform == platform,
            AdminPlatformConnection.is_active.is_(True),
        )
    )
    return result.scalar_one_or_none()


async def list_client_connections(db: AsyncSession, client_id: str) -> list[ClientPlatformConnection]:
    result = await db.execute(
        select(ClientPlatformConnection)
        .where(
            ClientPlatformConnection.client_id == client_id,
            ClientPlatformConnection.is_active.is_(True),
        )
        .order_by(ClientPlatformConnection.created_at)
    )
    return list(result.scalars().all())


async def list_admin_connections(db: AsyncSession, admin_id: str) -> list[AdminPlatformConnection]:
    result = await db.execute(
        select(AdminPlatformConnection)
        .where(
            AdminPlatformConnection.admin_id == admin_id,
            AdminPlatformConnection.is_active.is_(True),
        )
        .order_by(AdminPlatformConnection.created_at)
    )
    return list(result.scalars().all())
