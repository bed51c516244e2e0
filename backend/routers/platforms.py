"""Platform assets and client connection endpoints."""

import logging
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from middleware.auth import require_admin
from models.client import Client
from models.platform_connection import Platform
from models.user import User
from routers.oauth import AssetResponse, ConnectionsListResponse, connection_response
from services.connection_service import list_client_connections
from services.onboarding_service import find_assets

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["platforms"])


class AssetsResponse(BaseModel):
    platform: str
    assets: list[AssetResponse]


def _check_uuid(value: str, field: str) -> str:
    try:
        uuid.UUID(value)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid {field}")
    return value


@router.get("/platforms/assets", response_model=AssetsResponse)
async def get_platform_assets(
    platform: Platform,
    client_id: Annotated[str, Query(alias="clientId")],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Stored assets for a platform, by onboarding request id or client id."""
    assets = await find_assets(db, platform, _check_uuid(client_id, "clientId"))
    if assets is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No {platform.value} connection found",
        )
    return AssetsResponse(
        platform=platform.value,
        assets=[AssetResponse(**a.to_dict()) for a in assets],
    )


@router.get("/clients/{client_id}/connections", response_model=ConnectionsListResponse)
async def get_client_connections(
    client_id: str,
    current_user: Annotated[User, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Active platform connections of one of the admin's clients."""
    client = await db.get(Client, _check_uuid(client_id, "client id"))
    if client is None or client.admin_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Client not found")

    connections = await list_client_connections(db, client.id)
    return ConnectionsListResponse(connections=[connection_response(c) for c in connections])
