"""Platform OAuth connections for client and admin accounts."""

import enum
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from database import Base, JSONType, as_utc


class Platform(str, enum.Enum):
    """Supported platforms for OAuth connections."""
    META = "meta"
    GOOGLE = "google"
    TIKTOK = "tiktok"
    SHOPIFY = "shopify"


class ConnectionColumns:
    """Columns shared by client and admin platform connections.

    A connection is one subject's authorization against one provider,
    together with the assets discovered for it. Rows are never deleted,
    only deactivated.
    """

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4())
    )

    platform: Mapped[Platform] = mapped_column(
        Enum(Platform, values_callable=lambda enum: [e.value for e in enum]),
        nullable=False
    )

    # External account identifiers
    platform_user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    platform_username: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # OAuth tokens
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    token_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    scopes: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)

    # Serialized Asset dicts ({id, name, type})
    assets: Mapped[list[dict]] = mapped_column(JSONType, default=list, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def is_expired(self) -> bool:
        """Check if the token is expired."""
        if not self.token_expires_at:
            return False
        return datetime.now(timezone.utc) >= as_utc(self.token_expires_at)


class ClientPlatformConnection(ConnectionColumns, Base):
    """A client's authorization against one platform."""

    __tablename__ = "client_platform_connections"
    __table_args__ = (
        UniqueConstraint("client_id", "platform", name="uq_client_platform_connections_client_platform"),
    )

    client_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("clients.id"),
        nullable=False,
        index=True
    )

    def __repr__(self) -> str:
        return f"<ClientPlatformConnection {self.platform.value}: {self.platform_username}>"


class AdminPlatformConnection(ConnectionColumns, Base):
    """An admin's own authorization against one platform."""

    __tablename__ = "admin_platform_connections"
    __table_args__ = (
        UniqueConstraint("admin_id", "platform", name="uq_admin_platform_connections_admin_platform"),
    )

    admin_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("users.id"),
        nullable=False,
        index=True
    )

    def __repr__(self) -> str:
        return f"<AdminPlatformConnection {self.platform.value}: {self.platform_username}>"
