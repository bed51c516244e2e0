"""Onboarding link and request models."""

import enum
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from database import Base, JSONType, as_utc


class LinkStatus(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    EXPIRED = "expired"


class RequestStatus(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    REJECTED = "rejected"


class OnboardingLink(Base):
    """Expiring invitation link requesting scopes on one or more platforms."""

    __tablename__ = "onboarding_links"

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4())
    )
    admin_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("users.id"),
        nullable=False,
        index=True
    )
    client_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("clients.id"),
        nullable=True
    )
    link_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    token: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)

    # ["meta", "google"] / {"google": ["analytics.readonly"]}
    platforms: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)
    requested_permissions: Mapped[dict[str, list[str]]] = mapped_column(
        JSONType, default=dict, nullable=False
    )

    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[LinkStatus] = mapped_column(
        Enum(LinkStatus, values_callable=lambda enum: [e.value for e in enum]),
        default=LinkStatus.PENDING,
        nullable=False
    )
    # Links stay usable after first use until they expire
    is_used: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

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

    @property
    def is_expired(self) -> bool:
        """Check if the link has expired."""
        return datetime.now(timezone.utc) >= as_utc(self.expires_at)

    def scopes_for(self, platform: str) -> list[str]:
        """Scopes this link requests on a platform."""
        return list((self.requested_permissions or {}).get(platform) or [])

    def __repr__(self) -> str:
        return f"<OnboardingLink {self.token[:8]} ({self.status.value})>"


class OnboardingRequest(Base):
    """A client's progress through one onboarding link.

    platform_connections holds the OAuth result per platform until the
    client submits, e.g.::

        {"google": {"access_token": ..., "scopes": [...],
                    "platform_user_id": ..., "assets": [...]}}
    """

    __tablename__ = "onboarding_requests"

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4())
    )
    link_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("onboarding_links.id"),
        nullable=False,
        index=True
    )
    client_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("clients.id"),
        nullable=True
    )
    client_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    client_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    company_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    granted_permissions: Mapped[dict[str, list[str]]] = mapped_column(
        JSONType, default=dict, nullable=False
    )
    platform_connections: Mapped[dict[str, dict]] = mapped_column(
        JSONType, default=dict, nullable=False
    )

    status: Mapped[RequestStatus] = mapped_column(
        Enum(RequestStatus, values_callable=lambda enum: [e.value for e in enum]),
        default=RequestStatus.PENDING,
        nullable=False
    )
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

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

    def __repr__(self) -> str:
        return f"<OnboardingRequest {self.id} ({self.status.value})>"
