"""Profile ORM models: Profile, UserSlackIntegration."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from timeloo.common.constants import UserRole
from timeloo.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Profile(Base):
    __tablename__ = "profiles"

    # External auth-provider user id (e.g. "user_2xwy…")
    id: Mapped[str] = mapped_column(sa.String(64), primary_key=True)
    name: Mapped[Optional[str]] = mapped_column(sa.String(200))
    email: Mapped[str] = mapped_column(sa.String(255), unique=True, nullable=False)
    role: Mapped[UserRole] = mapped_column(
        sa.Enum(UserRole, name="user_role", create_type=False),
        default=UserRole.user,
        server_default="user",
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(
        sa.Boolean, default=True, server_default=sa.text("TRUE")
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, server_default=sa.func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, server_default=sa.func.now()
    )

    # Relationships
    slack_integration: Mapped[Optional[UserSlackIntegration]] = relationship(
        back_populates="profile", uselist=False
    )

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.admin

    @property
    def display_name(self) -> str:
        return self.name or self.email.split("@")[0]


class UserSlackIntegration(Base):
    __tablename__ = "user_slack_integrations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[str] = mapped_column(
        sa.String(64),
        sa.ForeignKey("profiles.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    slack_user_id: Mapped[str] = mapped_column(sa.String(32), nullable=False)
    slack_team_id: Mapped[str] = mapped_column(sa.String(32), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, server_default=sa.func.now()
    )

    # Relationships
    profile: Mapped[Profile] = relationship(back_populates="slack_integration")
