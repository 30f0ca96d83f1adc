"""Leave ORM models: LeaveType, LeaveApplication."""

from __future__ import annotations

import uuid
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from timeloo.common.constants import (
    DurationType,
    HalfDayPeriod,
    LeavePolicy,
    LeaveStatus,
)
from timeloo.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LeaveType(Base):
    __tablename__ = "leave_types"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    label: Mapped[str] = mapped_column(sa.String(100), unique=True, nullable=False)
    color: Mapped[Optional[str]] = mapped_column(sa.String(20))
    duration_type: Mapped[DurationType] = mapped_column(
        sa.Enum(DurationType, name="duration_type", create_type=False),
        default=DurationType.days,
        server_default="days",
        nullable=False,
    )
    policy: Mapped[LeavePolicy] = mapped_column(
        sa.Enum(LeavePolicy, name="leave_policy", create_type=False),
        default=LeavePolicy.fixed,
        server_default="fixed",
        nullable=False,
    )
    # Monthly magnitude for fixed / accrual policies, annual for annual_pool
    allowance: Mapped[Decimal] = mapped_column(
        sa.Numeric(5, 1), default=Decimal("0"), server_default=sa.text("0")
    )
    carry_forward_limit: Mapped[Decimal] = mapped_column(
        sa.Numeric(5, 1), default=Decimal("0"), server_default=sa.text("0")
    )
    # The pool an annual_pool type only opens up once exhausted
    primary_leave_type_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("leave_types.id")
    )
    requires_approval: Mapped[bool] = mapped_column(
        sa.Boolean, default=True, server_default=sa.text("TRUE")
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
    applications: Mapped[list[LeaveApplication]] = relationship(
        back_populates="leave_type"
    )
    primary_leave_type: Mapped[Optional[LeaveType]] = relationship(
        remote_side=[id]
    )

    @property
    def carries_forward(self) -> bool:
        return self.policy == LeavePolicy.accrual_with_carry_forward

    @property
    def is_hourly(self) -> bool:
        return self.duration_type == DurationType.hours


class LeaveApplication(Base):
    __tablename__ = "leave_applied_users"
    __table_args__ = (
        sa.Index("ix_leave_applied_users_user_dates", "user_id", "start_date", "end_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[str] = mapped_column(
        sa.String(64), sa.ForeignKey("profiles.id"), nullable=False
    )
    leave_type_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("leave_types.id"), nullable=False
    )
    start_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    end_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    status: Mapped[LeaveStatus] = mapped_column(
        sa.Enum(LeaveStatus, name="leave_status", create_type=False),
        default=LeaveStatus.pending,
        server_default="pending",
        nullable=False,
    )
    is_half_day: Mapped[bool] = mapped_column(
        sa.Boolean, default=False, server_default=sa.text("FALSE")
    )
    half_day_period: Mapped[Optional[HalfDayPeriod]] = mapped_column(
        sa.Enum(HalfDayPeriod, name="half_day_period", create_type=False)
    )
    leave_time_start: Mapped[Optional[time]] = mapped_column(sa.Time)
    leave_time_end: Mapped[Optional[time]] = mapped_column(sa.Time)
    hours_requested: Mapped[Optional[Decimal]] = mapped_column(sa.Numeric(4, 1))
    actual_days_used: Mapped[Optional[Decimal]] = mapped_column(sa.Numeric(5, 1))
    reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    holiday_name: Mapped[Optional[str]] = mapped_column(sa.String(200))
    meeting_details: Mapped[Optional[str]] = mapped_column(sa.Text)
    applied_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, server_default=sa.func.now()
    )
    approved_by: Mapped[Optional[str]] = mapped_column(
        sa.String(64), sa.ForeignKey("profiles.id")
    )
    approved_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )

    # Relationships
    profile: Mapped["Profile"] = relationship(
        foreign_keys=[user_id]
    )
    approver: Mapped[Optional["Profile"]] = relationship(
        foreign_keys=[approved_by]
    )
    leave_type: Mapped[LeaveType] = relationship(back_populates="applications")
