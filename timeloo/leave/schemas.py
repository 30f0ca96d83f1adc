"""Leave Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Request  → request bodies (write)
  - *Out / *Result      → response bodies (read)
  - *Brief              → compact embedded representations
"""

from __future__ import annotations

import enum
import uuid
from datetime import date, datetime, time
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from timeloo.common.constants import (
    DurationType,
    HalfDayPeriod,
    LeavePolicy,
    LeaveStatus,
)


# ═════════════════════════════════════════════════════════════════════
# Embedded / shared
# ═════════════════════════════════════════════════════════════════════


class ProfileBrief(BaseModel):
    """Minimal profile info embedded in leave responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: Optional[str] = None
    email: str


class LeaveTypeBrief(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    label: str
    color: Optional[str] = None
    duration_type: DurationType


# ═════════════════════════════════════════════════════════════════════
# Leave Type
# ═════════════════════════════════════════════════════════════════════


class LeaveTypeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    label: str
    color: Optional[str] = None
    duration_type: DurationType
    policy: LeavePolicy
    allowance: Decimal
    carry_forward_limit: Decimal
    primary_leave_type_id: Optional[uuid.UUID] = None
    requires_approval: bool = True
    is_active: bool = True


# ═════════════════════════════════════════════════════════════════════
# Leave Application Create
# ═════════════════════════════════════════════════════════════════════


class LeaveApplicationCreate(BaseModel):
    """Payload for submitting a leave application."""

    leave_type_id: uuid.UUID
    start_date: date = Field(..., description="Leave start date (inclusive)")
    end_date: date = Field(..., description="Leave end date (inclusive)")
    reason: str = Field(..., min_length=1, max_length=1000)
    is_half_day: bool = False
    half_day_period: Optional[HalfDayPeriod] = None
    hours_requested: Optional[Decimal] = Field(
        None, gt=0, le=24, description="Required for hour-based leave types"
    )
    holiday_name: Optional[str] = Field(None, max_length=200)
    meeting_details: Optional[str] = Field(None, max_length=1000)

    @model_validator(mode="after")
    def validate_dates(self) -> "LeaveApplicationCreate":
        if self.start_date > self.end_date:
            raise ValueError("start_date must be on or before end_date.")
        if (self.end_date - self.start_date).days > 365:
            raise ValueError("Leave application cannot span more than 365 days.")
        if self.is_half_day:
            if self.start_date != self.end_date:
                raise ValueError("A half-day application must cover a single date.")
            if self.half_day_period is None:
                raise ValueError("half_day_period is required for a half-day application.")
        return self


# ═════════════════════════════════════════════════════════════════════
# Leave Application Response
# ═════════════════════════════════════════════════════════════════════


class LeaveApplicationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: str
    leave_type_id: uuid.UUID
    start_date: date
    end_date: date
    status: LeaveStatus
    is_half_day: bool = False
    half_day_period: Optional[HalfDayPeriod] = None
    leave_time_start: Optional[time] = None
    leave_time_end: Optional[time] = None
    hours_requested: Optional[Decimal] = None
    actual_days_used: Optional[Decimal] = None
    reason: Optional[str] = None
    holiday_name: Optional[str] = None
    meeting_details: Optional[str] = None
    applied_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None

    # Enriched by service
    profile: Optional[ProfileBrief] = None
    leave_type: Optional[LeaveTypeBrief] = None


# ═════════════════════════════════════════════════════════════════════
# Balance
# ═════════════════════════════════════════════════════════════════════


class BalanceStatus(str, enum.Enum):
    ok = "ok"
    not_computable = "not_computable"
    error = "error"


class MonthlyBalance(BaseModel):
    """Usage and remaining allowance for one leave type and period."""

    leave_type: str
    duration_type: DurationType
    monthly_allowance: Optional[Decimal] = None
    annual_allowance: Optional[Decimal] = None
    used_this_month: Decimal
    used_this_year: Optional[Decimal] = None
    remaining_this_month: Decimal
    carried_forward: Optional[Decimal] = None
    can_apply: Optional[bool] = None
    wfh_remaining: Optional[Decimal] = None


class BalanceResult(BaseModel):
    """Outcome of a balance computation.

    ``status`` separates a real zero from a failed lookup: ``balance`` is
    only set when ``status == ok``.
    """

    status: BalanceStatus
    leave_type_id: Optional[uuid.UUID] = None
    month: Optional[int] = None
    year: Optional[int] = None
    balance: Optional[MonthlyBalance] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == BalanceStatus.ok


# ═════════════════════════════════════════════════════════════════════
# Overlap validation
# ═════════════════════════════════════════════════════════════════════


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AvailableSlots(_CamelModel):
    morning: bool = True
    afternoon: bool = True
    full_day: bool = True

    @classmethod
    def none(cls) -> "AvailableSlots":
        return cls(morning=False, afternoon=False, full_day=False)


class OverlapCheckRequest(_CamelModel):
    start_date: date
    end_date: date
    is_half_day: bool = False
    half_day_period: Optional[HalfDayPeriod] = None


class OverlapResult(_CamelModel):
    can_apply: bool = True
    conflicts: list[LeaveApplicationOut] = Field(default_factory=list)
    available_slots: AvailableSlots = Field(default_factory=AvailableSlots)
    message: Optional[str] = None
    conflict_date: Optional[date] = None
    error: Optional[str] = None
