"""Leave Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Update  → request bodies (write)
  - *Out               → response bodies (read)
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from backend.common.constants import LeaveStatus, LeaveType


# ═════════════════════════════════════════════════════════════════════
# Leave Request
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestCreate(BaseModel):
    """Apply for leave. Both dates are inclusive business dates."""

    leave_type: LeaveType
    start_date: date
    end_date: date
    reason: Optional[str] = Field(None, max_length=2000)

    @model_validator(mode="after")
    def _check_dates(self) -> "LeaveRequestCreate":
        if self.end_date < self.start_date:
            raise ValueError("end_date cannot be before start_date")
        return self


class LeaveStatusUpdate(BaseModel):
    status: LeaveStatus
    note: Optional[str] = Field(None, max_length=2000)


class LeaveResponseCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=5000)


class LeaveResponseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    author_id: Optional[uuid.UUID] = None
    author_role: str
    content: str
    is_system_note: bool
    created_at: datetime


class LeaveRequestOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_type: LeaveType
    start_date: date
    end_date: date
    total_days: float
    reason: Optional[str] = None
    status: LeaveStatus
    decided_by_id: Optional[uuid.UUID] = None
    decided_at: Optional[datetime] = None
    applied_at: datetime
    responses: list[LeaveResponseOut] = []


# ═════════════════════════════════════════════════════════════════════
# Balances
# ═════════════════════════════════════════════════════════════════════


class LeaveBalanceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    leave_type: LeaveType
    allotted: float
    balance: float


class LeaveBalancesOut(BaseModel):
    employee_id: uuid.UUID
    booked_leaves: float
    available_leaves: float
    balances: list[LeaveBalanceOut]


class LeaveAllotmentUpdate(BaseModel):
    """HR sets how many days of a type an employee is granted."""

    leave_type: LeaveType
    allotted: float = Field(..., ge=0, le=365)
