"""Attendance Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Request / *Update  → request bodies (write)
  - *Response           → response bodies (read)
"""


import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from backend.common.clock import BusinessClock
from backend.common.constants import AttendanceStatus


# ═════════════════════════════════════════════════════════════════════
# Attendance record
# ═════════════════════════════════════════════════════════════════════


class AttendanceRecordResponse(BaseModel):
    """A single day's attendance row."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    date: date
    check_in_time: Optional[datetime] = None
    check_out_time: Optional[datetime] = None
    total_hours: Optional[float] = None
    status: AttendanceStatus
    notes: Optional[str] = None
    auto_checked_out: bool = False
    leave_request_id: Optional[uuid.UUID] = None

    @field_serializer("check_in_time", "check_out_time")
    def _as_utc(self, value: Optional[datetime]) -> Optional[str]:
        if value is None:
            return None
        return BusinessClock.to_utc(value).isoformat()


# ═════════════════════════════════════════════════════════════════════
# Check in / out
# ═════════════════════════════════════════════════════════════════════


class CheckInResponse(BaseModel):
    """Result of a check-in; ``message`` reports an auto-closed prior session."""

    record: AttendanceRecordResponse
    message: str
    previous_session_closed: bool = False


class CheckOutResponse(BaseModel):
    record: AttendanceRecordResponse
    message: str


class TodayAttendanceResponse(BaseModel):
    """Current user's status for the business day."""

    date: date
    is_checked_in: bool
    record: Optional[AttendanceRecordResponse] = None


# ═════════════════════════════════════════════════════════════════════
# Admin edit
# ═════════════════════════════════════════════════════════════════════


class AttendanceRecordUpdate(BaseModel):
    """Direct correction of a record by a super admin.

    When the update supplies a time and both times are then set, hours
    are re-derived and, unless ``status`` is supplied, so is the status.
    Edits without a time keep the stored hours and status.
    """

    check_in_time: Optional[datetime] = None
    check_out_time: Optional[datetime] = None
    status: Optional[AttendanceStatus] = None
    notes: Optional[str] = Field(None, max_length=2000)


# ═════════════════════════════════════════════════════════════════════
# Monthly view
# ═════════════════════════════════════════════════════════════════════


class MonthlySummary(BaseModel):
    present: int = 0
    half_day: int = 0
    absent: int = 0
    leave: int = 0
    total_hours: float = 0.0


class MonthlyAttendanceResponse(BaseModel):
    year: int
    month: int
    employee_id: Optional[uuid.UUID] = None
    records: list[AttendanceRecordResponse]
    summary: MonthlySummary
