"""Timesheet Pydantic v2 schemas — request / response validation."""


import datetime as dt
import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from backend.common.constants import TimesheetStatus


# ═════════════════════════════════════════════════════════════════════
# Time logs
# ═════════════════════════════════════════════════════════════════════


class TimeLogCreate(BaseModel):
    job: str = Field(..., min_length=1, max_length=200)
    date: date
    hours: float = Field(..., gt=0, le=24)
    description: Optional[str] = Field(None, max_length=2000)


class TimeLogUpdate(BaseModel):
    job: Optional[str] = Field(None, min_length=1, max_length=200)
    date: Optional[dt.date] = None
    hours: Optional[float] = Field(None, gt=0, le=24)
    description: Optional[str] = Field(None, max_length=2000)


class TimeLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    job: str
    date: date
    hours: float
    description: Optional[str] = None
    is_added_to_timesheet: bool
    timesheet_id: Optional[uuid.UUID] = None


# ═════════════════════════════════════════════════════════════════════
# Timesheets
# ═════════════════════════════════════════════════════════════════════


class TimesheetCreate(BaseModel):
    """Bundle one day's time logs into a submission."""

    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    date: Optional[dt.date] = Field(None, description="Business date; defaults to today")
    time_log_ids: list[uuid.UUID] = Field(..., min_length=1)


class TimesheetStatusUpdate(BaseModel):
    status: TimesheetStatus
    approved_hours: Optional[float] = Field(None, ge=0, le=24)
    note: Optional[str] = Field(None, max_length=2000)


class TimesheetResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    name: str
    description: Optional[str] = None
    date: date
    submitted_hours: float
    approved_hours: float
    status: TimesheetStatus
    reviewed_by_id: Optional[uuid.UUID] = None
    reviewed_at: Optional[datetime] = None
    review_note: Optional[str] = None
    time_logs: list[TimeLogResponse] = []


class WeeklyTimesheetsResponse(BaseModel):
    week_start: date
    week_end: date
    timesheets: list[TimesheetResponse]
    weekly_total: float
    remaining_hours: float
