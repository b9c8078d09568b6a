"""Timesheet router — time-log CRUD, daily submission, weekly view, review."""


import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backend.auth.dependencies import Caller, get_caller
from backend.common.constants import TimesheetStatus
from backend.database import get_db
from backend.timesheets.schemas import (
    TimeLogCreate,
    TimeLogResponse,
    TimeLogUpdate,
    TimesheetCreate,
    TimesheetResponse,
    TimesheetStatusUpdate,
    WeeklyTimesheetsResponse,
)
from backend.timesheets.service import TimeLogService, TimesheetService

router = APIRouter(prefix="", tags=["timesheets"])


# ═════════════════════════════════════════════════════════════════════
# Time logs
# ═════════════════════════════════════════════════════════════════════


@router.post("/time-logs", response_model=TimeLogResponse, status_code=201)
async def create_time_log(
    body: TimeLogCreate,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    return await TimeLogService.create_time_log(db, caller, body)


@router.get("/time-logs", response_model=list[TimeLogResponse])
async def list_time_logs(
    day: Optional[date] = Query(None, alias="date"),
    unused_only: bool = Query(False, description="Only logs not yet in a timesheet"),
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    return await TimeLogService.list_time_logs(db, caller, day, unused_only=unused_only)


@router.put("/time-logs/{log_id}", response_model=TimeLogResponse)
async def update_time_log(
    log_id: uuid.UUID,
    body: TimeLogUpdate,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    return await TimeLogService.update_time_log(db, caller, log_id, body)


@router.delete("/time-logs/{log_id}", status_code=204)
async def delete_time_log(
    log_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    await TimeLogService.delete_time_log(db, caller, log_id)


# ═════════════════════════════════════════════════════════════════════
# Timesheets
# ═════════════════════════════════════════════════════════════════════


@router.post("", response_model=TimesheetResponse, status_code=201)
async def create_timesheet(
    body: TimesheetCreate,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    """Submit one day's time logs (weekly 40h cap applies)."""
    return await TimesheetService.create_timesheet(db, caller, body)


@router.get("", response_model=list[TimesheetResponse])
async def list_timesheets(
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    status: Optional[TimesheetStatus] = Query(None),
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    return await TimesheetService.list_timesheets(
        db, caller, from_date=from_date, to_date=to_date, status=status,
    )


# NOTE: /weekly is registered before /{timesheet_id}.

@router.get("/weekly", response_model=WeeklyTimesheetsResponse)
async def weekly_timesheets(
    week_start: date = Query(..., description="Any date in the wanted ISO week"),
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    return await TimesheetService.get_weekly_timesheets(db, caller, week_start)


@router.get("/{timesheet_id}", response_model=TimesheetResponse)
async def get_timesheet(
    timesheet_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    return await TimesheetService.get_timesheet(db, caller, timesheet_id)


@router.put("/{timesheet_id}/status", response_model=TimesheetResponse)
async def set_timesheet_status(
    timesheet_id: uuid.UUID,
    body: TimesheetStatusUpdate,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    return await TimesheetService.set_timesheet_status(db, caller, timesheet_id, body)
