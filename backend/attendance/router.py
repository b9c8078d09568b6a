"""Attendance router — check in/out, daily and monthly views, admin corrections.

All endpoints require authentication. Visibility of other employees'
records follows the attendance access scope.
"""


import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from backend.attendance.schemas import (
    AttendanceRecordResponse,
    AttendanceRecordUpdate,
    CheckInResponse,
    CheckOutResponse,
    MonthlyAttendanceResponse,
    TodayAttendanceResponse,
)
from backend.attendance.service import AttendanceService
from backend.auth.dependencies import Caller, get_caller, require_role
from backend.common.constants import AttendanceStatus, UserRole
from backend.common.pagination import PaginationParams
from backend.common.rate_limit import CLOCK_RATE_LIMIT, limiter
from backend.database import get_db

router = APIRouter(prefix="", tags=["attendance"])


def _page(result) -> dict:
    return {
        "data": [
            AttendanceRecordResponse.model_validate(r).model_dump(mode="json")
            for r in result.data
        ],
        "meta": result.meta.model_dump(),
    }


# ── POST /check-in ──────────────────────────────────────────────────

@router.post("/check-in", response_model=CheckInResponse)
@limiter.limit(CLOCK_RATE_LIMIT)
async def check_in(
    request: Request,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    """Open today's session for the current user."""
    return await AttendanceService.check_in(db, caller.id)


# ── POST /check-out ─────────────────────────────────────────────────

@router.post("/check-out", response_model=CheckOutResponse)
@limiter.limit(CLOCK_RATE_LIMIT)
async def check_out(
    request: Request,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    """Close the current user's open session."""
    return await AttendanceService.check_out(db, caller.id)


# ── GET /today ──────────────────────────────────────────────────────

@router.get("/today", response_model=TodayAttendanceResponse)
async def today(
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    return await AttendanceService.get_today(db, caller.id)


# ── GET /me ─────────────────────────────────────────────────────────

@router.get("/me")
async def my_records(
    from_date: Optional[date] = Query(None, description="Start date (inclusive)"),
    to_date: Optional[date] = Query(None, description="End date (inclusive)"),
    pagination: PaginationParams = Depends(),
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    """The current user's own records, newest first."""
    result = await AttendanceService.get_my_records(
        db, caller.id, pagination, from_date=from_date, to_date=to_date,
    )
    return _page(result)


# ── GET /daily/{employee_id} ────────────────────────────────────────

@router.get("/daily/{employee_id}", response_model=AttendanceRecordResponse)
async def daily_record(
    employee_id: uuid.UUID,
    day: date = Query(..., alias="date", description="Business date"),
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    record = await AttendanceService.get_daily_record(db, caller, employee_id, day)
    return AttendanceRecordResponse.model_validate(record)


# ── GET /monthly/{year}/{month} ─────────────────────────────────────

@router.get("/monthly/{year}/{month}", response_model=MonthlyAttendanceResponse)
async def monthly_records(
    year: int,
    month: int,
    employee_id: Optional[uuid.UUID] = Query(None),
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    """All visible records of one month, optionally for one employee."""
    return await AttendanceService.get_monthly_records(
        db, caller, year, month, employee_id=employee_id,
    )


# ── GET / ───────────────────────────────────────────────────────────

@router.get("")
async def list_records(
    employee_id: Optional[uuid.UUID] = Query(None),
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    status: Optional[AttendanceStatus] = Query(None),
    pagination: PaginationParams = Depends(),
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    """Scoped listing: own records, team subtree, or everyone."""
    result = await AttendanceService.list_records(
        db,
        caller,
        pagination,
        employee_id=employee_id,
        from_date=from_date,
        to_date=to_date,
        status=status,
    )
    return _page(result)


# ── PATCH /{record_id} ──────────────────────────────────────────────

@router.patch("/{record_id}", response_model=AttendanceRecordResponse)
async def update_record(
    record_id: uuid.UUID,
    body: AttendanceRecordUpdate,
    caller: Caller = Depends(require_role(UserRole.super_admin)),
    db: AsyncSession = Depends(get_db),
):
    record = await AttendanceService.admin_update_record(db, caller, record_id, body)
    return AttendanceRecordResponse.model_validate(record)


# ── DELETE /{record_id} ─────────────────────────────────────────────

@router.delete("/{record_id}", status_code=204)
async def delete_record(
    record_id: uuid.UUID,
    caller: Caller = Depends(require_role(UserRole.super_admin)),
    db: AsyncSession = Depends(get_db),
):
    await AttendanceService.delete_record(db, caller, record_id)
