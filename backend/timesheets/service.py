"""Timesheet service layer — time logs, daily submissions, weekly cap, review.

Business logic:
  - Time logs are free-form work entries owned by one employee; they
    can be edited or deleted only until they are bundled into a sheet.
  - A timesheet bundles one business day's unconsumed logs; one sheet
    per employee per day.
  - Pending + approved submitted hours never exceed 40 per ISO week.
  - Review is pending → approved | rejected, once, by a manager-tier or
    global reviewer who has the sheet in scope and does not own it.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.auth.dependencies import Caller
from backend.auth.scope import AccessScopeResolver
from backend.common.clock import BusinessClock
from backend.common.constants import (
    MANAGER_TIER_ROLES,
    WEEKLY_TIMESHEET_CAP_HOURS,
    ResourceType,
    TimesheetStatus,
    UserRole,
)
from backend.common.exceptions import (
    ConflictError,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from backend.leave.ledger import LeaveBalanceLedger
from backend.notifications.service import notify_timesheet_status
from backend.timesheets.models import Timesheet, TimeLog
from backend.timesheets.schemas import (
    TimeLogCreate,
    TimeLogUpdate,
    TimesheetCreate,
    TimesheetResponse,
    TimesheetStatusUpdate,
    WeeklyTimesheetsResponse,
)

_REVIEWER_ROLES = MANAGER_TIER_ROLES | {UserRole.super_admin, UserRole.hr}


# ═════════════════════════════════════════════════════════════════════
# TimeLogService
# ═════════════════════════════════════════════════════════════════════


class TimeLogService:
    """Owner-only CRUD over time logs."""

    @staticmethod
    async def _get_own_log(
        db: AsyncSession,
        caller: Caller,
        log_id: uuid.UUID,
    ) -> TimeLog:
        log = await db.get(TimeLog, log_id)
        if log is None or log.employee_id != caller.id:
            raise NotFoundException("TimeLog", str(log_id))
        return log

    @staticmethod
    async def create_time_log(
        db: AsyncSession,
        caller: Caller,
        data: TimeLogCreate,
    ) -> TimeLog:
        log = TimeLog(employee_id=caller.id, **data.model_dump())
        db.add(log)
        await db.flush()
        return log

    @staticmethod
    async def list_time_logs(
        db: AsyncSession,
        caller: Caller,
        day: Optional[date] = None,
        *,
        unused_only: bool = False,
    ) -> list[TimeLog]:
        query = select(TimeLog).where(TimeLog.employee_id == caller.id)
        if day is not None:
            query = query.where(TimeLog.date == day)
        if unused_only:
            query = query.where(TimeLog.is_added_to_timesheet.is_(False))
        result = await db.execute(query.order_by(TimeLog.date.desc(), TimeLog.created_at))
        return list(result.scalars().all())

    @staticmethod
    async def update_time_log(
        db: AsyncSession,
        caller: Caller,
        log_id: uuid.UUID,
        data: TimeLogUpdate,
    ) -> TimeLog:
        log = await TimeLogService._get_own_log(db, caller, log_id)
        if log.is_added_to_timesheet:
            raise ConflictError(
                "Cannot edit a time log that is already part of a timesheet.",
                field="time_log",
            )
        for field_name, value in data.model_dump(exclude_unset=True).items():
            if value is not None:
                setattr(log, field_name, value)
        await db.flush()
        return log

    @staticmethod
    async def delete_time_log(
        db: AsyncSession,
        caller: Caller,
        log_id: uuid.UUID,
    ) -> None:
        log = await TimeLogService._get_own_log(db, caller, log_id)
        if log.is_added_to_timesheet:
            raise ConflictError(
                "Cannot delete a time log that is already part of a timesheet.",
                field="time_log",
            )
        await db.delete(log)
        await db.flush()


# ═════════════════════════════════════════════════════════════════════
# TimesheetService
# ═════════════════════════════════════════════════════════════════════


class TimesheetService:
    """Daily submissions, weekly views and review."""

    @staticmethod
    async def create_timesheet(
        db: AsyncSession,
        caller: Caller,
        data: TimesheetCreate,
        now: Optional[datetime] = None,
    ) -> Timesheet:
        sheet_date = data.date or BusinessClock.business_date(now)
        log_ids = list(dict.fromkeys(data.time_log_ids))

        existing = await db.execute(
            select(Timesheet.id).where(
                Timesheet.employee_id == caller.id,
                Timesheet.date == sheet_date,
            )
        )
        if existing.first() is not None:
            raise ConflictError(
                f"You have already submitted a timesheet for {sheet_date.isoformat()}.",
                field="date",
            )

        result = await db.execute(
            select(TimeLog).where(
                TimeLog.id.in_(log_ids),
                TimeLog.employee_id == caller.id,
                TimeLog.is_added_to_timesheet.is_(False),
            )
        )
        logs = list(result.scalars().all())
        if len(logs) != len(log_ids):
            raise ValidationException(
                {"time_log_ids": ["Invalid time logs or logs already added to another timesheet."]}
            )
        if any(log.date != sheet_date for log in logs):
            raise ValidationException(
                {"time_log_ids": [
                    f"All time logs must be for the same date as the timesheet ({sheet_date.isoformat()})."
                ]}
            )

        submitted = round(sum(log.hours for log in logs), 2)
        await LeaveBalanceLedger.check_weekly_cap(db, caller.id, sheet_date, submitted)

        sheet = Timesheet(
            employee_id=caller.id,
            name=data.name,
            description=data.description,
            date=sheet_date,
            submitted_hours=submitted,
            approved_hours=0,
            status=TimesheetStatus.pending,
        )
        sheet.time_logs = logs
        for log in logs:
            log.is_added_to_timesheet = True
        db.add(sheet)
        try:
            await db.flush()
        except IntegrityError as exc:
            raise ConflictError(
                f"You have already submitted a timesheet for {sheet_date.isoformat()}.",
                field="date",
            ) from exc
        return sheet

    @staticmethod
    async def get_timesheet(
        db: AsyncSession,
        caller: Caller,
        timesheet_id: uuid.UUID,
    ) -> Timesheet:
        sheet = await db.get(Timesheet, timesheet_id)
        if sheet is None:
            raise NotFoundException("Timesheet", str(timesheet_id))
        scope = await AccessScopeResolver.scope_for(db, caller, ResourceType.timesheet)
        if not scope.allows(sheet):
            raise ForbiddenException("You cannot view this timesheet.")
        return sheet

    @staticmethod
    async def list_timesheets(
        db: AsyncSession,
        caller: Caller,
        *,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        status: Optional[TimesheetStatus] = None,
    ) -> list[Timesheet]:
        scope = await AccessScopeResolver.scope_for(db, caller, ResourceType.timesheet)
        query = select(Timesheet).where(scope.to_clause(Timesheet))
        if from_date is not None:
            query = query.where(Timesheet.date >= from_date)
        if to_date is not None:
            query = query.where(Timesheet.date <= to_date)
        if status is not None:
            query = query.where(Timesheet.status == status)
        result = await db.execute(query.order_by(Timesheet.date.desc()))
        return list(result.scalars().all())

    @staticmethod
    async def get_weekly_timesheets(
        db: AsyncSession,
        caller: Caller,
        week_start: date,
    ) -> WeeklyTimesheetsResponse:
        """Visible sheets of the week starting at *week_start*, with totals."""
        monday, sunday = BusinessClock.week_bounds(week_start)
        sheets = await TimesheetService.list_timesheets(
            db, caller, from_date=monday, to_date=sunday,
        )
        sheets.sort(key=lambda s: s.date)
        weekly_total = round(sum(s.submitted_hours for s in sheets), 2)
        return WeeklyTimesheetsResponse(
            week_start=monday,
            week_end=sunday,
            timesheets=[TimesheetResponse.model_validate(s) for s in sheets],
            weekly_total=weekly_total,
            remaining_hours=max(0.0, WEEKLY_TIMESHEET_CAP_HOURS - weekly_total),
        )

    @staticmethod
    async def set_timesheet_status(
        db: AsyncSession,
        caller: Caller,
        timesheet_id: uuid.UUID,
        data: TimesheetStatusUpdate,
    ) -> Timesheet:
        if data.status == TimesheetStatus.pending:
            raise ValidationException(
                {"status": ["A timesheet can only be approved or rejected."]}
            )
        if caller.role not in _REVIEWER_ROLES:
            raise ForbiddenException("You are not allowed to review timesheets.")

        sheet = await db.get(Timesheet, timesheet_id)
        if sheet is None:
            raise NotFoundException("Timesheet", str(timesheet_id))
        if sheet.employee_id == caller.id:
            raise ForbiddenException("You cannot review your own timesheet.")

        scope = await AccessScopeResolver.scope_for(db, caller, ResourceType.timesheet)
        if not scope.allows(sheet):
            raise ForbiddenException("This timesheet is outside your team.")
        if sheet.status != TimesheetStatus.pending:
            raise ConflictError("This timesheet has already been processed.", field="status")

        sheet.status = data.status
        if data.status == TimesheetStatus.approved:
            sheet.approved_hours = (
                data.approved_hours if data.approved_hours is not None else sheet.submitted_hours
            )
        sheet.reviewed_by_id = caller.id
        sheet.reviewed_at = datetime.now(timezone.utc)
        sheet.review_note = data.note
        await db.flush()

        notify_timesheet_status(sheet, session=db)
        return sheet
