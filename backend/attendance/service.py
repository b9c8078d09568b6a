"""Attendance service layer — the check-in / check-out session machine.

Business logic:
  - One record per employee per business day (America/New_York).
  - A session is open while it has a check-in but no check-out; at most
    one open session per employee exists at any time.
  - A session open for 12h or longer is abandoned and gets force-closed,
    either by the owner's next check-in or by the background sweeper.
  - Every close of an open session is a conditional UPDATE keyed on
    "still open", so a check-out racing the sweeper has exactly one winner.
  - Hours worked decide the day's status: >= 8 present, >= 4.5 half day,
    otherwise absent.
  - Read operations for self, team and admin views are scoped through
    AccessScopeResolver.
"""

from __future__ import annotations

import calendar
import logging
import uuid
from datetime import date, datetime, timedelta
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.attendance.models import AttendanceRecord
from backend.attendance.schemas import (
    AttendanceRecordResponse,
    AttendanceRecordUpdate,
    CheckInResponse,
    CheckOutResponse,
    MonthlyAttendanceResponse,
    MonthlySummary,
    TodayAttendanceResponse,
)
from backend.auth.dependencies import Caller
from backend.auth.scope import AccessScopeResolver
from backend.common.audit import create_audit_entry, snapshot
from backend.common.clock import BusinessClock
from backend.common.constants import (
    FULL_DAY_HOURS,
    HALF_DAY_HOURS,
    SESSION_CEILING_HOURS,
    AttendanceStatus,
    CloseTrigger,
    ResourceType,
    UserRole,
)
from backend.common.exceptions import (
    ConflictError,
    DataIntegrityError,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from backend.common.pagination import PaginatedResponse, PaginationParams, paginate
from backend.config import settings

logger = logging.getLogger(__name__)

CHECKIN_CLOSE_NOTE = "Auto-checked out (12h rule)"
SWEEPER_CLOSE_NOTE = "System auto-close (absent: >12h limit)"
CORRUPT_SESSION_DETAIL = "Corrupted check-in data. Session cleared."


def _open_session_clause():
    return (
        AttendanceRecord.check_in_time.is_not(None)
        & AttendanceRecord.check_out_time.is_(None)
    )


_AUDITED_FIELDS = (
    "date", "check_in_time", "check_out_time",
    "total_hours", "status", "notes", "auto_checked_out",
)


def _snapshot(record: AttendanceRecord) -> dict[str, Any]:
    return snapshot(record, _AUDITED_FIELDS)


# ═════════════════════════════════════════════════════════════════════
# AttendanceService
# ═════════════════════════════════════════════════════════════════════


class AttendanceService:
    """Async attendance operations: check in/out, force-close, read, correct."""

    # ── Helpers ─────────────────────────────────────────────────────

    @staticmethod
    def classify_hours(hours: float) -> AttendanceStatus:
        if hours >= FULL_DAY_HOURS:
            return AttendanceStatus.present
        if hours >= HALF_DAY_HOURS:
            return AttendanceStatus.half_day
        return AttendanceStatus.absent

    @staticmethod
    def penalty_status(trigger: CloseTrigger) -> AttendanceStatus:
        """Status given to a session that was force-closed by *trigger*."""
        if trigger is CloseTrigger.sweeper:
            return AttendanceStatus.absent
        return AttendanceStatus(settings.CHECKIN_RECOVERY_STATUS)

    @staticmethod
    def _append_note(existing: Optional[str], note: str) -> str:
        return f"{existing} | {note}" if existing else note

    @staticmethod
    def _has_usable_check_in(record: AttendanceRecord) -> bool:
        """A check-in is usable when it is a datetime on the record's own business date."""
        value = record.check_in_time
        if not isinstance(value, datetime):
            return False
        return BusinessClock.business_date(value) == record.date

    @staticmethod
    async def _get_open_session(
        db: AsyncSession,
        employee_id: uuid.UUID,
    ) -> Optional[AttendanceRecord]:
        result = await db.execute(
            select(AttendanceRecord).where(
                AttendanceRecord.employee_id == employee_id,
                _open_session_clause(),
            )
        )
        return result.scalars().first()

    @staticmethod
    async def _get_record_for_day(
        db: AsyncSession,
        employee_id: uuid.UUID,
        day: date,
    ) -> Optional[AttendanceRecord]:
        result = await db.execute(
            select(AttendanceRecord).where(
                AttendanceRecord.employee_id == employee_id,
                AttendanceRecord.date == day,
            )
        )
        return result.scalars().first()

    @staticmethod
    async def _get_record(
        db: AsyncSession,
        record_id: uuid.UUID,
    ) -> AttendanceRecord:
        record = await db.get(AttendanceRecord, record_id)
        if record is None:
            raise NotFoundException("AttendanceRecord", str(record_id))
        return record

    # ── Force close ─────────────────────────────────────────────────

    @staticmethod
    async def force_close(
        db: AsyncSession,
        record: AttendanceRecord,
        trigger: CloseTrigger,
    ) -> bool:
        """Close an abandoned session at check-in + 12h.

        Returns False when the session was no longer open (somebody else
        closed it first); in that case nothing is written.
        """
        check_in = BusinessClock.to_utc(record.check_in_time)
        status = AttendanceService.penalty_status(trigger)
        note = CHECKIN_CLOSE_NOTE if trigger is CloseTrigger.check_in else SWEEPER_CLOSE_NOTE

        result = await db.execute(
            update(AttendanceRecord)
            .where(
                AttendanceRecord.id == record.id,
                AttendanceRecord.check_out_time.is_(None),
            )
            .values(
                check_out_time=check_in + timedelta(hours=SESSION_CEILING_HOURS),
                total_hours=float(SESSION_CEILING_HOURS),
                status=status,
                auto_checked_out=True,
                notes=AttendanceService._append_note(record.notes, note),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return False

        await db.refresh(record)
        await create_audit_entry(
            db,
            action="force_close",
            entity_type="attendance_record",
            entity_id=record.id,
            new_values={"trigger": trigger.value, **_snapshot(record)},
        )
        logger.info(
            "Force-closed session %s of employee %s (trigger=%s, status=%s)",
            record.id, record.employee_id, trigger.value, status.value,
        )
        return True

    # ── Check in ────────────────────────────────────────────────────

    @staticmethod
    async def check_in(
        db: AsyncSession,
        employee_id: uuid.UUID,
        now: Optional[datetime] = None,
    ) -> CheckInResponse:
        """Open today's session, recovering an abandoned one from a previous day."""

        now = BusinessClock.to_utc(now or BusinessClock.now())
        if BusinessClock.is_weekend(now):
            raise ConflictError("Check-in is not allowed on weekends.", field="date")

        today = BusinessClock.business_date(now)
        existing = await AttendanceService._get_record_for_day(db, employee_id, today)
        if existing is not None:
            if existing.status == AttendanceStatus.leave and existing.check_in_time is None:
                raise ConflictError("Today is marked as leave.", field="date")
            raise ConflictError("You have already checked in today.", field="date")

        previous_closed = False
        open_session = await AttendanceService._get_open_session(db, employee_id)
        if open_session is not None:
            age = BusinessClock.hours_between(open_session.check_in_time, now)
            if age < SESSION_CEILING_HOURS:
                raise ConflictError(
                    "An active session already exists. Please check out first.",
                    field="check_in",
                )
            previous_closed = await AttendanceService.force_close(
                db, open_session, CloseTrigger.check_in,
            )

        record = AttendanceRecord(
            employee_id=employee_id,
            date=today,
            check_in_time=now,
            status=AttendanceStatus.present,
        )
        db.add(record)
        try:
            await db.flush()
        except IntegrityError as exc:
            raise ConflictError(
                "A concurrent check-in already opened a session.", field="check_in",
            ) from exc

        message = "Checked in successfully."
        if previous_closed:
            label = AttendanceService.penalty_status(CloseTrigger.check_in).value
            label = label.replace("_", " ").title()
            message = (
                f"Your previous open session was auto-closed as '{label}'. {message}"
            )

        return CheckInResponse(
            record=AttendanceRecordResponse.model_validate(record),
            message=message,
            previous_session_closed=previous_closed,
        )

    # ── Check out ───────────────────────────────────────────────────

    @staticmethod
    async def check_out(
        db: AsyncSession,
        employee_id: uuid.UUID,
        now: Optional[datetime] = None,
    ) -> CheckOutResponse:
        """Close the caller's open session and classify the day."""

        now = BusinessClock.to_utc(now or BusinessClock.now())
        record = await AttendanceService._get_open_session(db, employee_id)
        if record is None:
            raise ValidationException(
                {"check_out": ["No active session found. Please check in first."]}
            )

        if not AttendanceService._has_usable_check_in(record):
            logger.error(
                "Quarantining attendance record %s of employee %s: unusable check-in %r",
                record.id, employee_id, record.check_in_time,
            )
            await db.delete(record)
            # Must survive the error response, which rolls the request back
            await db.commit()
            raise DataIntegrityError(CORRUPT_SESSION_DETAIL)

        hours = BusinessClock.hours_between(record.check_in_time, now)
        status = AttendanceService.classify_hours(hours)

        result = await db.execute(
            update(AttendanceRecord)
            .where(
                AttendanceRecord.id == record.id,
                AttendanceRecord.check_out_time.is_(None),
            )
            .values(check_out_time=now, total_hours=hours, status=status)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise ConflictError(
                "This session was already closed by the system.", field="check_out",
            )

        await db.refresh(record)
        return CheckOutResponse(
            record=AttendanceRecordResponse.model_validate(record),
            message=f"Checked out successfully. Total hours: {hours:.2f}.",
        )

    # ── Today ───────────────────────────────────────────────────────

    @staticmethod
    async def get_today(
        db: AsyncSession,
        employee_id: uuid.UUID,
        now: Optional[datetime] = None,
    ) -> TodayAttendanceResponse:
        today = BusinessClock.business_date(now)
        record = await AttendanceService._get_record_for_day(db, employee_id, today)
        open_session = await AttendanceService._get_open_session(db, employee_id)
        return TodayAttendanceResponse(
            date=today,
            is_checked_in=open_session is not None,
            record=AttendanceRecordResponse.model_validate(record) if record else None,
        )

    # ── Admin edit / delete ─────────────────────────────────────────

    @staticmethod
    async def admin_update_record(
        db: AsyncSession,
        caller: Caller,
        record_id: uuid.UUID,
        data: AttendanceRecordUpdate,
    ) -> AttendanceRecord:
        """Direct correction of a record (super admin only)."""

        if caller.role != UserRole.super_admin:
            raise ForbiddenException("Only a super admin can edit attendance records.")

        record = await AttendanceService._get_record(db, record_id)
        old_values = _snapshot(record)
        changes = data.model_dump(exclude_unset=True)

        if "check_in_time" in changes and changes["check_in_time"] is not None:
            check_in = BusinessClock.to_utc(changes["check_in_time"])
            if BusinessClock.business_date(check_in) != record.date:
                raise ValidationException(
                    {"check_in_time": ["Check-in must fall on the record's date."]}
                )
            changes["check_in_time"] = check_in
        if "check_out_time" in changes and changes["check_out_time"] is not None:
            changes["check_out_time"] = BusinessClock.to_utc(changes["check_out_time"])

        for field_name, value in changes.items():
            setattr(record, field_name, value)

        times_supplied = "check_in_time" in changes or "check_out_time" in changes
        if times_supplied and record.check_in_time is not None and record.check_out_time is not None:
            if BusinessClock.ensure_aware(record.check_out_time) < BusinessClock.ensure_aware(record.check_in_time):
                raise ValidationException(
                    {"check_out_time": ["Check-out cannot be before check-in."]}
                )
            record.total_hours = BusinessClock.hours_between(
                record.check_in_time, record.check_out_time,
            )
            if changes.get("status") is None:
                record.status = AttendanceService.classify_hours(record.total_hours)

        try:
            await db.flush()
        except IntegrityError as exc:
            raise ConflictError(
                "The employee already has another open session.", field="check_out_time",
            ) from exc

        await create_audit_entry(
            db,
            action="admin_update",
            entity_type="attendance_record",
            entity_id=record.id,
            actor_id=caller.id,
            old_values=old_values,
            new_values=_snapshot(record),
        )
        return record

    @staticmethod
    async def delete_record(
        db: AsyncSession,
        caller: Caller,
        record_id: uuid.UUID,
    ) -> None:
        if caller.role != UserRole.super_admin:
            raise ForbiddenException("Only a super admin can delete attendance records.")

        record = await AttendanceService._get_record(db, record_id)
        await create_audit_entry(
            db,
            action="delete",
            entity_type="attendance_record",
            entity_id=record.id,
            actor_id=caller.id,
            old_values=_snapshot(record),
        )
        await db.delete(record)
        await db.flush()

    # ── Reads ───────────────────────────────────────────────────────

    @staticmethod
    async def get_daily_record(
        db: AsyncSession,
        caller: Caller,
        employee_id: uuid.UUID,
        day: date,
    ) -> AttendanceRecord:
        scope = await AccessScopeResolver.scope_for(db, caller, ResourceType.attendance)
        if not scope.allows_id(employee_id):
            raise ForbiddenException("You cannot view this employee's attendance.")

        record = await AttendanceService._get_record_for_day(db, employee_id, day)
        if record is None:
            raise NotFoundException("AttendanceRecord", f"{employee_id}@{day.isoformat()}")
        return record

    @staticmethod
    async def get_monthly_records(
        db: AsyncSession,
        caller: Caller,
        year: int,
        month: int,
        employee_id: Optional[uuid.UUID] = None,
    ) -> MonthlyAttendanceResponse:
        """All visible records of one calendar month, with a status tally."""

        if not 1 <= month <= 12:
            raise ValidationException({"month": ["Month must be between 1 and 12."]})

        first = date(year, month, 1)
        last = date(year, month, calendar.monthrange(year, month)[1])

        scope = await AccessScopeResolver.scope_for(db, caller, ResourceType.attendance)
        if employee_id is not None and not scope.allows_id(employee_id):
            raise ForbiddenException("You cannot view this employee's attendance.")

        query = (
            select(AttendanceRecord)
            .where(
                AttendanceRecord.date >= first,
                AttendanceRecord.date <= last,
                scope.to_clause(AttendanceRecord),
            )
            .order_by(AttendanceRecord.date, AttendanceRecord.employee_id)
        )
        if employee_id is not None:
            query = query.where(AttendanceRecord.employee_id == employee_id)

        records = (await db.execute(query)).scalars().all()

        summary = MonthlySummary()
        for r in records:
            setattr(summary, r.status.value, getattr(summary, r.status.value) + 1)
            summary.total_hours += r.total_hours or 0.0
        summary.total_hours = round(summary.total_hours, 2)

        return MonthlyAttendanceResponse(
            year=year,
            month=month,
            employee_id=employee_id,
            records=[AttendanceRecordResponse.model_validate(r) for r in records],
            summary=summary,
        )

    @staticmethod
    async def list_records(
        db: AsyncSession,
        caller: Caller,
        pagination: PaginationParams,
        *,
        employee_id: Optional[uuid.UUID] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        status: Optional[AttendanceStatus] = None,
    ) -> PaginatedResponse:
        """Scoped, filterable attendance listing (newest first)."""

        scope = await AccessScopeResolver.scope_for(db, caller, ResourceType.attendance)
        query = (
            select(AttendanceRecord)
            .where(scope.to_clause(AttendanceRecord))
            .order_by(AttendanceRecord.date.desc())
        )
        if employee_id is not None:
            query = query.where(AttendanceRecord.employee_id == employee_id)
        if from_date is not None:
            query = query.where(AttendanceRecord.date >= from_date)
        if to_date is not None:
            query = query.where(AttendanceRecord.date <= to_date)
        if status is not None:
            query = query.where(AttendanceRecord.status == status)

        return await paginate(db, query, pagination, model=AttendanceRecord)

    @staticmethod
    async def get_my_records(
        db: AsyncSession,
        employee_id: uuid.UUID,
        pagination: PaginationParams,
        *,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
    ) -> PaginatedResponse:
        query = (
            select(AttendanceRecord)
            .where(AttendanceRecord.employee_id == employee_id)
            .order_by(AttendanceRecord.date.desc())
        )
        if from_date is not None:
            query = query.where(AttendanceRecord.date >= from_date)
        if to_date is not None:
            query = query.where(AttendanceRecord.date <= to_date)
        return await paginate(db, query, pagination, model=AttendanceRecord)
