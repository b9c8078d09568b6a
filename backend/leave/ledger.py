"""LeaveBalanceLedger — balance debits/credits and their side effects.

Business logic:
  - A request holds its days against the per-type pool while it is
    pending or approved; rejection and deletion give them back.
  - Every movement touches three numbers together: the type's pool
    (``LeaveBalance.balance``), ``Employee.booked_leaves`` and
    ``Employee.available_leaves``.  They are cached totals; the ledger
    entries are the source of truth and ``verify`` re-derives them.
  - Invariants after every mutation:
      available_leaves == sum(pool balances)
      balance[type] + booked_days[type] == allotted[type]
      booked_leaves == sum(days of pending/approved ledger entries)
  - A leave covers every calendar day of its span; each day gets an
    attendance row with status ``leave``.
  - Timesheet submissions are capped at 40 hours per ISO week, counting
    pending and approved sheets.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.attendance.models import AttendanceRecord
from backend.attendance.service import AttendanceService
from backend.common.audit import create_audit_entry
from backend.common.clock import BusinessClock
from backend.common.constants import (
    ACTIVE_LEAVE_STATUSES,
    WEEKLY_TIMESHEET_CAP_HOURS,
    AttendanceStatus,
    LeaveStatus,
    LeaveType,
    TimesheetStatus,
)
from backend.common.exceptions import (
    ConflictError,
    NotFoundException,
    ValidationException,
)
from backend.core_hr.models import Employee
from backend.leave.models import LeaveBalance, LeaveLedgerEntry, LeaveRequest
from backend.timesheets.models import Timesheet

logger = logging.getLogger(__name__)


@dataclass
class LedgerReport:
    """Outcome of ``LeaveBalanceLedger.verify`` for one employee."""

    employee_id: uuid.UUID
    consistent: bool
    repaired: bool = False
    problems: list[str] = field(default_factory=list)


class LeaveBalanceLedger:
    """Stateless balance operations; callers own the transaction."""

    # ── Helpers ─────────────────────────────────────────────────────

    @staticmethod
    def span_days(start: date, end: date) -> int:
        """Inclusive calendar-day length of a leave span."""
        if end < start:
            raise ValidationException(
                {"end_date": ["End date cannot be before start date."]}
            )
        return (end - start).days + 1

    @staticmethod
    async def get_pool(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type: LeaveType,
    ) -> Optional[LeaveBalance]:
        result = await db.execute(
            select(LeaveBalance).where(
                LeaveBalance.employee_id == employee_id,
                LeaveBalance.leave_type == leave_type,
            )
        )
        return result.scalars().first()

    @staticmethod
    async def _entry_for(
        db: AsyncSession,
        request: LeaveRequest,
    ) -> Optional[LeaveLedgerEntry]:
        result = await db.execute(
            select(LeaveLedgerEntry).where(
                LeaveLedgerEntry.leave_request_id == request.id,
            )
        )
        return result.scalars().first()

    @staticmethod
    async def _require_available(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type: LeaveType,
        days: float,
    ) -> LeaveBalance:
        pool = await LeaveBalanceLedger.get_pool(db, employee_id, leave_type)
        available = pool.balance if pool is not None else 0
        if pool is None or available < days:
            raise ValidationException(
                {"balance": [
                    f"Insufficient {leave_type.value.upper()} balance. "
                    f"Available: {available:g}, Requested: {days:g}."
                ]}
            )
        return pool

    @staticmethod
    def _move(employee: Employee, pool: LeaveBalance, days: float) -> None:
        """Debit (positive *days*) or credit (negative *days*) all three totals."""
        pool.balance = (pool.balance or 0) - days
        employee.booked_leaves = (employee.booked_leaves or 0) + days
        employee.available_leaves = (employee.available_leaves or 0) - days

    # ── Validation ──────────────────────────────────────────────────

    @staticmethod
    async def validate_new(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type: LeaveType,
        start: date,
        end: date,
    ) -> int:
        """Check span, balance and overlap for a new request; returns the span."""
        span = LeaveBalanceLedger.span_days(start, end)
        await LeaveBalanceLedger._require_available(db, employee_id, leave_type, span)

        overlap = await db.execute(
            select(func.count()).select_from(LeaveRequest).where(
                LeaveRequest.employee_id == employee_id,
                LeaveRequest.status.in_(ACTIVE_LEAVE_STATUSES),
                LeaveRequest.start_date <= end,
                LeaveRequest.end_date >= start,
            )
        )
        if overlap.scalar_one() > 0:
            raise ConflictError(
                "You already have a pending or approved leave request "
                "overlapping with these dates.",
                field="dates",
            )
        return span

    # ── Balance movements ───────────────────────────────────────────

    @staticmethod
    async def apply(
        db: AsyncSession,
        employee: Employee,
        request: LeaveRequest,
    ) -> None:
        """Hold the request's days and record it in the leave history."""
        pool = await LeaveBalanceLedger._require_available(
            db, employee.id, request.leave_type, request.total_days,
        )
        LeaveBalanceLedger._move(employee, pool, request.total_days)

        entry = await LeaveBalanceLedger._entry_for(db, request)
        if entry is None:
            db.add(LeaveLedgerEntry(
                employee_id=employee.id,
                leave_request_id=request.id,
                leave_type=request.leave_type,
                start_date=request.start_date,
                end_date=request.end_date,
                days=request.total_days,
                status=request.status,
            ))
        else:
            entry.status = request.status
        await db.flush()

    @staticmethod
    async def reverse(
        db: AsyncSession,
        employee: Employee,
        request: LeaveRequest,
    ) -> None:
        """Give the request's days back to the pool."""
        pool = await LeaveBalanceLedger.get_pool(db, employee.id, request.leave_type)
        if pool is None:
            raise NotFoundException("LeaveBalance", f"{employee.id}/{request.leave_type.value}")
        LeaveBalanceLedger._move(employee, pool, -request.total_days)
        await db.flush()

    @staticmethod
    async def reconcile(
        db: AsyncSession,
        employee: Employee,
        request: LeaveRequest,
        old_status: LeaveStatus,
        new_status: LeaveStatus,
    ) -> None:
        """Adjust balances for a status change and mirror it in the ledger."""
        was_held = old_status in ACTIVE_LEAVE_STATUSES
        is_held = new_status in ACTIVE_LEAVE_STATUSES

        if was_held and not is_held:
            await LeaveBalanceLedger.reverse(db, employee, request)
        elif is_held and not was_held:
            # Re-approval: balance is re-checked, overlap is not
            pool = await LeaveBalanceLedger._require_available(
                db, employee.id, request.leave_type, request.total_days,
            )
            LeaveBalanceLedger._move(employee, pool, request.total_days)

        entry = await LeaveBalanceLedger._entry_for(db, request)
        if entry is not None:
            entry.status = new_status
        await db.flush()

    @staticmethod
    async def remove_entry(db: AsyncSession, request: LeaveRequest) -> None:
        entry = await LeaveBalanceLedger._entry_for(db, request)
        if entry is not None:
            await db.delete(entry)
            await db.flush()

    # ── Attendance side effects ─────────────────────────────────────

    @staticmethod
    async def materialize_attendance(
        db: AsyncSession,
        request: LeaveRequest,
    ) -> int:
        """One ``leave`` row per calendar day; same-day rows are taken over."""
        days = BusinessClock.days_in_span(request.start_date, request.end_date)
        result = await db.execute(
            select(AttendanceRecord).where(
                AttendanceRecord.employee_id == request.employee_id,
                AttendanceRecord.date >= request.start_date,
                AttendanceRecord.date <= request.end_date,
            )
        )
        existing = {r.date: r for r in result.scalars().all()}

        for day in days:
            record = existing.get(day)
            if record is not None:
                record.status = AttendanceStatus.leave
                record.leave_request_id = request.id
            else:
                db.add(AttendanceRecord(
                    employee_id=request.employee_id,
                    date=day,
                    status=AttendanceStatus.leave,
                    leave_request_id=request.id,
                ))
        await db.flush()
        return len(days)

    @staticmethod
    async def remove_materialized_attendance(
        db: AsyncSession,
        request: LeaveRequest,
    ) -> int:
        """Undo ``materialize_attendance``; returns rows deleted."""
        result = await db.execute(
            select(AttendanceRecord).where(
                AttendanceRecord.leave_request_id == request.id,
            )
        )
        deleted = 0
        for record in result.scalars().all():
            if record.check_in_time is None:
                await db.delete(record)
                deleted += 1
                continue
            # Taken over from a worked day: put its own status back
            record.leave_request_id = None
            if record.check_out_time is None:
                record.status = AttendanceStatus.present
            else:
                record.status = AttendanceService.classify_hours(record.total_hours or 0.0)
        await db.flush()
        return deleted

    # ── Weekly timesheet cap ────────────────────────────────────────

    @staticmethod
    async def check_weekly_cap(
        db: AsyncSession,
        employee_id: uuid.UUID,
        day: date,
        new_hours: float,
    ) -> float:
        """Reject when pending + approved hours of the ISO week would pass 40.

        Returns the week's total including *new_hours*.
        """
        monday, sunday = BusinessClock.week_bounds(day)
        result = await db.execute(
            select(func.coalesce(func.sum(Timesheet.submitted_hours), 0)).where(
                Timesheet.employee_id == employee_id,
                Timesheet.date >= monday,
                Timesheet.date <= sunday,
                Timesheet.status.in_([TimesheetStatus.pending, TimesheetStatus.approved]),
            )
        )
        current = float(result.scalar_one() or 0)
        total = current + new_hours
        if total > WEEKLY_TIMESHEET_CAP_HOURS:
            raise ConflictError(
                f"Weekly limit exceeded: {current:g}h already submitted for the week "
                f"of {monday.isoformat()}, adding {new_hours:g}h would pass "
                f"{WEEKLY_TIMESHEET_CAP_HOURS}h.",
                field="hours",
            )
        return total

    # ── Consistency check / repair ──────────────────────────────────

    @staticmethod
    async def verify(
        db: AsyncSession,
        employee_id: uuid.UUID,
        *,
        repair: bool = False,
    ) -> LedgerReport:
        """Re-derive cached totals from the ledger; optionally rewrite them."""
        employee = await db.get(Employee, employee_id)
        if employee is None:
            raise NotFoundException("Employee", str(employee_id))

        pools = (
            await db.execute(
                select(LeaveBalance).where(LeaveBalance.employee_id == employee_id)
            )
        ).scalars().all()
        entries = (
            await db.execute(
                select(LeaveLedgerEntry).where(
                    LeaveLedgerEntry.employee_id == employee_id,
                    LeaveLedgerEntry.status.in_(ACTIVE_LEAVE_STATUSES),
                )
            )
        ).scalars().all()

        booked_by_type: dict[LeaveType, float] = {}
        for entry in entries:
            booked_by_type[entry.leave_type] = booked_by_type.get(entry.leave_type, 0.0) + entry.days

        problems: list[str] = []
        expected_pools: dict[uuid.UUID, float] = {}
        for pool in pools:
            expected = (pool.allotted or 0) - booked_by_type.get(pool.leave_type, 0.0)
            expected_pools[pool.id] = expected
            if abs((pool.balance or 0) - expected) > 1e-6:
                problems.append(
                    f"{pool.leave_type.value} balance {pool.balance:g} != {expected:g}"
                )

        expected_booked = sum(booked_by_type.values())
        expected_available = sum(expected_pools.values())
        if abs((employee.booked_leaves or 0) - expected_booked) > 1e-6:
            problems.append(f"booked_leaves {employee.booked_leaves:g} != {expected_booked:g}")
        if abs((employee.available_leaves or 0) - expected_available) > 1e-6:
            problems.append(
                f"available_leaves {employee.available_leaves:g} != {expected_available:g}"
            )

        report = LedgerReport(employee_id=employee_id, consistent=not problems, problems=problems)
        if problems and repair:
            old_values = {
                "booked_leaves": employee.booked_leaves,
                "available_leaves": employee.available_leaves,
                "balances": {p.leave_type.value: p.balance for p in pools},
            }
            for pool in pools:
                pool.balance = expected_pools[pool.id]
            employee.booked_leaves = expected_booked
            employee.available_leaves = expected_available
            await db.flush()
            await create_audit_entry(
                db,
                action="ledger_repair",
                entity_type="employee",
                entity_id=employee_id,
                old_values=old_values,
                new_values={
                    "booked_leaves": expected_booked,
                    "available_leaves": expected_available,
                    "balances": {p.leave_type.value: p.balance for p in pools},
                },
            )
            logger.warning(
                "Repaired leave totals of employee %s: %s",
                employee_id, "; ".join(problems),
            )
            report.repaired = True
        return report
