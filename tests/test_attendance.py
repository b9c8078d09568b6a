"""Attendance test suite — check-in / check-out session machine, abandoned
session recovery, admin corrections and scoped reads.

Tests exercise both the service layer (explicit ``now``) and the HTTP API
(via router, with ``BusinessClock.now`` frozen).
Uses the shared conftest.py pattern with in-memory SQLite.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from backend.attendance.models import AttendanceRecord
from backend.attendance.schemas import AttendanceRecordUpdate
from backend.attendance.service import (
    CHECKIN_CLOSE_NOTE,
    CORRUPT_SESSION_DETAIL,
    AttendanceService,
)
from backend.auth.dependencies import Caller
from backend.common.audit import AuditTrail
from backend.common.constants import AttendanceStatus, CloseTrigger, UserRole
from backend.common.exceptions import (
    ConflictError,
    DataIntegrityError,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from backend.common.pagination import PaginationParams
from backend.config import settings
from tests.conftest import TUESDAY_9AM, bearer

# Monday 2026-10-19, 09:00 America/New_York
MONDAY_9AM = TUESDAY_9AM - timedelta(days=1)
TUESDAY = date(2026, 10, 20)


# ── Helpers ─────────────────────────────────────────────────────────


def _caller(data: dict, role: UserRole = UserRole.employee) -> Caller:
    return Caller(id=data["id"], role=role, reports_to_id=data.get("reports_to_id"))


def _page() -> PaginationParams:
    return PaginationParams(page=1, page_size=50, sort=None)


async def _record(db, employee_id, **fields) -> AttendanceRecord:
    """Insert an attendance row directly, bypassing the session rules."""
    record = AttendanceRecord(employee_id=employee_id, **fields)
    db.add(record)
    await db.commit()
    return record


async def _reload(db, record_id) -> AttendanceRecord:
    db.expire_all()
    return (
        await db.execute(select(AttendanceRecord).where(AttendanceRecord.id == record_id))
    ).scalars().one()


# ═════════════════════════════════════════════════════════════════════
# 1. CHECK-IN — Service Layer
# ═════════════════════════════════════════════════════════════════════


async def test_check_in_opens_session(db, test_employee):
    """Check-in creates today's record with an open session."""
    resp = await AttendanceService.check_in(db, test_employee["id"], now=TUESDAY_9AM)

    assert resp.previous_session_closed is False
    assert resp.message == "Checked in successfully."
    assert resp.record.date == TUESDAY
    assert resp.record.status == AttendanceStatus.present
    assert resp.record.check_out_time is None

    today = await AttendanceService.get_today(db, test_employee["id"], now=TUESDAY_9AM)
    assert today.is_checked_in
    assert today.record.id == resp.record.id


async def test_check_in_uses_business_date(db, test_employee):
    """22:00 in New York is already tomorrow in UTC; the record stays on today."""
    late_evening = datetime(2026, 10, 21, 2, 0, tzinfo=timezone.utc)
    resp = await AttendanceService.check_in(db, test_employee["id"], now=late_evening)
    assert resp.record.date == TUESDAY


async def test_check_in_on_weekend_is_refused(db, test_employee):
    saturday = datetime(2026, 10, 24, 14, 0, tzinfo=timezone.utc)
    with pytest.raises(ConflictError) as exc:
        await AttendanceService.check_in(db, test_employee["id"], now=saturday)
    assert "weekends" in exc.value.detail


async def test_second_check_in_same_day_conflicts(db, test_employee):
    await AttendanceService.check_in(db, test_employee["id"], now=TUESDAY_9AM)
    with pytest.raises(ConflictError) as exc:
        await AttendanceService.check_in(
            db, test_employee["id"], now=TUESDAY_9AM + timedelta(hours=1),
        )
    assert exc.value.detail == "You have already checked in today."


async def test_check_in_refused_while_recent_session_is_open(db, test_employee):
    """A session opened 11h ago on the previous day is still live."""
    monday_8pm = MONDAY_9AM + timedelta(hours=11)
    await AttendanceService.check_in(db, test_employee["id"], now=monday_8pm)

    with pytest.raises(ConflictError) as exc:
        await AttendanceService.check_in(
            db, test_employee["id"], now=monday_8pm + timedelta(hours=11),
        )
    assert "active session" in exc.value.detail


async def test_check_in_on_leave_day_is_refused(db, test_employee):
    await _record(db, test_employee["id"], date=TUESDAY, status=AttendanceStatus.leave)

    with pytest.raises(ConflictError) as exc:
        await AttendanceService.check_in(db, test_employee["id"], now=TUESDAY_9AM)
    assert exc.value.detail == "Today is marked as leave."


# ═════════════════════════════════════════════════════════════════════
# 2. ABANDONED SESSION RECOVERY AT CHECK-IN
# ═════════════════════════════════════════════════════════════════════


async def test_stale_session_is_force_closed_at_next_check_in(db, test_employee):
    """Yesterday's forgotten session is closed at check-in + 12h."""
    monday = await AttendanceService.check_in(db, test_employee["id"], now=MONDAY_9AM)

    resp = await AttendanceService.check_in(db, test_employee["id"], now=TUESDAY_9AM)

    assert resp.previous_session_closed is True
    assert resp.message.startswith("Your previous open session was auto-closed as 'Present'.")
    assert resp.record.date == TUESDAY

    closed = await _reload(db, monday.record.id)
    assert closed.total_hours == 12.0
    assert closed.status == AttendanceStatus.present
    assert closed.auto_checked_out is True
    assert closed.notes == CHECKIN_CLOSE_NOTE
    assert closed.check_out_time.replace(tzinfo=None) == (
        MONDAY_9AM + timedelta(hours=12)
    ).replace(tzinfo=None)

    audit = (await db.execute(
        select(AuditTrail).where(AuditTrail.entity_id == monday.record.id)
    )).scalars().all()
    assert [a.action for a in audit] == ["force_close"]


async def test_check_in_recovery_status_is_configurable(db, test_employee, monkeypatch):
    monkeypatch.setattr(settings, "CHECKIN_RECOVERY_STATUS", "absent")
    monday = await AttendanceService.check_in(db, test_employee["id"], now=MONDAY_9AM)

    resp = await AttendanceService.check_in(db, test_employee["id"], now=TUESDAY_9AM)

    assert "'Absent'" in resp.message
    closed = await _reload(db, monday.record.id)
    assert closed.status == AttendanceStatus.absent


async def test_force_close_appends_to_existing_notes(db, test_employee):
    record = await _record(
        db, test_employee["id"],
        date=date(2026, 10, 19), check_in_time=MONDAY_9AM, notes="Client visit",
    )
    await AttendanceService.check_in(db, test_employee["id"], now=TUESDAY_9AM)

    closed = await _reload(db, record.id)
    assert closed.notes == f"Client visit | {CHECKIN_CLOSE_NOTE}"


async def test_only_one_open_session_per_employee(db, test_employee):
    """The partial unique index refuses a second open session."""
    await _record(db, test_employee["id"], date=date(2026, 10, 19), check_in_time=MONDAY_9AM)

    db.add(AttendanceRecord(
        employee_id=test_employee["id"], date=TUESDAY, check_in_time=TUESDAY_9AM,
    ))
    with pytest.raises(IntegrityError):
        await db.commit()
    await db.rollback()


# ═════════════════════════════════════════════════════════════════════
# 3. CHECK-OUT
# ═════════════════════════════════════════════════════════════════════


@pytest.mark.parametrize(
    "hours, expected",
    [
        (8.5, AttendanceStatus.present),
        (8.0, AttendanceStatus.present),
        (5.0, AttendanceStatus.half_day),
        (4.5, AttendanceStatus.half_day),
        (2.0, AttendanceStatus.absent),
    ],
)
async def test_check_out_classifies_day_by_hours(db, test_employee, hours, expected):
    await AttendanceService.check_in(db, test_employee["id"], now=TUESDAY_9AM)

    resp = await AttendanceService.check_out(
        db, test_employee["id"], now=TUESDAY_9AM + timedelta(hours=hours),
    )

    assert resp.record.total_hours == hours
    assert resp.record.status == expected
    assert resp.record.auto_checked_out is False
    assert f"Total hours: {hours:.2f}" in resp.message


async def test_check_out_without_session_is_validation_error(db, test_employee):
    with pytest.raises(ValidationException) as exc:
        await AttendanceService.check_out(db, test_employee["id"], now=TUESDAY_9AM)
    assert "check_out" in exc.value.errors


async def test_check_out_after_check_out_is_refused(db, test_employee):
    await AttendanceService.check_in(db, test_employee["id"], now=TUESDAY_9AM)
    await AttendanceService.check_out(db, test_employee["id"], now=TUESDAY_9AM + timedelta(hours=8))

    with pytest.raises(ValidationException):
        await AttendanceService.check_out(
            db, test_employee["id"], now=TUESDAY_9AM + timedelta(hours=9),
        )


async def test_check_out_loses_race_against_system_close(db, test_employee, monkeypatch):
    """If the session is closed between lookup and update, check-out conflicts."""
    record = await _record(db, test_employee["id"], date=TUESDAY, check_in_time=TUESDAY_9AM)

    async def _stale_lookup(session, employee_id):
        return record

    # Closed behind the session's back; the loaded object still looks open
    await db.execute(
        update(AttendanceRecord)
        .where(AttendanceRecord.id == record.id)
        .values(check_out_time=TUESDAY_9AM + timedelta(hours=12))
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    assert record.check_out_time is None

    monkeypatch.setattr(AttendanceService, "_get_open_session", staticmethod(_stale_lookup))
    with pytest.raises(ConflictError) as exc:
        await AttendanceService.check_out(
            db, test_employee["id"], now=TUESDAY_9AM + timedelta(hours=13),
        )
    assert "already closed" in exc.value.detail


async def test_corrupt_check_in_is_quarantined(db, test_employee):
    """A check-in that does not belong to the record's date is deleted."""
    record = await _record(
        db, test_employee["id"], date=TUESDAY, check_in_time=MONDAY_9AM,
    )

    with pytest.raises(DataIntegrityError) as exc:
        await AttendanceService.check_out(db, test_employee["id"], now=TUESDAY_9AM)
    assert exc.value.detail == CORRUPT_SESSION_DETAIL

    db.expire_all()
    assert await db.get(AttendanceRecord, record.id) is None


# ═════════════════════════════════════════════════════════════════════
# 4. ADMIN CORRECTIONS
# ═════════════════════════════════════════════════════════════════════


async def test_admin_update_recomputes_hours_and_status(db, make_employee, test_employee):
    admin = await make_employee(role="Super Admin")
    record = await _record(
        db, test_employee["id"],
        date=TUESDAY,
        check_in_time=TUESDAY_9AM,
        check_out_time=TUESDAY_9AM + timedelta(hours=2),
        total_hours=2.0,
        status=AttendanceStatus.absent,
    )

    updated = await AttendanceService.admin_update_record(
        db,
        _caller(admin, UserRole.super_admin),
        record.id,
        AttendanceRecordUpdate(check_out_time=TUESDAY_9AM + timedelta(hours=9)),
    )

    assert updated.total_hours == 9.0
    assert updated.status == AttendanceStatus.present

    audit = (await db.execute(
        select(AuditTrail).where(AuditTrail.entity_id == record.id)
    )).scalars().one()
    assert audit.action == "admin_update"
    assert audit.actor_id == admin["id"]


async def test_admin_update_keeps_explicit_status(db, make_employee, test_employee):
    admin = await make_employee(role="Super Admin")
    record = await _record(
        db, test_employee["id"], date=TUESDAY, check_in_time=TUESDAY_9AM,
    )

    updated = await AttendanceService.admin_update_record(
        db,
        _caller(admin, UserRole.super_admin),
        record.id,
        AttendanceRecordUpdate(
            check_out_time=TUESDAY_9AM + timedelta(hours=3),
            status=AttendanceStatus.half_day,
        ),
    )
    assert updated.total_hours == 3.0
    assert updated.status == AttendanceStatus.half_day


async def test_admin_update_rejects_check_out_before_check_in(db, make_employee, test_employee):
    admin = await make_employee(role="Super Admin")
    record = await _record(db, test_employee["id"], date=TUESDAY, check_in_time=TUESDAY_9AM)

    with pytest.raises(ValidationException) as exc:
        await AttendanceService.admin_update_record(
            db,
            _caller(admin, UserRole.super_admin),
            record.id,
            AttendanceRecordUpdate(check_out_time=TUESDAY_9AM - timedelta(hours=1)),
        )
    assert "check_out_time" in exc.value.errors


async def test_admin_update_rejects_check_in_on_other_day(db, make_employee, test_employee):
    admin = await make_employee(role="Super Admin")
    record = await _record(db, test_employee["id"], date=TUESDAY, check_in_time=TUESDAY_9AM)

    with pytest.raises(ValidationException):
        await AttendanceService.admin_update_record(
            db,
            _caller(admin, UserRole.super_admin),
            record.id,
            AttendanceRecordUpdate(check_in_time=MONDAY_9AM),
        )



async def test_notes_edit_keeps_sweeper_penalty(db, make_employee, test_employee):
    """A note on a system-closed session must not turn it back into a full day."""
    admin = await make_employee(role="Super Admin")
    record = await _record(
        db, test_employee["id"], date=date(2026, 10, 19), check_in_time=MONDAY_9AM,
    )
    assert await AttendanceService.force_close(db, record, CloseTrigger.sweeper) is True
    await db.commit()
    closed = await _reload(db, record.id)
    assert closed.status == AttendanceStatus.absent

    updated = await AttendanceService.admin_update_record(
        db,
        _caller(admin, UserRole.super_admin),
        record.id,
        AttendanceRecordUpdate(notes="reviewed"),
    )

    assert updated.notes == "reviewed"
    assert updated.status == AttendanceStatus.absent
    assert updated.total_hours == 12.0


@pytest.mark.parametrize("role", [UserRole.hr, UserRole.admin, UserRole.manager, UserRole.employee])
async def test_only_super_admin_can_correct_records(db, test_employee, role):
    record = await _record(db, test_employee["id"], date=TUESDAY, check_in_time=TUESDAY_9AM)

    with pytest.raises(ForbiddenException):
        await AttendanceService.admin_update_record(
            db, _caller(test_employee, role), record.id, AttendanceRecordUpdate(notes="x"),
        )
    with pytest.raises(ForbiddenException):
        await AttendanceService.delete_record(db, _caller(test_employee, role), record.id)


async def test_super_admin_deletes_record(db, make_employee, test_employee):
    admin = await make_employee(role="Super Admin")
    record = await _record(db, test_employee["id"], date=TUESDAY, check_in_time=TUESDAY_9AM)

    await AttendanceService.delete_record(db, _caller(admin, UserRole.super_admin), record.id)

    assert await db.get(AttendanceRecord, record.id) is None
    with pytest.raises(NotFoundException):
        await AttendanceService.delete_record(db, _caller(admin, UserRole.super_admin), record.id)


# ═════════════════════════════════════════════════════════════════════
# 5. SCOPED READS
# ═════════════════════════════════════════════════════════════════════


async def test_monthly_records_and_summary(db, test_employee):
    emp = test_employee["id"]
    await _record(db, emp, date=date(2026, 10, 1), total_hours=8.0, status=AttendanceStatus.present)
    await _record(db, emp, date=date(2026, 10, 2), total_hours=5.0, status=AttendanceStatus.half_day)
    await _record(db, emp, date=date(2026, 10, 5), status=AttendanceStatus.leave)
    await _record(db, emp, date=date(2026, 9, 30), total_hours=8.0, status=AttendanceStatus.present)

    monthly = await AttendanceService.get_monthly_records(
        db, _caller(test_employee), 2026, 10, employee_id=emp,
    )

    assert [r.date.day for r in monthly.records] == [1, 2, 5]
    assert monthly.summary.present == 1
    assert monthly.summary.half_day == 1
    assert monthly.summary.leave == 1
    assert monthly.summary.total_hours == 13.0


async def test_monthly_records_reject_bad_month(db, test_employee):
    with pytest.raises(ValidationException):
        await AttendanceService.get_monthly_records(db, _caller(test_employee), 2026, 13)


async def test_employee_cannot_read_colleague_attendance(db, make_employee, test_employee):
    colleague = await make_employee()
    await _record(db, colleague["id"], date=TUESDAY, check_in_time=TUESDAY_9AM)

    with pytest.raises(ForbiddenException):
        await AttendanceService.get_daily_record(db, _caller(test_employee), colleague["id"], TUESDAY)
    with pytest.raises(ForbiddenException):
        await AttendanceService.get_monthly_records(
            db, _caller(test_employee), 2026, 10, employee_id=colleague["id"],
        )


async def test_manager_reads_subtree_attendance(db, make_employee):
    manager = await make_employee(role="Manager")
    report = await make_employee(reports_to_id=manager["id"])
    outsider = await make_employee()
    for emp in (manager, report, outsider):
        await _record(db, emp["id"], date=TUESDAY, total_hours=8.0)
    caller = _caller(manager, UserRole.manager)

    record = await AttendanceService.get_daily_record(db, caller, report["id"], TUESDAY)
    assert record.employee_id == report["id"]

    listing = await AttendanceService.list_records(db, caller, _page())
    assert {r.employee_id for r in listing.data} == {manager["id"], report["id"]}
    assert listing.meta.total == 2

    with pytest.raises(NotFoundException):
        await AttendanceService.get_daily_record(db, caller, report["id"], date(2026, 10, 19))


async def test_hr_lists_everyone(db, make_employee):
    hr = await make_employee(role="HR")
    for _ in range(3):
        emp = await make_employee()
        await _record(db, emp["id"], date=TUESDAY, status=AttendanceStatus.absent)

    listing = await AttendanceService.list_records(
        db, _caller(hr, UserRole.hr), _page(), status=AttendanceStatus.absent,
    )
    assert listing.meta.total == 3


# ═════════════════════════════════════════════════════════════════════
# 6. HTTP API
# ═════════════════════════════════════════════════════════════════════


async def test_api_check_in_and_out(client, test_employee, frozen_now):
    headers = bearer(test_employee["id"])

    resp = await client.post("/api/v1/attendance/check-in", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["record"]["date"] == TUESDAY.isoformat()

    resp = await client.get("/api/v1/attendance/today", headers=headers)
    assert resp.json()["is_checked_in"] is True

    frozen_now(TUESDAY_9AM + timedelta(hours=9))
    resp = await client.post("/api/v1/attendance/check-out", headers=headers)
    assert resp.status_code == 200
    body = resp.json()["record"]
    assert body["total_hours"] == 9.0
    assert body["status"] == "present"
    assert body["check_out_time"].endswith("+00:00")


async def test_api_duplicate_check_in_is_problem_detail(client, test_employee, frozen_now):
    headers = bearer(test_employee["id"])
    await client.post("/api/v1/attendance/check-in", headers=headers)

    resp = await client.post("/api/v1/attendance/check-in", headers=headers)
    assert resp.status_code == 409
    assert resp.headers["content-type"].startswith("application/problem+json")
    assert resp.json()["errors"] == {"date": ["You have already checked in today."]}


async def test_api_requires_token(client):
    resp = await client.post("/api/v1/attendance/check-in")
    assert resp.status_code == 401


async def test_api_patch_requires_super_admin(client, db, test_employee):
    record = await _record(db, test_employee["id"], date=TUESDAY, check_in_time=TUESDAY_9AM)

    resp = await client.patch(
        f"/api/v1/attendance/{record.id}",
        json={"notes": "fixed"},
        headers=bearer(test_employee["id"]),
    )
    assert resp.status_code == 403


async def test_api_super_admin_patches_record(client, db, make_employee, test_employee):
    admin = await make_employee(role="super_admin")
    record = await _record(db, test_employee["id"], date=TUESDAY, check_in_time=TUESDAY_9AM)

    resp = await client.patch(
        f"/api/v1/attendance/{record.id}",
        json={"check_out_time": (TUESDAY_9AM + timedelta(hours=5)).isoformat()},
        headers=bearer(admin["id"]),
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "half_day"


async def test_api_daily_record_not_found(client, test_employee):
    resp = await client.get(
        f"/api/v1/attendance/daily/{test_employee['id']}",
        params={"date": TUESDAY.isoformat()},
        headers=bearer(test_employee["id"]),
    )
    assert resp.status_code == 404


async def test_api_daily_record_of_unknown_employee_is_forbidden(client, test_employee):
    resp = await client.get(
        f"/api/v1/attendance/daily/{uuid.uuid4()}",
        params={"date": TUESDAY.isoformat()},
        headers=bearer(test_employee["id"]),
    )
    assert resp.status_code == 403
