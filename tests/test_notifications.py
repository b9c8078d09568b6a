"""Notification module test suite — in-app rows, mark read, unread counts,
and fire-and-forget dispatch from the other modules.

Uses the shared conftest.py pattern with in-memory SQLite.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from types import SimpleNamespace

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.common.constants import (
    AttendanceStatus,
    LeaveStatus,
    LeaveType,
    NotificationType,
    UserRole,
)
from backend.common.exceptions import ForbiddenException, NotFoundException
from backend.common.pagination import PaginationParams
from backend.notifications import service as notification_service
from backend.notifications.models import Notification
from backend.notifications.service import (
    NotificationService,
    dispatch_notification,
    notify_leave_status,
    notify_session_auto_closed,
    recipients_with_roles,
)
from tests.conftest import bearer


# ── Helpers ─────────────────────────────────────────────────────────


async def _create_notification(
    db: AsyncSession,
    recipient_id: uuid.UUID,
    *,
    type: NotificationType = NotificationType.info,
    title: str = "Test Notification",
    message: str = "Test message body",
) -> Notification:
    notification = await NotificationService.create_notification(
        db, recipient_id=recipient_id, type=type, title=title, message=message,
    )
    await db.commit()
    return notification


async def _count(db: AsyncSession, recipient_id: uuid.UUID) -> int:
    result = await db.execute(
        select(func.count()).select_from(Notification).where(
            Notification.recipient_id == recipient_id
        )
    )
    return result.scalar_one()


# ═════════════════════════════════════════════════════════════════════
# 1. SERVICE — create, read state
# ═════════════════════════════════════════════════════════════════════


class TestNotificationService:
    """Direct service calls against the test session."""

    async def test_create_basic_notification(self, db, test_employee):
        notif = await _create_notification(db, test_employee["id"])

        assert notif.id is not None
        assert notif.type == NotificationType.info
        assert notif.is_read is False

    async def test_mark_read_sets_timestamp(self, db, test_employee):
        notif = await _create_notification(db, test_employee["id"])

        updated = await NotificationService.mark_read(db, notif.id, test_employee["id"])

        assert updated.is_read is True
        assert updated.read_at is not None

    async def test_mark_read_of_someone_else_is_forbidden(self, db, make_employee, test_employee):
        other = await make_employee()
        notif = await _create_notification(db, other["id"])

        with pytest.raises(ForbiddenException):
            await NotificationService.mark_read(db, notif.id, test_employee["id"])
        with pytest.raises(NotFoundException):
            await NotificationService.mark_read(db, uuid.uuid4(), test_employee["id"])

    async def test_mark_all_read_only_touches_own_unread(self, db, make_employee, test_employee):
        other = await make_employee()
        for i in range(3):
            await _create_notification(db, test_employee["id"], title=f"N{i}")
        await _create_notification(db, other["id"])

        updated = await NotificationService.mark_all_read(db, test_employee["id"])
        await db.commit()

        assert updated == 3
        assert await NotificationService.get_unread_count(db, test_employee["id"]) == 0
        assert await NotificationService.get_unread_count(db, other["id"]) == 1

    async def test_listing_includes_unread_meta(self, db, test_employee):
        for i in range(4):
            await _create_notification(db, test_employee["id"], title=f"N{i}")
        first = (await db.execute(select(Notification).limit(1))).scalars().one()
        await NotificationService.mark_read(db, first.id, test_employee["id"])

        page = await NotificationService.get_notifications(
            db, test_employee["id"], PaginationParams(page=1, page_size=2, sort=None),
        )
        assert len(page.data) == 2
        assert page.meta.total == 4
        assert page.meta.unread == 3
        assert page.meta.has_next is True

        unread_only = await NotificationService.get_notifications(
            db, test_employee["id"], PaginationParams(page=1, page_size=10, sort=None),
            is_read=False,
        )
        assert unread_only.meta.total == 3

    async def test_recipients_with_roles_normalizes_raw_roles(self, db, make_employee):
        hr = await make_employee(role="Human Resources")
        boss = await make_employee(role="Super Admin")
        await make_employee(role="Technician")

        found = await recipients_with_roles(db, [UserRole.hr, UserRole.super_admin])
        assert set(found) == {hr["id"], boss["id"]}

        without_boss = await recipients_with_roles(
            db, [UserRole.hr, UserRole.super_admin], exclude=boss["id"],
        )
        assert without_boss == [hr["id"]]


# ═════════════════════════════════════════════════════════════════════
# 2. DISPATCH — background delivery
# ═════════════════════════════════════════════════════════════════════


class TestDispatch:
    """Fire-and-forget delivery through ``dispatch_notification``."""

    async def test_dispatch_returns_before_delivery(self, db, make_employee):
        first = await make_employee()
        second = await make_employee()

        task = dispatch_notification(
            [first["id"], second["id"], first["id"], None],
            title="Hello",
            message="World",
        )
        assert task is not None
        assert await task == 2

        assert await _count(db, first["id"]) == 1
        assert await _count(db, second["id"]) == 1

    async def test_dispatch_without_recipients_does_nothing(self):
        assert dispatch_notification([], title="Nobody", message="home") is None
        assert dispatch_notification([None], title="Nobody", message="home") is None

    async def test_delivery_failure_is_swallowed(self, db, test_employee, monkeypatch):
        async def _broken(session, **kwargs):
            raise RuntimeError("smtp down")

        monkeypatch.setattr(NotificationService, "create_notification", staticmethod(_broken))

        task = dispatch_notification([test_employee["id"]], title="Lost", message="x")
        assert await task == 0
        monkeypatch.undo()
        assert await _count(db, test_employee["id"]) == 0

    async def test_drain_waits_for_everything(self, db, make_employee, caplog):
        people = [await make_employee() for _ in range(5)]

        with caplog.at_level(logging.WARNING, logger=notification_service.__name__):
            dispatch_notification([p["id"] for p in people], title="All hands", message="m")
            await notification_service.drain()

        for person in people:
            assert await _count(db, person["id"]) == 1
        assert not notification_service._pending
        assert [r for r in caplog.records if r.name == notification_service.__name__] == []

    async def test_delivery_waits_for_commit(self, db, test_employee):
        assert await _count(db, test_employee["id"]) == 0

        task = dispatch_notification(
            [test_employee["id"]], title="Later", message="m", session=db,
        )
        assert task is None
        await notification_service.drain()
        assert await _count(db, test_employee["id"]) == 0

        await db.commit()
        await notification_service.drain()
        assert await _count(db, test_employee["id"]) == 1

    async def test_rollback_discards_queued_notifications(self, db, test_employee):
        assert await _count(db, test_employee["id"]) == 0

        dispatch_notification([test_employee["id"]], title="Lost", message="m", session=db)
        await db.rollback()
        await db.commit()
        await notification_service.drain()

        assert await _count(db, test_employee["id"]) == 0

    async def test_leave_status_dispatcher(self, db, test_employee):
        leave = SimpleNamespace(
            id=uuid.uuid4(),
            employee_id=test_employee["id"],
            leave_type=LeaveType.pto,
            start_date=date(2026, 11, 2),
            end_date=date(2026, 11, 4),
            total_days=3,
            status=LeaveStatus.rejected,
        )

        notify_leave_status(leave)
        await notification_service.drain()

        notif = (await db.execute(select(Notification))).scalars().one()
        assert notif.type == NotificationType.alert
        assert notif.title == "Leave Request Rejected"
        assert notif.entity_type == "leave_request"
        assert notif.entity_id == leave.id

    async def test_session_auto_closed_dispatcher(self, db, test_employee):
        record = SimpleNamespace(
            id=uuid.uuid4(),
            employee_id=test_employee["id"],
            date=date(2026, 10, 19),
            status=AttendanceStatus.absent,
        )

        notify_session_auto_closed(record)
        await notification_service.drain()

        notif = (await db.execute(select(Notification))).scalars().one()
        assert notif.action_url == "/attendance"
        assert "2026-10-19" in notif.message


# ═════════════════════════════════════════════════════════════════════
# 3. HTTP API
# ═════════════════════════════════════════════════════════════════════


class TestNotificationAPI:

    async def test_list_and_unread_count(self, client, db, test_employee):
        for i in range(3):
            await _create_notification(db, test_employee["id"], title=f"N{i}")
        headers = bearer(test_employee["id"])

        resp = await client.get("/api/v1/notifications", headers=headers)
        assert resp.status_code == 200
        body = resp.json()
        assert len(body["data"]) == 3
        assert body["meta"]["unread"] == 3

        resp = await client.get("/api/v1/notifications/unread-count", headers=headers)
        assert resp.json() == {"data": {"count": 3}}

    async def test_mark_one_then_all(self, client, db, test_employee):
        first = await _create_notification(db, test_employee["id"])
        await _create_notification(db, test_employee["id"])
        headers = bearer(test_employee["id"])

        resp = await client.put(f"/api/v1/notifications/{first.id}/read", headers=headers)
        assert resp.status_code == 200
        assert resp.json()["data"]["is_read"] is True

        resp = await client.put("/api/v1/notifications/read-all", headers=headers)
        assert resp.json()["data"]["count"] == 1

    async def test_cannot_mark_foreign_notification(self, client, db, make_employee, test_employee):
        other = await make_employee()
        notif = await _create_notification(db, other["id"])

        resp = await client.put(
            f"/api/v1/notifications/{notif.id}/read", headers=bearer(test_employee["id"]),
        )
        assert resp.status_code == 403

    async def test_requires_auth(self, client):
        resp = await client.get("/api/v1/notifications")
        assert resp.status_code == 401

    async def test_filter_by_entity(self, client, db, test_employee):
        await NotificationService.create_notification(
            db, recipient_id=test_employee["id"], title="Leave", message="m",
            entity_type="leave_request", entity_id=uuid.uuid4(),
        )
        await NotificationService.create_notification(
            db, recipient_id=test_employee["id"], title="Sheet", message="m",
            entity_type="timesheet", entity_id=uuid.uuid4(),
        )
        await db.commit()
        headers = bearer(test_employee["id"])

        resp = await client.get(
            "/api/v1/notifications", params={"entity_type": "timesheet"}, headers=headers,
        )
        assert [n["title"] for n in resp.json()["data"]] == ["Sheet"]

        resp = await client.get(
            "/api/v1/notifications", params={"entity_type": "payroll"}, headers=headers,
        )
        assert resp.status_code == 422
