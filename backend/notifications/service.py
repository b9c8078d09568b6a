"""Notification service — in-app rows plus fire-and-forget dispatch.

Business logic:
  - Domain services never wait for a notification: ``dispatch_notification``
    schedules delivery on the running event loop and returns immediately.
  - Delivery opens its own session and transaction, so a failed
    notification can never roll back the operation that triggered it.
  - A notification raised inside a transaction is only sent once that
    transaction commits; a rollback discards it.
  - Delivery failures are logged and swallowed.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Iterable, Optional

from sqlalchemy import event, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session, SessionTransaction

from backend.common.constants import NotificationType, UserRole, normalize_role
from backend.common.exceptions import ForbiddenException, NotFoundException
from backend.common.pagination import PaginationParams, paginate
from backend.core_hr.models import Employee
from backend.database import async_session_factory
from backend.notifications.models import Notification
from backend.notifications.schemas import (
    NotificationListMeta,
    NotificationListResponse,
    NotificationResponse,
)

logger = logging.getLogger(__name__)

# Sessions for background delivery; tests point this at their own engine
session_factory = async_session_factory

_pending: set[asyncio.Task] = set()


# ── Core service ────────────────────────────────────────────────────


class NotificationService:
    """Async notification operations."""

    @staticmethod
    async def create_notification(
        db: AsyncSession,
        *,
        recipient_id: uuid.UUID,
        type: NotificationType = NotificationType.info,
        title: str,
        message: str,
        action_url: Optional[str] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[uuid.UUID] = None,
    ) -> Notification:
        """Create a new notification and flush to DB."""
        notification = Notification(
            recipient_id=recipient_id,
            type=type,
            title=title,
            message=message,
            action_url=action_url,
            entity_type=entity_type,
            entity_id=entity_id,
        )
        db.add(notification)
        await db.flush()
        return notification

    @staticmethod
    async def get_notifications(
        db: AsyncSession,
        employee_id: uuid.UUID,
        pagination: PaginationParams,
        *,
        is_read: Optional[bool] = None,
        entity_type: Optional[str] = None,
    ) -> NotificationListResponse:
        """Return paginated notifications for an employee, newest first."""
        query = (
            select(Notification)
            .where(Notification.recipient_id == employee_id)
            .order_by(Notification.created_at.desc())
        )
        if is_read is not None:
            query = query.where(Notification.is_read == is_read)
        if entity_type is not None:
            query = query.where(Notification.entity_type == entity_type)

        page = await paginate(db, query, pagination, model=Notification)
        unread = await NotificationService.get_unread_count(db, employee_id)

        return NotificationListResponse(
            data=[NotificationResponse.model_validate(n) for n in page.data],
            meta=NotificationListMeta(**page.meta.model_dump(), unread=unread),
        )

    @staticmethod
    async def mark_read(
        db: AsyncSession,
        notification_id: uuid.UUID,
        employee_id: uuid.UUID,
    ) -> Notification:
        """Mark a single notification as read. Verifies ownership."""
        notification = await db.get(Notification, notification_id)
        if notification is None:
            raise NotFoundException("Notification", notification_id)
        if notification.recipient_id != employee_id:
            raise ForbiddenException("You can only mark your own notifications as read.")

        notification.is_read = True
        notification.read_at = datetime.now(timezone.utc)
        await db.flush()
        return notification

    @staticmethod
    async def mark_all_read(
        db: AsyncSession,
        employee_id: uuid.UUID,
    ) -> int:
        """Bulk-mark all unread notifications as read. Returns count updated."""
        result = await db.execute(
            update(Notification)
            .where(
                Notification.recipient_id == employee_id,
                Notification.is_read.is_(False),
            )
            .values(is_read=True, read_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        await db.flush()
        return result.rowcount  # type: ignore[return-value]

    @staticmethod
    async def get_unread_count(
        db: AsyncSession,
        employee_id: uuid.UUID,
    ) -> int:
        result = await db.execute(
            select(func.count())
            .select_from(Notification)
            .where(
                Notification.recipient_id == employee_id,
                Notification.is_read.is_(False),
            )
        )
        return result.scalar_one()


# ── Fire-and-forget dispatch ────────────────────────────────────────

# Key in ``Session.info`` for notifications waiting on a commit
_ON_COMMIT_KEY = "notifications_on_commit"


async def _deliver(
    recipient_ids: list[uuid.UUID],
    payload: dict,
) -> int:
    try:
        async with session_factory() as session:
            for recipient_id in recipient_ids:
                await NotificationService.create_notification(
                    session, recipient_id=recipient_id, **payload,
                )
            await session.commit()
    except Exception:
        logger.warning(
            "Notification %r to %d recipient(s) was not delivered",
            payload.get("title"), len(recipient_ids), exc_info=True,
        )
        return 0
    return len(recipient_ids)


def _schedule(recipient_ids: list[uuid.UUID], payload: dict) -> Optional[asyncio.Task]:
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        logger.warning("No running event loop; dropping notification %r", payload.get("title"))
        return None

    task = loop.create_task(_deliver(recipient_ids, payload))
    _pending.add(task)
    task.add_done_callback(_pending.discard)
    return task


def dispatch_notification(
    recipient_ids: Iterable[uuid.UUID],
    *,
    type: NotificationType = NotificationType.info,
    title: str,
    message: str,
    action_url: Optional[str] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[uuid.UUID] = None,
    session: Optional[AsyncSession] = None,
) -> Optional[asyncio.Task]:
    """Schedule delivery without awaiting it.

    With *session*, delivery waits until that session's transaction
    commits and is dropped if it rolls back; nothing is returned.
    Otherwise the delivery task is returned.
    """
    recipients = list(dict.fromkeys(r for r in recipient_ids if r is not None))
    if not recipients:
        return None

    payload = dict(
        type=type,
        title=title,
        message=message,
        action_url=action_url,
        entity_type=entity_type,
        entity_id=entity_id,
    )
    if session is not None:
        session.info.setdefault(_ON_COMMIT_KEY, []).append((recipients, payload))
        return None
    return _schedule(recipients, payload)


@event.listens_for(Session, "after_commit")
def _send_on_commit(session: Session) -> None:
    for recipients, payload in session.info.pop(_ON_COMMIT_KEY, []):
        _schedule(recipients, payload)


@event.listens_for(Session, "after_transaction_end")
def _discard_on_rollback(session: Session, transaction: SessionTransaction) -> None:
    # Runs after after_commit, so anything left here was never committed
    if transaction.parent is not None:
        return
    dropped = session.info.pop(_ON_COMMIT_KEY, None)
    if dropped:
        logger.info("Discarded %d notification(s) of a rolled-back transaction", len(dropped))


async def drain() -> None:
    """Wait for every in-flight delivery (shutdown and tests)."""
    while _pending:
        await asyncio.gather(*list(_pending), return_exceptions=True)


async def recipients_with_roles(
    db: AsyncSession,
    roles: Iterable[UserRole],
    *,
    exclude: Optional[uuid.UUID] = None,
) -> list[uuid.UUID]:
    """Active employees whose normalized role is one of *roles*."""
    wanted = set(roles)
    rows = await db.execute(
        select(Employee.id, Employee.role).where(Employee.is_active.is_(True))
    )
    return [
        emp_id
        for emp_id, raw_role in rows.all()
        if normalize_role(raw_role) in wanted and emp_id != exclude
    ]


# ── Cross-module helper dispatchers ─────────────────────────────────
# Imported by leave / attendance / timesheet services. They accept the
# ORM object directly to avoid tight schema coupling; pass the request
# session so delivery waits for its commit.


def notify_leave_created(
    leave_request,  # backend.leave.models.LeaveRequest
    approver_ids: Iterable[uuid.UUID],
    session: Optional[AsyncSession] = None,
) -> Optional[asyncio.Task]:
    """Tell HR / admins that a new leave request needs review."""
    return dispatch_notification(
        approver_ids,
        type=NotificationType.action_required,
        title="New Leave Request",
        message=(
            f"A {leave_request.leave_type.value.upper()} request from "
            f"{leave_request.start_date} to {leave_request.end_date} "
            f"({leave_request.total_days:g} day(s)) requires review."
        ),
        action_url=f"/leave/{leave_request.id}",
        entity_type="leave_request",
        entity_id=leave_request.id,
        session=session,
    )


def notify_leave_status(
    leave_request,  # backend.leave.models.LeaveRequest
    session: Optional[AsyncSession] = None,
) -> Optional[asyncio.Task]:
    """Tell the employee their leave request was approved or rejected."""
    status = leave_request.status.value
    return dispatch_notification(
        [leave_request.employee_id],
        type=NotificationType.approval if status == "approved" else NotificationType.alert,
        title=f"Leave Request {status.title()}",
        message=(
            f"Your leave request from {leave_request.start_date} to "
            f"{leave_request.end_date} has been {status}."
        ),
        action_url=f"/leave/{leave_request.id}",
        entity_type="leave_request",
        entity_id=leave_request.id,
        session=session,
    )


def notify_leave_response(
    leave_request,  # backend.leave.models.LeaveRequest
    recipient_ids: Iterable[uuid.UUID],
    session: Optional[AsyncSession] = None,
) -> Optional[asyncio.Task]:
    return dispatch_notification(
        recipient_ids,
        type=NotificationType.info,
        title="New Response on Leave Request",
        message=(
            f"A new response was added to the leave request from "
            f"{leave_request.start_date} to {leave_request.end_date}."
        ),
        action_url=f"/leave/{leave_request.id}",
        entity_type="leave_request",
        entity_id=leave_request.id,
        session=session,
    )


def notify_timesheet_status(
    timesheet,  # backend.timesheets.models.Timesheet
    session: Optional[AsyncSession] = None,
) -> Optional[asyncio.Task]:
    status = timesheet.status.value
    return dispatch_notification(
        [timesheet.employee_id],
        type=NotificationType.approval if status == "approved" else NotificationType.alert,
        title=f"Timesheet {status.title()}",
        message=f"Your timesheet '{timesheet.name}' for {timesheet.date} has been {status}.",
        action_url=f"/timesheets/{timesheet.id}",
        entity_type="timesheet",
        entity_id=timesheet.id,
        session=session,
    )


def notify_session_auto_closed(
    record,  # backend.attendance.models.AttendanceRecord
) -> Optional[asyncio.Task]:
    """Tell the employee an abandoned session was closed for them."""
    return dispatch_notification(
        [record.employee_id],
        type=NotificationType.alert,
        title="Attendance Session Auto-Closed",
        message=(
            f"Your session from {record.date} was open for more than 12 hours "
            f"and was closed automatically as '{record.status.value}'."
        ),
        action_url="/attendance",
        entity_type="attendance_record",
        entity_id=record.id,
    )
