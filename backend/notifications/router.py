"""Notification endpoints — the caller's own in-app inbox.

Routes:
    /notifications                     — Paginated inbox, filterable
    /notifications/unread-count        — Header badge
    /notifications/read-all            — Bulk mark read
    /notifications/{id}/read           — Mark one read (owner only)
"""


import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backend.auth.dependencies import Caller, get_caller
from backend.common.pagination import PaginationParams
from backend.database import get_db
from backend.notifications.schemas import (
    NotificationCount,
    NotificationCountEnvelope,
    NotificationEntity,
    NotificationEnvelope,
    NotificationListResponse,
    NotificationResponse,
)
from backend.notifications.service import NotificationService

router = APIRouter(prefix="", tags=["notifications"])


# ── GET /notifications ──────────────────────────────────────────────

@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    is_read: Optional[bool] = Query(default=None),
    entity_type: Optional[NotificationEntity] = Query(
        default=None, description="Only notifications about this kind of record",
    ),
    pagination: PaginationParams = Depends(),
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    """The caller's notifications, newest first."""
    return await NotificationService.get_notifications(
        db, caller.id, pagination, is_read=is_read, entity_type=entity_type,
    )


# ── GET /notifications/unread-count ─────────────────────────────────
# Registered before /{notification_id}/read so "unread-count" is never
# parsed as a UUID.

@router.get("/unread-count", response_model=NotificationCountEnvelope, response_model_exclude_none=True)
async def unread_count(
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    count = await NotificationService.get_unread_count(db, caller.id)
    return NotificationCountEnvelope(data=NotificationCount(count=count))


# ── PUT /notifications/read-all ─────────────────────────────────────

@router.put("/read-all", response_model=NotificationCountEnvelope)
async def mark_all_read(
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    count = await NotificationService.mark_all_read(db, caller.id)
    return NotificationCountEnvelope(
        message="All notifications marked as read",
        data=NotificationCount(count=count),
    )


# ── PUT /notifications/{id}/read ────────────────────────────────────

@router.put("/{notification_id}/read", response_model=NotificationEnvelope)
async def mark_read(
    notification_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    notification = await NotificationService.mark_read(db, notification_id, caller.id)
    return NotificationEnvelope(
        message="Notification marked as read",
        data=NotificationResponse.model_validate(notification),
    )
