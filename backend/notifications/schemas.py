"""Notification Pydantic schemas — in-app rows and the small count envelopes."""


import uuid
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict

from backend.common.constants import NotificationType
from backend.common.pagination import PaginationMeta

# Entities a notification can point back to
NotificationEntity = Literal["leave_request", "timesheet", "attendance_record"]


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    type: NotificationType
    title: str
    message: str
    action_url: Optional[str] = None
    entity_type: Optional[str] = None
    entity_id: Optional[uuid.UUID] = None
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class NotificationListMeta(PaginationMeta):
    """Pagination meta plus the caller's total unread count."""

    unread: int


class NotificationListResponse(BaseModel):
    data: list[NotificationResponse]
    meta: NotificationListMeta


class NotificationCount(BaseModel):
    count: int


class NotificationCountEnvelope(BaseModel):
    """``{"data": {"count": n}}`` for the badge and bulk mark-read."""

    message: Optional[str] = None
    data: NotificationCount


class NotificationEnvelope(BaseModel):
    message: str
    data: NotificationResponse
