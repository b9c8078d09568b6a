"""Helpdesk ORM model: HelpdeskTicket.

Visibility is decided by ``created_by_id`` and ``assigned_to_id`` through
the ``ticket`` access scope.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from backend.database import Base


class HelpdeskTicket(Base):
    """Helpdesk support ticket."""

    __tablename__ = "helpdesk_tickets"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    ticket_number: Mapped[Optional[str]] = mapped_column(sa.String(50), unique=True)
    title: Mapped[str] = mapped_column(sa.String(500), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(sa.Text)
    category: Mapped[Optional[str]] = mapped_column(sa.String(200))
    status: Mapped[str] = mapped_column(
        sa.String(50), nullable=False, default="open",
    )
    priority: Mapped[str] = mapped_column(
        sa.String(20), nullable=False, default="medium",
    )
    created_by_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=False, index=True,
    )
    assigned_to_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=True, index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<HelpdeskTicket #{self.ticket_number} '{self.title[:30]}'>"
