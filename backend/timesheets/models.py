"""Timesheet ORM models: TimeLog (a unit of work) and Timesheet (a day's submission)."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.common.constants import TimesheetStatus
from backend.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Timesheet(Base):
    __tablename__ = "timesheets"
    __table_args__ = (
        sa.UniqueConstraint("employee_id", "date", name="uq_timesheet_emp_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=False,
    )
    name: Mapped[str] = mapped_column(sa.String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(sa.Text)
    date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    submitted_hours: Mapped[float] = mapped_column(
        sa.Numeric(5, 2, asdecimal=False), nullable=False,
    )
    approved_hours: Mapped[float] = mapped_column(
        sa.Numeric(5, 2, asdecimal=False), nullable=False, default=0,
    )
    status: Mapped[TimesheetStatus] = mapped_column(
        sa.Enum(TimesheetStatus, name="timesheet_status", create_type=False),
        nullable=False,
        default=TimesheetStatus.pending,
    )
    reviewed_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"),
    )
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    review_note: Mapped[Optional[str]] = mapped_column(sa.Text)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow,
    )

    time_logs: Mapped[list[TimeLog]] = relationship(
        back_populates="timesheet", lazy="selectin", order_by="TimeLog.created_at",
    )

    def __repr__(self) -> str:
        return f"<Timesheet {self.employee_id} {self.date} {self.status}>"


class TimeLog(Base):
    __tablename__ = "time_logs"
    __table_args__ = (
        sa.CheckConstraint("hours > 0 AND hours <= 24", name="ck_time_log_hours"),
        sa.Index("ix_time_logs_emp_date", "employee_id", "date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=False,
    )
    job: Mapped[str] = mapped_column(sa.String(200), nullable=False)
    date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    hours: Mapped[float] = mapped_column(
        sa.Numeric(5, 2, asdecimal=False), nullable=False,
    )
    description: Mapped[Optional[str]] = mapped_column(sa.Text)
    is_added_to_timesheet: Mapped[bool] = mapped_column(
        sa.Boolean, nullable=False, default=False,
    )
    timesheet_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("timesheets.id", ondelete="SET NULL"),
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow,
    )

    timesheet: Mapped[Optional[Timesheet]] = relationship(back_populates="time_logs")
