"""Attendance ORM model: AttendanceRecord (one row per employee per business day)."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from backend.common.constants import AttendanceStatus
from backend.database import Base

# An open session is a record with a check-in but no check-out yet
OPEN_SESSION_PREDICATE = "check_in_time IS NOT NULL AND check_out_time IS NULL"


class AttendanceRecord(Base):
    __tablename__ = "attendance_records"
    __table_args__ = (
        sa.UniqueConstraint("employee_id", "date", name="uq_attendance_emp_date"),
        sa.Index(
            "uq_attendance_one_open_session",
            "employee_id",
            unique=True,
            postgresql_where=sa.text(OPEN_SESSION_PREDICATE),
            sqlite_where=sa.text(OPEN_SESSION_PREDICATE),
        ),
        sa.Index("ix_attendance_check_in_time", "check_in_time"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=False
    )
    # Business date (America/New_York) the session belongs to
    date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    check_in_time: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    check_out_time: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    total_hours: Mapped[Optional[float]] = mapped_column(
        sa.Numeric(5, 2, asdecimal=False)
    )
    status: Mapped[AttendanceStatus] = mapped_column(
        sa.Enum(AttendanceStatus, name="attendance_status", create_type=False),
        nullable=False,
        default=AttendanceStatus.present,
    )
    notes: Mapped[Optional[str]] = mapped_column(sa.Text)
    auto_checked_out: Mapped[bool] = mapped_column(
        sa.Boolean, nullable=False, default=False
    )
    # Set when a leave request created or took over this day
    leave_request_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("leave_requests.id", ondelete="SET NULL")
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    @property
    def is_open(self) -> bool:
        return self.check_in_time is not None and self.check_out_time is None

    def __repr__(self) -> str:
        return f"<AttendanceRecord {self.employee_id} {self.date} {self.status}>"
