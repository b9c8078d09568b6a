"""Core HR ORM model: Employee.

The ``reports_to_id`` self-reference is the only edge of the org graph;
every team and scope computation walks it.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from backend.database import Base


# ═════════════════════════════════════════════════════════════════════
# Employee
# ═════════════════════════════════════════════════════════════════════


class Employee(Base):
    """Portal user — identity, role, reporting line and leave totals."""

    __tablename__ = "employees"

    # ── Primary key ─────────────────────────────────────────────────
    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    # ── Identifiers ─────────────────────────────────────────────────
    employee_code: Mapped[str] = mapped_column(
        sa.String(20), unique=True, nullable=False,
    )

    # ── Name / Contact ──────────────────────────────────────────────
    first_name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    email: Mapped[str] = mapped_column(
        sa.String(255), unique=True, nullable=False,
    )
    designation: Mapped[Optional[str]] = mapped_column(sa.String(150))

    # ── Access ──────────────────────────────────────────────────────
    # Stored as entered in the directory ("Super Admin", "HR", ...);
    # normalized into UserRole at the auth boundary only.
    role: Mapped[str] = mapped_column(
        sa.String(50), nullable=False, server_default="employee",
    )
    is_technician: Mapped[bool] = mapped_column(
        sa.Boolean, nullable=False, default=False, server_default=sa.text("FALSE"),
    )

    # ── Org hierarchy ───────────────────────────────────────────────
    reports_to_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), index=True,
    )

    # ── Leave totals (per-type pools live in leave_balances) ────────
    booked_leaves: Mapped[float] = mapped_column(
        sa.Numeric(6, 1, asdecimal=False),
        nullable=False,
        default=0,
        server_default=sa.text("0"),
    )
    available_leaves: Mapped[float] = mapped_column(
        sa.Numeric(6, 1, asdecimal=False),
        nullable=False,
        default=0,
        server_default=sa.text("0"),
    )

    # ── Status / Timestamps ─────────────────────────────────────────
    is_active: Mapped[bool] = mapped_column(
        sa.Boolean, default=True, server_default=sa.text("TRUE"),
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now(),
    )

    # ── Helpers ─────────────────────────────────────────────────────

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        return (
            f"<Employee {self.employee_code} "
            f"{self.first_name} {self.last_name}>"
        )
