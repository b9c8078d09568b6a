"""Enums and constants for the employee portal — matching PostgreSQL ENUM types."""

from __future__ import annotations

import enum
from typing import Optional


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    super_admin = "super_admin"
    admin = "admin"
    hr = "hr"
    manager = "manager"
    employee = "employee"


# Raw role strings as they are entered in the user directory, squashed
# (whitespace/underscores/hyphens removed, lower-cased) → closed role.
_ROLE_ALIASES: dict[str, UserRole] = {
    "superadmin": UserRole.super_admin,
    "admin": UserRole.admin,
    "hr": UserRole.hr,
    "humanresources": UserRole.hr,
    "manager": UserRole.manager,
    "employee": UserRole.employee,
    "technician": UserRole.employee,
}

TECHNICIAN_ROLE_KEY = "technician"


def role_key(raw: Optional[str]) -> str:
    """Squash a raw role string: "Super Admin" → "superadmin"."""
    if not isinstance(raw, str):
        return ""
    return "".join(ch for ch in raw.lower() if ch.isalnum())


def normalize_role(raw: Optional[str]) -> UserRole:
    """Map a raw role string onto the closed role set.

    Unknown, empty or malformed values fall back to ``employee`` — the
    most restrictive role.
    """
    return _ROLE_ALIASES.get(role_key(raw), UserRole.employee)


# Roles whose scope can extend past the caller's own records
MANAGER_TIER_ROLES = frozenset({UserRole.admin, UserRole.manager})


# ── Attendance ──────────────────────────────────────────────────────

class AttendanceStatus(str, enum.Enum):
    present = "present"
    half_day = "half_day"
    absent = "absent"
    leave = "leave"


class CloseTrigger(str, enum.Enum):
    """Who force-closed an abandoned session."""

    check_in = "check_in"
    sweeper = "sweeper"


# ── Leave ───────────────────────────────────────────────────────────

class LeaveType(str, enum.Enum):
    pto = "pto"
    sick = "sick"


class LeaveStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


# Statuses that hold days against a balance / block overlapping requests
ACTIVE_LEAVE_STATUSES = (LeaveStatus.pending, LeaveStatus.approved)


# ── Timesheets ──────────────────────────────────────────────────────

class TimesheetStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


# ── Access scopes ───────────────────────────────────────────────────

class ResourceType(str, enum.Enum):
    attendance = "attendance"
    user_list = "user_list"
    leave = "leave"
    ticket = "ticket"
    timesheet = "timesheet"


# ── Notifications ───────────────────────────────────────────────────

class NotificationType(str, enum.Enum):
    info = "info"
    action_required = "action_required"
    approval = "approval"
    alert = "alert"


# ── Misc constants ──────────────────────────────────────────────────

TIMEZONE = "America/New_York"

SESSION_CEILING_HOURS = 12
FULL_DAY_HOURS = 8.0
HALF_DAY_HOURS = 4.5

WEEKLY_TIMESHEET_CAP_HOURS = 40

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 50
