"""Auth dependencies — JWT validation, caller identity, role enforcement.

Raw role strings from the user directory are normalized here and
nowhere else; everything downstream works with a ``Caller``.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import Depends, Request
from fastapi.exceptions import HTTPException
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.common.constants import (
    TECHNICIAN_ROLE_KEY,
    UserRole,
    normalize_role,
    role_key,
)
from backend.common.exceptions import ForbiddenException
from backend.config import settings
from backend.core_hr.models import Employee
from backend.database import get_db


@dataclass(frozen=True)
class Caller:
    """The authenticated principal behind a request."""

    id: uuid.UUID
    role: UserRole
    reports_to_id: Optional[uuid.UUID] = None
    is_technician: bool = False

    @classmethod
    def from_employee(cls, employee: Employee) -> "Caller":
        return cls(
            id=employee.id,
            role=normalize_role(employee.role),
            reports_to_id=employee.reports_to_id,
            is_technician=bool(employee.is_technician)
            or role_key(employee.role) == TECHNICIAN_ROLE_KEY,
        )


def _extract_bearer(request: Request) -> str:
    """Extract Bearer token from Authorization header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid Authorization header.")
    return auth_header[7:]


# ── Core dependency ─────────────────────────────────────────────────

async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> Employee:
    """Validate JWT and return the authenticated, active Employee."""
    token = _extract_bearer(request)

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token has expired.")
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token.")

    if payload.get("type") != "access":
        raise HTTPException(status_code=401, detail="Invalid token type.")

    try:
        employee_id = uuid.UUID(str(payload.get("sub")))
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid token subject.")

    result = await db.execute(
        select(Employee).where(
            Employee.id == employee_id, Employee.is_active.is_(True),
        ),
    )
    employee = result.scalars().first()
    if employee is None:
        raise HTTPException(status_code=401, detail="User account is inactive or not found.")

    # The directory is the source of truth for the role, not the token
    request.state.user_role = normalize_role(employee.role)
    return employee


async def get_caller(
    employee: Employee = Depends(get_current_user),
) -> Caller:
    """Immutable caller identity for the service layer."""
    return Caller.from_employee(employee)


# ── Role-based dependency ───────────────────────────────────────────

def require_role(*allowed_roles: UserRole) -> Callable:
    """Return a FastAPI dependency that enforces role membership."""

    async def _check(caller: Caller = Depends(get_caller)) -> Caller:
        if caller.role not in allowed_roles:
            raise ForbiddenException(
                detail=f"Role '{caller.role.value}' is not permitted. Required: {[r.value for r in allowed_roles]}.",
            )
        return caller

    return _check
