"""Core HR router — employee directory, teams and reporting lines.

Routes:
    /employees                  — Scoped employee list
    /employees/{id}/team        — Direct reports and full subtree
    /employees/{id}/reports-to  — Change reporting manager (super admin)
"""


import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backend.auth.dependencies import Caller, get_caller, require_role
from backend.common.constants import UserRole
from backend.common.pagination import PaginationParams
from backend.core_hr.schemas import EmployeeSummary, ReportsToUpdate, TeamResponse
from backend.core_hr.service import EmployeeService
from backend.database import get_db


employees_router = APIRouter(prefix="", tags=["employees"])


# ── GET /employees — List employees ─────────────────────────────────

@employees_router.get("")
async def list_employees(
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_caller),
    pagination: PaginationParams = Depends(),
    search: Optional[str] = Query(None, description="Search by name, email, or employee code"),
    is_active: Optional[bool] = Query(None),
):
    """List the employees the caller may see.

    - **super_admin / hr**: everyone
    - **manager / admin**: self plus reporting subtree
    - **employee**: self only
    """
    result = await EmployeeService.list_employees(
        db, caller, pagination, search=search, is_active=is_active,
    )
    return {
        "data": [
            EmployeeSummary.model_validate(emp).model_dump(mode="json")
            for emp in result.data
        ],
        "meta": result.meta.model_dump(),
    }


# ── GET /employees/{id}/team ────────────────────────────────────────

@employees_router.get("/{employee_id}/team", response_model=TeamResponse)
async def get_team(
    employee_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(get_caller),
):
    return await EmployeeService.get_team(db, caller, employee_id)


# ── PUT /employees/{id}/reports-to ──────────────────────────────────

@employees_router.put("/{employee_id}/reports-to", response_model=EmployeeSummary)
async def set_reports_to(
    employee_id: uuid.UUID,
    body: ReportsToUpdate,
    db: AsyncSession = Depends(get_db),
    caller: Caller = Depends(require_role(UserRole.super_admin)),
):
    """Move an employee under a new manager. Cycles are refused."""
    return await EmployeeService.set_reports_to(db, caller, employee_id, body.reports_to_id)
