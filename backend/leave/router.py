"""Leave router — apply, decide, withdraw, discuss, balances.

All endpoints require authentication. Decision and allotment rules live
in the service so they hold for every caller.
"""


import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backend.auth.dependencies import Caller, get_caller
from backend.common.constants import LeaveStatus, LeaveType
from backend.common.pagination import PaginationParams
from backend.database import get_db
from backend.leave.schemas import (
    LeaveAllotmentUpdate,
    LeaveBalancesOut,
    LeaveRequestCreate,
    LeaveRequestOut,
    LeaveResponseCreate,
    LeaveResponseOut,
    LeaveStatusUpdate,
)
from backend.leave.service import LeaveService

router = APIRouter(prefix="", tags=["leave"])


# ── POST / ──────────────────────────────────────────────────────────

@router.post("", response_model=LeaveRequestOut, status_code=201)
async def apply_leave(
    body: LeaveRequestCreate,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    """Apply for leave. Checks balance and overlap, holds the days."""
    return await LeaveService.create_leave(db, caller, body)


# ── GET / ───────────────────────────────────────────────────────────

@router.get("")
async def list_leaves(
    status: Optional[LeaveStatus] = Query(None),
    leave_type: Optional[LeaveType] = Query(None),
    employee_id: Optional[uuid.UUID] = Query(None),
    pagination: PaginationParams = Depends(),
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    """Leave requests visible to the caller (own, team, or all)."""
    result = await LeaveService.list_leaves(
        db, caller, pagination,
        status=status, leave_type=leave_type, employee_id=employee_id,
    )
    return {
        "data": [LeaveRequestOut.model_validate(r) for r in result.data],
        "meta": result.meta,
    }


# ── GET /balances ───────────────────────────────────────────────────
# Registered before /{leave_id} so the literal path wins.

@router.get("/balances", response_model=LeaveBalancesOut)
async def get_balances(
    employee_id: Optional[uuid.UUID] = Query(None, description="Defaults to the caller"),
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_balances(db, caller, employee_id)


@router.put("/balances/{employee_id}", response_model=LeaveBalancesOut)
async def set_allotment(
    employee_id: uuid.UUID,
    body: LeaveAllotmentUpdate,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    """HR / super admin: set the days granted for one leave type."""
    return await LeaveService.set_allotment(db, caller, employee_id, body)


# ── /{leave_id} ─────────────────────────────────────────────────────

@router.get("/{leave_id}", response_model=LeaveRequestOut)
async def get_leave(
    leave_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_leave(db, caller, leave_id)


@router.put("/{leave_id}/status", response_model=LeaveRequestOut)
async def set_leave_status(
    leave_id: uuid.UUID,
    body: LeaveStatusUpdate,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    """Approve or reject. Managers are read-only."""
    return await LeaveService.set_leave_status(db, caller, leave_id, body)


@router.delete("/{leave_id}", status_code=204)
async def delete_leave(
    leave_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    """Withdraw a pending request; its days are returned."""
    await LeaveService.delete_leave(db, caller, leave_id)


# ── Responses ───────────────────────────────────────────────────────

@router.post("/{leave_id}/responses", response_model=LeaveResponseOut, status_code=201)
async def add_response(
    leave_id: uuid.UUID,
    body: LeaveResponseCreate,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.add_response(db, caller, leave_id, body.content)


@router.get("/{leave_id}/responses", response_model=list[LeaveResponseOut])
async def list_responses(
    leave_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.list_responses(db, caller, leave_id)
