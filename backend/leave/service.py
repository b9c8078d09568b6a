"""Leave service layer — applications, decisions, deletion, discussion.

Business logic:
  - Applying holds the whole inclusive span against the type's pool and
    marks every covered day as leave in attendance.
  - Only super admin, HR and admin decide; managers are read-only.
    HR and admin never decide their own leave; admin only inside their
    reporting subtree.
  - Valid decisions are approved or rejected. Rejecting gives the days
    back; re-approving a rejected request takes them again.
  - Pending requests can be deleted by their owner, HR or super admin;
    the days come back and the attendance rows the leave created go away.
  - Every decision appends a system note to the request's responses.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.auth.dependencies import Caller
from backend.auth.scope import AccessScopeResolver
from backend.common.audit import create_audit_entry, snapshot
from backend.common.constants import (
    MANAGER_TIER_ROLES,
    LeaveStatus,
    LeaveType,
    ResourceType,
    UserRole,
)
from backend.common.exceptions import (
    ConflictError,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from backend.common.pagination import PaginatedResponse, PaginationParams, paginate
from backend.core_hr.hierarchy import HierarchyResolver
from backend.core_hr.models import Employee
from backend.leave.ledger import LeaveBalanceLedger
from backend.leave.models import LeaveBalance, LeaveRequest, LeaveResponse
from backend.leave.schemas import (
    LeaveAllotmentUpdate,
    LeaveBalanceOut,
    LeaveBalancesOut,
    LeaveRequestCreate,
    LeaveStatusUpdate,
)
from backend.notifications.service import (
    notify_leave_created,
    notify_leave_response,
    notify_leave_status,
    recipients_with_roles,
)

logger = logging.getLogger(__name__)

# Roles that may approve / reject
_DECIDER_ROLES = frozenset({UserRole.super_admin, UserRole.hr, UserRole.admin})
# Roles that see and manage every leave request
_GLOBAL_LEAVE_ROLES = frozenset({UserRole.super_admin, UserRole.hr})
# Who hears about new requests
_REVIEWER_ROLES = (UserRole.hr, UserRole.super_admin, UserRole.admin)


_AUDITED_FIELDS = ("leave_type", "start_date", "end_date", "total_days", "status")


def _snapshot(request: LeaveRequest) -> dict:
    return snapshot(request, _AUDITED_FIELDS)


# ═════════════════════════════════════════════════════════════════════
# LeaveService
# ═════════════════════════════════════════════════════════════════════


class LeaveService:
    """Async leave operations: apply, decide, delete, discuss, balances."""

    # ── Helpers ─────────────────────────────────────────────────────

    @staticmethod
    async def _get_request(
        db: AsyncSession,
        leave_id: uuid.UUID,
    ) -> LeaveRequest:
        leave = await db.get(LeaveRequest, leave_id)
        if leave is None:
            raise NotFoundException("LeaveRequest", str(leave_id))
        return leave

    @staticmethod
    async def _get_employee(
        db: AsyncSession,
        employee_id: uuid.UUID,
    ) -> Employee:
        employee = await db.get(Employee, employee_id)
        if employee is None:
            raise NotFoundException("Employee", str(employee_id))
        return employee

    @staticmethod
    async def _can_discuss(
        db: AsyncSession,
        caller: Caller,
        leave: LeaveRequest,
    ) -> bool:
        """Owner, global roles, or a manager-tier caller whose team holds the owner."""
        if leave.employee_id == caller.id or caller.role in _GLOBAL_LEAVE_ROLES:
            return True
        if caller.role in MANAGER_TIER_ROLES:
            subtree = await HierarchyResolver.subtree_of(db, caller.id)
            return leave.employee_id in subtree
        return False

    @staticmethod
    def _add_response(
        db: AsyncSession,
        leave: LeaveRequest,
        caller: Caller,
        content: str,
        *,
        is_system_note: bool = False,
    ) -> LeaveResponse:
        response = LeaveResponse(
            author_id=caller.id,
            author_role=caller.role.value,
            content=content,
            is_system_note=is_system_note,
            created_at=datetime.now(timezone.utc),
        )
        leave.responses.append(response)
        db.add(response)
        return response

    # ── Apply ───────────────────────────────────────────────────────

    @staticmethod
    async def create_leave(
        db: AsyncSession,
        caller: Caller,
        data: LeaveRequestCreate,
    ) -> LeaveRequest:
        """Apply for leave: span, balance and overlap checked, days held."""

        employee = await LeaveService._get_employee(db, caller.id)
        span = await LeaveBalanceLedger.validate_new(
            db, employee.id, data.leave_type, data.start_date, data.end_date,
        )

        leave = LeaveRequest(
            employee_id=employee.id,
            leave_type=data.leave_type,
            start_date=data.start_date,
            end_date=data.end_date,
            total_days=float(span),
            reason=data.reason,
            status=LeaveStatus.pending,
            applied_at=datetime.now(timezone.utc),
            responses=[],
        )
        db.add(leave)
        await db.flush()

        await LeaveBalanceLedger.apply(db, employee, leave)
        await LeaveBalanceLedger.materialize_attendance(db, leave)

        await create_audit_entry(
            db,
            action="create",
            entity_type="leave_request",
            entity_id=leave.id,
            actor_id=caller.id,
            new_values=_snapshot(leave),
        )

        reviewers = await recipients_with_roles(db, _REVIEWER_ROLES, exclude=caller.id)
        notify_leave_created(leave, reviewers, session=db)
        return leave

    # ── Decide ──────────────────────────────────────────────────────

    @staticmethod
    async def set_leave_status(
        db: AsyncSession,
        caller: Caller,
        leave_id: uuid.UUID,
        data: LeaveStatusUpdate,
    ) -> LeaveRequest:
        """Approve or reject, moving balances for the transition."""

        if data.status == LeaveStatus.pending:
            raise ValidationException(
                {"status": ["A leave request can only be approved or rejected."]}
            )
        if caller.role not in _DECIDER_ROLES:
            raise ForbiddenException(
                "Managers have read-only access to leaves. Contact HR for approvals."
            )

        leave = await LeaveService._get_request(db, leave_id)

        if caller.role in (UserRole.hr, UserRole.admin) and leave.employee_id == caller.id:
            raise ForbiddenException("You cannot update the status of your own leave request.")
        if caller.role == UserRole.admin:
            subtree = await HierarchyResolver.subtree_of(db, caller.id)
            if leave.employee_id not in subtree:
                raise ForbiddenException("Admins can only manage leaves for their own team hierarchy.")

        old_status = leave.status
        new_status = data.status
        if old_status == new_status:
            if data.note:
                LeaveService._add_response(db, leave, caller, data.note)
                await db.flush()
            return leave

        employee = await LeaveService._get_employee(db, leave.employee_id)
        old_values = _snapshot(leave)
        await LeaveBalanceLedger.reconcile(db, employee, leave, old_status, new_status)
        if new_status == LeaveStatus.rejected:
            await LeaveBalanceLedger.remove_materialized_attendance(db, leave)
        elif old_status == LeaveStatus.rejected:
            await LeaveBalanceLedger.materialize_attendance(db, leave)

        leave.status = new_status
        leave.decided_by_id = caller.id
        leave.decided_at = datetime.now(timezone.utc)

        note = (
            f'Leave request status changed from "{old_status.value}" to '
            f'"{new_status.value}" by {caller.role.value}.'
        )
        if data.note:
            note = f"{note} Note: {data.note}"
        LeaveService._add_response(db, leave, caller, note, is_system_note=True)
        await db.flush()

        await create_audit_entry(
            db,
            action="approve" if new_status == LeaveStatus.approved else "reject",
            entity_type="leave_request",
            entity_id=leave.id,
            actor_id=caller.id,
            old_values=old_values,
            new_values=_snapshot(leave),
        )

        notify_leave_status(leave, session=db)
        return leave

    # ── Delete ──────────────────────────────────────────────────────

    @staticmethod
    async def delete_leave(
        db: AsyncSession,
        caller: Caller,
        leave_id: uuid.UUID,
    ) -> None:
        """Withdraw a pending request, refunding its days."""

        leave = await LeaveService._get_request(db, leave_id)
        if leave.employee_id != caller.id and caller.role not in _GLOBAL_LEAVE_ROLES:
            raise ForbiddenException("You don't have permission to delete this leave request.")
        if leave.status != LeaveStatus.pending:
            raise ConflictError(
                "Cannot delete leave request after it has been processed.", field="status",
            )

        employee = await LeaveService._get_employee(db, leave.employee_id)
        await LeaveBalanceLedger.reverse(db, employee, leave)
        await LeaveBalanceLedger.remove_materialized_attendance(db, leave)
        await LeaveBalanceLedger.remove_entry(db, leave)

        await create_audit_entry(
            db,
            action="delete",
            entity_type="leave_request",
            entity_id=leave.id,
            actor_id=caller.id,
            old_values=_snapshot(leave),
        )
        await db.delete(leave)
        await db.flush()

    # ── Reads ───────────────────────────────────────────────────────

    @staticmethod
    async def get_leave(
        db: AsyncSession,
        caller: Caller,
        leave_id: uuid.UUID,
    ) -> LeaveRequest:
        leave = await LeaveService._get_request(db, leave_id)
        scope = await AccessScopeResolver.scope_for(db, caller, ResourceType.leave)
        if not scope.allows(leave):
            raise ForbiddenException("You don't have permission to view this leave request.")
        return leave

    @staticmethod
    async def list_leaves(
        db: AsyncSession,
        caller: Caller,
        pagination: PaginationParams,
        *,
        status: Optional[LeaveStatus] = None,
        leave_type: Optional[LeaveType] = None,
        employee_id: Optional[uuid.UUID] = None,
    ) -> PaginatedResponse:
        scope = await AccessScopeResolver.scope_for(db, caller, ResourceType.leave)
        query = (
            select(LeaveRequest)
            .where(scope.to_clause(LeaveRequest))
            .order_by(LeaveRequest.applied_at.desc())
        )
        if status is not None:
            query = query.where(LeaveRequest.status == status)
        if leave_type is not None:
            query = query.where(LeaveRequest.leave_type == leave_type)
        if employee_id is not None:
            query = query.where(LeaveRequest.employee_id == employee_id)
        return await paginate(db, query, pagination, model=LeaveRequest)

    # ── Responses ───────────────────────────────────────────────────

    @staticmethod
    async def add_response(
        db: AsyncSession,
        caller: Caller,
        leave_id: uuid.UUID,
        content: str,
    ) -> LeaveResponse:
        leave = await LeaveService._get_request(db, leave_id)
        if not await LeaveService._can_discuss(db, caller, leave):
            raise ForbiddenException("You don't have permission to respond to this leave request.")

        response = LeaveService._add_response(db, leave, caller, content.strip())
        await db.flush()

        participants = {leave.employee_id}
        participants.update(r.author_id for r in leave.responses if r.author_id)
        participants.discard(caller.id)
        notify_leave_response(leave, participants, session=db)
        return response

    @staticmethod
    async def list_responses(
        db: AsyncSession,
        caller: Caller,
        leave_id: uuid.UUID,
    ) -> list[LeaveResponse]:
        leave = await LeaveService._get_request(db, leave_id)
        if not await LeaveService._can_discuss(db, caller, leave):
            raise ForbiddenException("You don't have permission to view these responses.")
        return list(leave.responses)

    # ── Balances ────────────────────────────────────────────────────

    @staticmethod
    async def get_balances(
        db: AsyncSession,
        caller: Caller,
        employee_id: Optional[uuid.UUID] = None,
    ) -> LeaveBalancesOut:
        target_id = employee_id or caller.id
        if target_id != caller.id:
            scope = await AccessScopeResolver.scope_for(db, caller, ResourceType.leave)
            if not scope.allows_id(target_id):
                raise ForbiddenException("You cannot view this employee's balances.")

        employee = await LeaveService._get_employee(db, target_id)
        pools = (
            await db.execute(
                select(LeaveBalance)
                .where(LeaveBalance.employee_id == target_id)
                .order_by(LeaveBalance.leave_type)
            )
        ).scalars().all()
        return LeaveBalancesOut(
            employee_id=employee.id,
            booked_leaves=employee.booked_leaves or 0,
            available_leaves=employee.available_leaves or 0,
            balances=[LeaveBalanceOut.model_validate(p) for p in pools],
        )

    @staticmethod
    async def set_allotment(
        db: AsyncSession,
        caller: Caller,
        employee_id: uuid.UUID,
        data: LeaveAllotmentUpdate,
    ) -> LeaveBalancesOut:
        """Grant days of a type; the difference flows into balance and available."""

        if caller.role not in _GLOBAL_LEAVE_ROLES:
            raise ForbiddenException("Only HR or a super admin can set leave allotments.")

        employee = await LeaveService._get_employee(db, employee_id)
        pool = await LeaveBalanceLedger.get_pool(db, employee_id, data.leave_type)
        if pool is None:
            pool = LeaveBalance(
                employee_id=employee_id, leave_type=data.leave_type, allotted=0, balance=0,
            )
            db.add(pool)

        old_values = {"allotted": pool.allotted or 0, "balance": pool.balance or 0}
        delta = data.allotted - (pool.allotted or 0)
        if (pool.balance or 0) + delta < 0:
            raise ValidationException(
                {"allotted": ["Allotment cannot be lower than the days already booked."]}
            )
        pool.allotted = data.allotted
        pool.balance = (pool.balance or 0) + delta
        employee.available_leaves = (employee.available_leaves or 0) + delta
        await db.flush()

        await create_audit_entry(
            db,
            action="allot",
            entity_type="leave_balance",
            entity_id=pool.id,
            actor_id=caller.id,
            old_values=old_values,
            new_values={"allotted": pool.allotted, "balance": pool.balance},
        )
        return await LeaveService.get_balances(db, caller, employee_id)
