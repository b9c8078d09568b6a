"""Core HR service layer — directory listing, teams, reporting lines.

Uses:
  - ``AccessScopeResolver`` (``user_list``) for who may see whom
  - ``HierarchyResolver`` for teams and the cycle guard
  - ``create_audit_entry`` for reporting-line changes
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.auth.dependencies import Caller
from backend.auth.scope import AccessScopeResolver
from backend.common.audit import create_audit_entry
from backend.common.constants import ResourceType, UserRole
from backend.common.exceptions import ForbiddenException, NotFoundException
from backend.common.pagination import PaginatedResponse, PaginationParams, paginate
from backend.core_hr.hierarchy import HierarchyResolver
from backend.core_hr.models import Employee
from backend.core_hr.schemas import EmployeeSummary, TeamResponse

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════
# EmployeeService
# ═════════════════════════════════════════════════════════════════════


class EmployeeService:
    """Scoped reads over the directory and reporting-line edits."""

    # ── List (paginated, searchable, scoped) ────────────────────────

    @staticmethod
    async def list_employees(
        db: AsyncSession,
        caller: Caller,
        pagination: PaginationParams,
        *,
        search: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> PaginatedResponse:
        """Employees in the caller's ``user_list`` scope."""

        scope = await AccessScopeResolver.scope_for(db, caller, ResourceType.user_list)
        query = (
            select(Employee)
            .where(scope.to_clause(Employee))
            .order_by(Employee.first_name, Employee.last_name)
        )
        if is_active is not None:
            query = query.where(Employee.is_active.is_(is_active))
        if search and search.strip():
            pattern = f"%{search.strip()}%"
            query = query.where(
                or_(
                    Employee.first_name.ilike(pattern),
                    Employee.last_name.ilike(pattern),
                    Employee.email.ilike(pattern),
                    Employee.employee_code.ilike(pattern),
                )
            )
        return await paginate(db, query, pagination, model=Employee)

    # ── Team ────────────────────────────────────────────────────────

    @staticmethod
    async def get_team(
        db: AsyncSession,
        caller: Caller,
        employee_id: uuid.UUID,
    ) -> TeamResponse:
        """Direct reports and full subtree of *employee_id*."""

        scope = await AccessScopeResolver.scope_for(db, caller, ResourceType.user_list)
        if not scope.allows_id(employee_id):
            raise ForbiddenException("You cannot view this employee's team.")

        manager = await db.get(Employee, employee_id)
        if manager is None:
            raise NotFoundException("Employee", str(employee_id))

        direct = await HierarchyResolver.direct_reports(db, employee_id)
        subtree = await HierarchyResolver.subtree_of(db, employee_id)
        subtree.discard(employee_id)

        members: list[Employee] = []
        if subtree:
            result = await db.execute(
                select(Employee)
                .where(Employee.id.in_(list(subtree)))
                .order_by(Employee.first_name, Employee.last_name)
            )
            members = list(result.scalars().all())

        return TeamResponse(
            manager=EmployeeSummary.model_validate(manager),
            direct_reports=[EmployeeSummary.model_validate(e) for e in direct],
            subtree_size=len(subtree),
            members=[EmployeeSummary.model_validate(e) for e in members],
        )

    # ── Reporting line ──────────────────────────────────────────────

    @staticmethod
    async def set_reports_to(
        db: AsyncSession,
        caller: Caller,
        employee_id: uuid.UUID,
        manager_id: Optional[uuid.UUID],
    ) -> Employee:
        """Re-parent an employee. Super admin only; cycles are refused."""

        if caller.role != UserRole.super_admin:
            raise ForbiddenException("Only a super admin can change reporting lines.")

        employee = await db.get(Employee, employee_id)
        if employee is None:
            raise NotFoundException("Employee", str(employee_id))
        if manager_id is not None and await db.get(Employee, manager_id) is None:
            raise NotFoundException("Employee", str(manager_id))

        await HierarchyResolver.assert_can_report_to(db, employee_id, manager_id)

        old_manager = employee.reports_to_id
        employee.reports_to_id = manager_id
        await db.flush()

        await create_audit_entry(
            db,
            action="update",
            entity_type="employee",
            entity_id=employee.id,
            actor_id=caller.id,
            old_values={"reports_to_id": str(old_manager) if old_manager else None},
            new_values={"reports_to_id": str(manager_id) if manager_id else None},
        )
        logger.info(
            "Reporting line of %s changed from %s to %s by %s",
            employee.id, old_manager, manager_id, caller.id,
        )
        return employee
