"""Helpdesk service layer — raising and listing tickets."""

from __future__ import annotations

import uuid
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.auth.dependencies import Caller
from backend.auth.scope import AccessScopeResolver
from backend.common.constants import ResourceType
from backend.common.exceptions import ForbiddenException, NotFoundException
from backend.common.pagination import PaginatedResponse, PaginationParams, paginate
from backend.core_hr.models import Employee
from backend.helpdesk.models import HelpdeskTicket
from backend.helpdesk.schemas import TicketCreate


class HelpdeskService:
    """Business logic for helpdesk operations."""

    @staticmethod
    async def create_ticket(
        db: AsyncSession,
        caller: Caller,
        data: TicketCreate,
    ) -> HelpdeskTicket:
        """Raise a ticket on behalf of the caller."""
        if data.assigned_to_id is not None and await db.get(Employee, data.assigned_to_id) is None:
            raise NotFoundException("Employee", str(data.assigned_to_id))

        count_stmt = select(func.count()).select_from(HelpdeskTicket)
        total = (await db.execute(count_stmt)).scalar() or 0

        ticket = HelpdeskTicket(
            ticket_number=f"HD-{total + 1:05d}",
            title=data.title,
            description=data.description,
            category=data.category,
            status="open",
            priority=data.priority,
            created_by_id=caller.id,
            assigned_to_id=data.assigned_to_id,
        )
        db.add(ticket)
        await db.flush()
        return ticket

    @staticmethod
    async def get_ticket(
        db: AsyncSession,
        caller: Caller,
        ticket_id: uuid.UUID,
    ) -> HelpdeskTicket:
        ticket = await db.get(HelpdeskTicket, ticket_id)
        if ticket is None:
            raise NotFoundException("HelpdeskTicket", str(ticket_id))
        scope = await AccessScopeResolver.scope_for(db, caller, ResourceType.ticket)
        if not scope.allows(ticket):
            raise ForbiddenException("You cannot view this ticket.")
        return ticket

    @staticmethod
    async def list_tickets(
        db: AsyncSession,
        caller: Caller,
        pagination: PaginationParams,
        *,
        status: Optional[str] = None,
    ) -> PaginatedResponse:
        """Tickets in the caller's ``ticket`` scope, newest first."""
        scope = await AccessScopeResolver.scope_for(db, caller, ResourceType.ticket)
        stmt = (
            select(HelpdeskTicket)
            .where(scope.to_clause(HelpdeskTicket))
            .order_by(HelpdeskTicket.created_at.desc())
        )
        if status:
            stmt = stmt.where(HelpdeskTicket.status == status)
        return await paginate(db, stmt, pagination, model=HelpdeskTicket)
