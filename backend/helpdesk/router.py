"""Helpdesk router — raise and list tickets.

All endpoints require authentication. HR has no ticket visibility;
technicians see tickets assigned to or raised by them.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backend.auth.dependencies import Caller, get_caller
from backend.common.pagination import PaginationParams
from backend.database import get_db
from backend.helpdesk.schemas import TicketCreate, TicketOut
from backend.helpdesk.service import HelpdeskService

router = APIRouter(prefix="", tags=["helpdesk"])


# ── POST /tickets ────────────────────────────────────────────────────

@router.post("/tickets", response_model=TicketOut, status_code=201)
async def create_ticket(
    body: TicketCreate,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    """Create a new helpdesk ticket."""
    return await HelpdeskService.create_ticket(db, caller, body)


# ── GET /tickets ─────────────────────────────────────────────────────

@router.get("/tickets")
async def list_tickets(
    status: Optional[str] = Query(None),
    pagination: PaginationParams = Depends(),
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    """List the tickets the caller may see."""
    result = await HelpdeskService.list_tickets(db, caller, pagination, status=status)
    return {
        "data": [TicketOut.model_validate(t).model_dump(mode="json") for t in result.data],
        "meta": result.meta.model_dump(),
    }


# ── GET /tickets/{id} ────────────────────────────────────────────────

@router.get("/tickets/{ticket_id}", response_model=TicketOut)
async def get_ticket(
    ticket_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    return await HelpdeskService.get_ticket(db, caller, ticket_id)
