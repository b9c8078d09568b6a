"""Helpdesk Pydantic v2 schemas — request/response validation."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class TicketOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    ticket_number: Optional[str] = None
    title: str
    description: Optional[str] = None
    category: Optional[str] = None
    status: str = "open"
    priority: str = "medium"
    created_by_id: uuid.UUID
    assigned_to_id: Optional[uuid.UUID] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TicketCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    description: Optional[str] = Field(None, max_length=5000)
    category: Optional[str] = Field(None, max_length=200)
    priority: str = Field("medium", pattern="^(low|medium|high|critical|urgent)$")
    assigned_to_id: Optional[uuid.UUID] = None
