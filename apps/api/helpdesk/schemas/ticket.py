from pydantic import BaseModel, Field
from datetime import datetime
from typing import Literal

Priority = Literal["low", "medium", "high", "urgent"]
Status = Literal["open", "in_progress", "resolved", "closed"]

class TicketCreateIn(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str = ""
    priority: Priority = "medium"
    company_id: str | None = None  # system_owner only
    assigned_to: str | None = None

class TicketStatusUpdateIn(BaseModel):
    status: Status

class TicketAssignIn(BaseModel):
    assigned_to: str | None = None

class TicketPriorityUpdateIn(BaseModel):
    priority: Priority

class TicketOut(BaseModel):
    id: str
    company_id: str
    title: str
    description: str
    status: str
    priority: str
    created_by: str
    assigned_to: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    resolved_at: datetime | None = None

    class Config:
        from_attributes = True

class SharedTicketOut(BaseModel):
    id: str
    title: str
    description: str
    status: str
    priority: str
    created_at: datetime | None = None

    class Config:
        from_attributes = True
