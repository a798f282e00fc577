from pydantic import BaseModel, Field
from datetime import datetime

from .ticket import SharedTicketOut
from .timeline import TimelineOut

class ShareCreateIn(BaseModel):
    expires_in_days: int = 7
    password: str | None = Field(default=None, max_length=200)

class ShareIssuedOut(BaseModel):
    id: str
    ticket_id: str
    token: str
    url: str
    expires_at: datetime
    password_protected: bool

class ShareOut(BaseModel):
    id: str
    ticket_id: str
    issued_by: str
    issued_at: datetime | None = None
    expires_at: datetime
    password_protected: bool
    revoked: bool
    active: bool

class SharedTicketView(BaseModel):
    ticket: SharedTicketOut
    timeline: TimelineOut
