from pydantic import BaseModel
from datetime import datetime

class HistoryOut(BaseModel):
    id: str
    seq: int
    ticket_id: str
    actor_id: str
    action: str
    description: str | None
    old_value: str | None
    new_value: str | None
    created_at: datetime | None = None

    class Config:
        from_attributes = True
