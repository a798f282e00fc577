from pydantic import BaseModel, Field
from datetime import datetime

class CommentCreateIn(BaseModel):
    body: str = Field(max_length=20000)
    is_private: bool = False

class CommentOut(BaseModel):
    id: str
    ticket_id: str
    author_id: str
    body: str
    is_private: bool
    created_at: datetime | None = None

    class Config:
        from_attributes = True
