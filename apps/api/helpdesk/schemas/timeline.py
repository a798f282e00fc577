from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field


class HistoryEntry(BaseModel):
    kind: Literal["history"] = "history"
    id: str
    seq: int = 0
    ticket_id: str
    actor_id: str
    action: str
    description: str | None = None
    old_value: str | None = None
    new_value: str | None = None
    created_at: datetime


class CommentEntry(BaseModel):
    kind: Literal["comment"] = "comment"
    id: str
    ticket_id: str
    author_id: str
    body: str
    is_private: bool = False
    created_at: datetime


TimelineEntry = Annotated[Union[HistoryEntry, CommentEntry], Field(discriminator="kind")]


class TimelineOut(BaseModel):
    ticket_id: str
    entries: list[TimelineEntry]
    total: int
    comment_count: int
    history_count: int
