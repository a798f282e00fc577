"""Role-aware read path for a ticket's timeline."""
from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.roles import Actor, Capability
from ..models.comment import TicketComment
from ..models.ticket import Ticket
from ..schemas.timeline import TimelineEntry
from .comment_store import list_comments
from .history_store import list_history
from .ticket_access import get_ticket_for_actor
from .timeline import merge


@dataclass
class TimelineView:
    ticket: Ticket
    entries: list[TimelineEntry]
    comment_count: int
    history_count: int

    def page(self, limit: int | None = None, offset: int = 0) -> list[TimelineEntry]:
        if limit is None:
            return self.entries[offset:]
        return self.entries[offset:offset + limit]


def visible_comments(actor: Actor, comments: list[TicketComment]) -> list[TicketComment]:
    if actor.can(Capability.VIEW_PRIVATE):
        return list(comments)
    return [c for c in comments if not c.is_private]


async def load_timeline(session: AsyncSession, actor: Actor, ticket_id: str) -> TimelineView:
    ticket = await get_ticket_for_actor(session, actor, ticket_id)

    history = await list_history(session, ticket.id) if actor.can(Capability.VIEW_HISTORY) else []
    comments = visible_comments(actor, await list_comments(session, ticket.id))

    return TimelineView(
        ticket=ticket,
        entries=merge(history, comments),
        comment_count=len(comments),
        history_count=len(history),
    )


async def visible_timeline(session: AsyncSession, actor: Actor, ticket_id: str) -> list[TimelineEntry]:
    view = await load_timeline(session, actor, ticket_id)
    return view.entries
