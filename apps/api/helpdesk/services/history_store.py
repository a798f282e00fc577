from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import utcnow
from ..models.history import TicketHistory

ACTION_CREATED = "created"
ACTION_STATUS_CHANGE = "status_change"
ACTION_ASSIGNMENT_CHANGE = "assignment_change"
ACTION_PRIORITY_CHANGE = "priority_change"
ACTION_RESOLVED = "resolved"


def record_history(
    session: AsyncSession,
    ticket_id: str,
    action: str,
    description: str | None,
    old_value: str | None,
    new_value: str | None,
    actor_id: str,
    now: datetime | None = None,
) -> TicketHistory:
    """Append one entry within the caller's transaction.

    Rapid successive edits each get their own entry; nothing is merged.
    """
    entry = TicketHistory(
        ticket_id=ticket_id,
        action=action,
        description=description,
        old_value=old_value,
        new_value=new_value,
        actor_id=actor_id,
        created_at=now or utcnow(),
    )
    session.add(entry)
    return entry


async def list_history(session: AsyncSession, ticket_id: str) -> list[TicketHistory]:
    stmt = (
        select(TicketHistory)
        .where(TicketHistory.ticket_id == ticket_id)
        .order_by(TicketHistory.created_at.asc(), TicketHistory.seq.asc())
    )
    return list((await session.scalars(stmt)).all())
