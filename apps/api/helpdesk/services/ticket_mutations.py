"""Ticket field changes: the only writer of the audit history.

Each operation commits the ticket update together with its history
entries and returns the ``RowMutation`` the caller should publish.
"""
from __future__ import annotations

from datetime import datetime
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import utcnow
from ..core.errors import AccessDenied, InvalidInput
from ..core.roles import Actor, Capability
from ..models.ticket import ALLOWED_PRIORITY, ALLOWED_STATUS, Ticket
from ..models.user import User
from .history_store import (
    ACTION_ASSIGNMENT_CHANGE,
    ACTION_CREATED,
    ACTION_PRIORITY_CHANGE,
    ACTION_RESOLVED,
    ACTION_STATUS_CHANGE,
    record_history,
)
from .mutation_feed import INSERT, TICKETS, UPDATE, RowMutation
from .ticket_access import get_ticket_for_actor

logger = logging.getLogger(__name__)


def _require_edit(actor: Actor) -> None:
    if not actor.can(Capability.EDIT_TICKET):
        raise AccessDenied()


async def _load_assignee(session: AsyncSession, user_id: str, company_id: str) -> User:
    user = await session.get(User, user_id)
    if not user or not user.active or user.company_id != company_id:
        raise InvalidInput("Assignee not found")
    if not Actor(id=user.id, role=user.role, company_id=user.company_id).can(Capability.EDIT_TICKET):
        raise InvalidInput("Assignee must be a technician or administrator")
    return user


async def create_ticket(
    session: AsyncSession,
    actor: Actor,
    title: str,
    description: str = "",
    priority: str = "medium",
    company_id: str | None = None,
    assigned_to: str | None = None,
    now: datetime | None = None,
) -> tuple[Ticket, RowMutation]:
    title = (title or "").strip()
    if not title:
        raise InvalidInput("Title is required")
    if priority not in ALLOWED_PRIORITY:
        raise InvalidInput(f"Invalid priority: {priority}")

    target_company = company_id or actor.company_id
    if not actor.can_access_company(target_company):
        raise AccessDenied()
    if assigned_to is not None:
        _require_edit(actor)
        await _load_assignee(session, assigned_to, target_company)

    ts = now or utcnow()
    t = Ticket(
        company_id=target_company,
        title=title,
        description=description or "",
        priority=priority,
        status="open",
        created_by=actor.id,
        assigned_to=assigned_to,
        created_at=ts,
        updated_at=ts,
    )
    session.add(t)
    await session.flush()
    record_history(session, t.id, ACTION_CREATED, "Ticket created", None, title, actor.id, now=ts)
    await session.commit()
    await session.refresh(t)
    logger.info("ticket created ticket_id=%s company_id=%s", t.id, t.company_id)
    return t, RowMutation(table=TICKETS, event_type=INSERT, before=None, after=t.feed_row(), actor_id=actor.id)


async def change_status(
    session: AsyncSession,
    actor: Actor,
    ticket_id: str,
    status: str,
    now: datetime | None = None,
) -> tuple[Ticket, RowMutation | None]:
    if status not in ALLOWED_STATUS:
        raise InvalidInput(f"Invalid status: {status}")
    ticket = await get_ticket_for_actor(session, actor, ticket_id)
    _require_edit(actor)

    old = ticket.status
    if old == status:
        return ticket, None

    ts = now or utcnow()
    before = ticket.feed_row()
    ticket.status = status
    ticket.updated_at = ts
    record_history(session, ticket.id, ACTION_STATUS_CHANGE, f"Status changed: {old} -> {status}", old, status, actor.id, now=ts)
    if status == "resolved":
        ticket.resolved_at = ts
        record_history(session, ticket.id, ACTION_RESOLVED, "Ticket resolved", None, ts.isoformat(), actor.id, now=ts)
    elif old == "resolved":
        ticket.resolved_at = None
    after = ticket.feed_row()
    await session.commit()
    return ticket, RowMutation(table=TICKETS, event_type=UPDATE, before=before, after=after, actor_id=actor.id)


async def assign_ticket(
    session: AsyncSession,
    actor: Actor,
    ticket_id: str,
    assigned_to: str | None,
    now: datetime | None = None,
) -> tuple[Ticket, RowMutation | None]:
    ticket = await get_ticket_for_actor(session, actor, ticket_id)
    _require_edit(actor)

    old = ticket.assigned_to
    if old == assigned_to:
        return ticket, None
    if assigned_to is not None:
        await _load_assignee(session, assigned_to, ticket.company_id)

    ts = now or utcnow()
    before = ticket.feed_row()
    ticket.assigned_to = assigned_to
    ticket.updated_at = ts
    record_history(session, ticket.id, ACTION_ASSIGNMENT_CHANGE, "Assignee changed", old, assigned_to, actor.id, now=ts)
    after = ticket.feed_row()
    await session.commit()
    return ticket, RowMutation(table=TICKETS, event_type=UPDATE, before=before, after=after, actor_id=actor.id)


async def change_priority(
    session: AsyncSession,
    actor: Actor,
    ticket_id: str,
    priority: str,
    now: datetime | None = None,
) -> tuple[Ticket, RowMutation | None]:
    if priority not in ALLOWED_PRIORITY:
        raise InvalidInput(f"Invalid priority: {priority}")
    ticket = await get_ticket_for_actor(session, actor, ticket_id)
    _require_edit(actor)

    old = ticket.priority
    if old == priority:
        return ticket, None

    ts = now or utcnow()
    before = ticket.feed_row()
    ticket.priority = priority
    ticket.updated_at = ts
    record_history(session, ticket.id, ACTION_PRIORITY_CHANGE, f"Priority changed: {old} -> {priority}", old, priority, actor.id, now=ts)
    after = ticket.feed_row()
    await session.commit()
    return ticket, RowMutation(table=TICKETS, event_type=UPDATE, before=before, after=after, actor_id=actor.id)
