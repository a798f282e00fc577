"""Append-only per-ticket comments.

The store never publishes change events; callers that want watchers to
see a new comment publish it to the mutation feed themselves.
"""
from __future__ import annotations

from datetime import datetime
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import utcnow
from ..core.errors import AccessDenied, InvalidInput
from ..core.roles import Actor, Capability, Role
from ..models.comment import TicketComment
from ..models.company import Company
from ..models.ticket import Ticket
from .ticket_access import get_ticket_for_actor

logger = logging.getLogger(__name__)


async def can_comment(session: AsyncSession, actor: Actor, ticket: Ticket) -> bool:
    if not actor.can(Capability.COMMENT):
        return False
    if not actor.can_access_company(ticket.company_id):
        return False
    if actor.role_tag is not Role.CLIENT_USER:
        return True
    if ticket.created_by != actor.id:
        return False
    company = await session.get(Company, ticket.company_id)
    return bool(company and company.allow_client_comments)


async def append_comment(
    session: AsyncSession,
    actor: Actor,
    ticket_id: str,
    body: str,
    is_private: bool = False,
    now: datetime | None = None,
) -> TicketComment:
    text = (body or "").strip()
    if not text:
        raise InvalidInput("Comment body is required")

    ticket = await get_ticket_for_actor(session, actor, ticket_id)
    if not await can_comment(session, actor, ticket):
        raise AccessDenied()
    if is_private and not actor.can(Capability.VIEW_PRIVATE):
        raise AccessDenied()

    comment = TicketComment(
        ticket_id=ticket.id,
        author_id=actor.id,
        body=text,
        is_private=is_private,
        created_at=now or utcnow(),
    )
    session.add(comment)
    await session.commit()
    await session.refresh(comment)
    logger.info("comment added ticket_id=%s comment_id=%s private=%s", ticket.id, comment.id, is_private)
    return comment


async def list_comments(session: AsyncSession, ticket_id: str) -> list[TicketComment]:
    stmt = (
        select(TicketComment)
        .where(TicketComment.ticket_id == ticket_id)
        .order_by(TicketComment.created_at.asc(), TicketComment.id.asc())
    )
    return list((await session.scalars(stmt)).all())
