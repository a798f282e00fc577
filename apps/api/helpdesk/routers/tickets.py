from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.current_user import get_current_actor
from ..core.errors import AccessDenied
from ..core.roles import Actor, Capability
from ..db import get_session
from ..schemas.history import HistoryOut
from ..schemas.ticket import (
    TicketAssignIn,
    TicketCreateIn,
    TicketOut,
    TicketPriorityUpdateIn,
    TicketStatusUpdateIn,
)
from ..schemas.timeline import TimelineOut
from ..services import ticket_mutations
from ..services.history_store import list_history
from ..services.mutation_feed import MutationFeed
from ..services.ticket_access import get_ticket_for_actor
from ..services.visibility import load_timeline
from .deps import get_mutation_feed, publish_mutation

router = APIRouter(prefix="/tickets", tags=["tickets"])


@router.post("", response_model=TicketOut)
async def create_ticket(
    payload: TicketCreateIn,
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(get_current_actor),
    feed: MutationFeed = Depends(get_mutation_feed),
):
    ticket, mutation = await ticket_mutations.create_ticket(
        session,
        actor,
        title=payload.title,
        description=payload.description,
        priority=payload.priority,
        company_id=payload.company_id,
        assigned_to=payload.assigned_to,
    )
    await publish_mutation(feed, mutation)
    return TicketOut.model_validate(ticket)


@router.get("/{ticket_id}", response_model=TicketOut)
async def get_ticket(
    ticket_id: str,
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(get_current_actor),
):
    ticket = await get_ticket_for_actor(session, actor, ticket_id)
    return TicketOut.model_validate(ticket)


@router.patch("/{ticket_id}/status", response_model=TicketOut)
async def update_status(
    ticket_id: str,
    payload: TicketStatusUpdateIn,
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(get_current_actor),
    feed: MutationFeed = Depends(get_mutation_feed),
):
    ticket, mutation = await ticket_mutations.change_status(session, actor, ticket_id, payload.status)
    await publish_mutation(feed, mutation)
    return TicketOut.model_validate(ticket)


@router.patch("/{ticket_id}/assign", response_model=TicketOut)
async def assign_ticket(
    ticket_id: str,
    payload: TicketAssignIn,
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(get_current_actor),
    feed: MutationFeed = Depends(get_mutation_feed),
):
    ticket, mutation = await ticket_mutations.assign_ticket(session, actor, ticket_id, payload.assigned_to)
    await publish_mutation(feed, mutation)
    return TicketOut.model_validate(ticket)


@router.patch("/{ticket_id}/priority", response_model=TicketOut)
async def update_priority(
    ticket_id: str,
    payload: TicketPriorityUpdateIn,
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(get_current_actor),
    feed: MutationFeed = Depends(get_mutation_feed),
):
    # Priority is not a notified field; the mutation is published for completeness.
    ticket, mutation = await ticket_mutations.change_priority(session, actor, ticket_id, payload.priority)
    await publish_mutation(feed, mutation)
    return TicketOut.model_validate(ticket)


@router.get("/{ticket_id}/timeline", response_model=TimelineOut)
async def get_timeline(
    ticket_id: str,
    limit: int | None = Query(default=None, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(get_current_actor),
):
    view = await load_timeline(session, actor, ticket_id)
    return TimelineOut(
        ticket_id=view.ticket.id,
        entries=view.page(limit, offset),
        total=len(view.entries),
        comment_count=view.comment_count,
        history_count=view.history_count,
    )


@router.get("/{ticket_id}/history", response_model=list[HistoryOut])
async def get_history(
    ticket_id: str,
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(get_current_actor),
):
    ticket = await get_ticket_for_actor(session, actor, ticket_id)
    if not actor.can(Capability.VIEW_HISTORY):
        raise AccessDenied()
    return [HistoryOut.model_validate(h) for h in await list_history(session, ticket.id)]
