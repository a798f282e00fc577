from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import AccessDenied, NotFound
from ..core.roles import Actor
from ..models.ticket import Ticket


async def get_ticket_or_404(session: AsyncSession, ticket_id: str) -> Ticket:
    t = await session.get(Ticket, ticket_id)
    if not t:
        raise NotFound("Ticket not found")
    return t


def assert_access(actor: Actor, ticket: Ticket) -> None:
    if not actor.can_access_company(ticket.company_id):
        raise AccessDenied()


async def get_ticket_for_actor(session: AsyncSession, actor: Actor, ticket_id: str) -> Ticket:
    ticket = await get_ticket_or_404(session, ticket_id)
    assert_access(actor, ticket)
    return ticket
