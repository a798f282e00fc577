"""Public, token-authenticated read of a single ticket."""
import logging

from fastapi import APIRouter, Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.roles import share_actor
from ..db import get_session
from ..schemas.share import SharedTicketView
from ..schemas.ticket import SharedTicketOut
from ..schemas.timeline import TimelineOut
from ..services.share_tokens import resolve_share
from ..services.ticket_access import get_ticket_or_404
from ..services.visibility import load_timeline

logger = logging.getLogger(__name__)

router = APIRouter(tags=["shared"])


@router.get("/shared/tickets/{token}", response_model=SharedTicketView)
async def view_shared_ticket(
    token: str,
    x_share_password: str | None = Header(default=None),
    session: AsyncSession = Depends(get_session),
):
    share = await resolve_share(session, token, x_share_password)
    ticket = await get_ticket_or_404(session, share.ticket_id)

    # A share link sees what the ticket's client would see.
    actor = share_actor(share.id, ticket.company_id)
    view = await load_timeline(session, actor, ticket.id)
    logger.info("shared ticket viewed share_id=%s ticket_id=%s", share.id, ticket.id)
    return SharedTicketView(
        ticket=SharedTicketOut.model_validate(ticket),
        timeline=TimelineOut(
            ticket_id=ticket.id,
            entries=view.entries,
            total=len(view.entries),
            comment_count=view.comment_count,
            history_count=view.history_count,
        ),
    )
