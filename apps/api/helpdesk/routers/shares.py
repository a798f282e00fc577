from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import utcnow
from ..core.current_user import get_current_actor
from ..core.roles import Actor
from ..db import get_session
from ..models.share import TicketShare
from ..schemas.share import ShareCreateIn, ShareIssuedOut, ShareOut
from ..services.share_tokens import (
    is_active,
    issue_share_link,
    list_share_links,
    revoke_share_link,
    share_url,
)

router = APIRouter(tags=["shares"])


def serialize_share(share: TicketShare) -> ShareOut:
    return ShareOut(
        id=share.id,
        ticket_id=share.ticket_id,
        issued_by=share.issued_by,
        issued_at=share.issued_at,
        expires_at=share.expires_at,
        password_protected=share.password_hash is not None,
        revoked=share.revoked_at is not None,
        active=is_active(share, utcnow()),
    )


@router.post("/tickets/{ticket_id}/shares", response_model=ShareIssuedOut)
async def create_share(
    ticket_id: str,
    payload: ShareCreateIn,
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(get_current_actor),
):
    issued = await issue_share_link(
        session,
        actor,
        ticket_id,
        payload.expires_in_days,
        password=payload.password or None,
    )
    # The raw token is only ever returned here.
    return ShareIssuedOut(
        id=issued.id,
        ticket_id=issued.ticket_id,
        token=issued.token,
        url=share_url(issued.token),
        expires_at=issued.expires_at,
        password_protected=issued.password_protected,
    )


@router.get("/tickets/{ticket_id}/shares", response_model=list[ShareOut])
async def get_shares(
    ticket_id: str,
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(get_current_actor),
):
    return [serialize_share(s) for s in await list_share_links(session, actor, ticket_id)]


@router.delete("/shares/{share_id}", response_model=ShareOut)
async def delete_share(
    share_id: str,
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(get_current_actor),
):
    share = await revoke_share_link(session, actor, share_id)
    return serialize_share(share)
