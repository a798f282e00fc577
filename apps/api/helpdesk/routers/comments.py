from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.current_user import get_current_actor
from ..core.roles import Actor
from ..db import get_session
from ..schemas.comment import CommentCreateIn, CommentOut
from ..services.comment_store import append_comment, list_comments
from ..services.mutation_feed import INSERT, TICKET_COMMENTS, MutationFeed, RowMutation
from ..services.ticket_access import get_ticket_for_actor
from ..services.visibility import visible_comments
from .deps import get_mutation_feed, publish_mutation

router = APIRouter(tags=["comments"])


@router.get("/tickets/{ticket_id}/comments", response_model=list[CommentOut])
async def get_comments(
    ticket_id: str,
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(get_current_actor),
):
    ticket = await get_ticket_for_actor(session, actor, ticket_id)
    comments = visible_comments(actor, await list_comments(session, ticket.id))
    return [CommentOut.model_validate(c) for c in comments]


@router.post("/tickets/{ticket_id}/comments", response_model=CommentOut)
async def create_comment(
    ticket_id: str,
    payload: CommentCreateIn,
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(get_current_actor),
    feed: MutationFeed = Depends(get_mutation_feed),
):
    comment = await append_comment(session, actor, ticket_id, payload.body, is_private=payload.is_private)
    ticket = await get_ticket_for_actor(session, actor, comment.ticket_id)

    row = comment.feed_row()
    row["company_id"] = ticket.company_id
    await publish_mutation(
        feed,
        RowMutation(table=TICKET_COMMENTS, event_type=INSERT, before=None, after=row, actor_id=actor.id),
    )
    return CommentOut.model_validate(comment)
