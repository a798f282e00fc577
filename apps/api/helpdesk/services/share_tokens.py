"""Time-boxed, optionally password-protected read grants for one ticket.

Tokens are random and carry nothing derivable; only their sha256 digest is
persisted. Expired or revoked links behave as if they never existed.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
import logging
from typing import Callable

import anyio
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import as_utc, utcnow
from ..core.config import settings
from ..core.errors import (
    AccessDenied,
    Expired,
    HelpdeskError,
    InvalidInput,
    NotFound,
    PasswordMismatch,
    PasswordRequired,
    ShareNotFound,
)
from ..core.roles import Actor, Capability
from ..core.security import generate_share_token, hash_password, token_digest, verify_password
from ..models.share import TicketShare
from .ticket_access import get_ticket_for_actor

logger = logging.getLogger(__name__)

# Swapped out in tests to force collisions.
token_factory: Callable[[], str] = generate_share_token


class TokenSpaceExhausted(HelpdeskError):
    status_code = 503
    detail = "Could not issue share link"


@dataclass
class IssuedShareLink:
    share: TicketShare
    token: str

    @property
    def id(self) -> str:
        return self.share.id

    @property
    def ticket_id(self) -> str:
        return self.share.ticket_id

    @property
    def expires_at(self) -> datetime:
        return as_utc(self.share.expires_at)

    @property
    def password_protected(self) -> bool:
        return self.share.password_hash is not None


def share_url(token: str) -> str:
    base = settings.app_base_url.rstrip("/")
    return f"{base}/shared/ticket/{token}"


def is_active(share: TicketShare, now: datetime) -> bool:
    if share.revoked_at is not None:
        return False
    return as_utc(now) <= as_utc(share.expires_at)


def _check_ttl(ttl_days: int) -> None:
    lo, hi = settings.share_min_ttl_days, settings.share_max_ttl_days
    if isinstance(ttl_days, bool) or not isinstance(ttl_days, int) or not lo <= ttl_days <= hi:
        raise InvalidInput(f"expires_in_days must be between {lo} and {hi}")


async def _digest_taken(session: AsyncSession, digest: str) -> bool:
    stmt = select(TicketShare.id).where(TicketShare.token_hash == digest).limit(1)
    return (await session.execute(stmt)).first() is not None


async def issue_share_link(
    session: AsyncSession,
    actor: Actor,
    ticket_id: str,
    ttl_days: int,
    password: str | None = None,
    now: datetime | None = None,
) -> IssuedShareLink:
    _check_ttl(ttl_days)
    ticket = await get_ticket_for_actor(session, actor, ticket_id)
    if not actor.can(Capability.ISSUE_SHARE_LINK):
        raise AccessDenied()

    shared_ticket_id = ticket.id
    issued_at = now or utcnow()
    # Key stretching is CPU bound; keep it off the event loop.
    password_hash = await anyio.to_thread.run_sync(hash_password, password) if password else None

    for attempt in range(1, settings.share_issue_attempts + 1):
        token = token_factory()
        digest = token_digest(token)
        if await _digest_taken(session, digest):
            logger.warning("share token collision, regenerating (attempt=%s)", attempt)
            continue
        share = TicketShare(
            token_hash=digest,
            ticket_id=shared_ticket_id,
            expires_at=issued_at + timedelta(days=ttl_days),
            password_hash=password_hash,
            issued_by=actor.id,
            issued_at=issued_at,
        )
        session.add(share)
        try:
            await session.commit()
        except IntegrityError:
            # Lost a race with a concurrent issue for the same digest.
            await session.rollback()
            logger.warning("share token collision on insert, regenerating (attempt=%s)", attempt)
            continue
        await session.refresh(share)
        logger.info("share link issued share_id=%s ticket_id=%s ttl_days=%s", share.id, shared_ticket_id, ttl_days)
        return IssuedShareLink(share=share, token=token)

    raise TokenSpaceExhausted()


async def find_share(session: AsyncSession, token: str) -> TicketShare | None:
    if not token:
        return None
    stmt = select(TicketShare).where(TicketShare.token_hash == token_digest(token))
    return await session.scalar(stmt)


async def resolve_share(
    session: AsyncSession,
    token: str,
    password: str | None = None,
    now: datetime | None = None,
) -> TicketShare:
    share = await find_share(session, token)
    if share is None:
        raise ShareNotFound()
    # Expiry is decided before any password check so a dead link reveals nothing.
    if not is_active(share, now or utcnow()):
        raise Expired()
    if share.password_hash:
        if not password:
            raise PasswordRequired()
        if not await anyio.to_thread.run_sync(verify_password, password, share.password_hash):
            raise PasswordMismatch()
    return share


async def validate_share_token(
    session: AsyncSession,
    token: str,
    password: str | None = None,
    now: datetime | None = None,
) -> str:
    share = await resolve_share(session, token, password, now)
    return share.ticket_id


async def list_share_links(session: AsyncSession, actor: Actor, ticket_id: str) -> list[TicketShare]:
    ticket = await get_ticket_for_actor(session, actor, ticket_id)
    if not actor.can(Capability.ISSUE_SHARE_LINK):
        raise AccessDenied()
    stmt = (
        select(TicketShare)
        .where(TicketShare.ticket_id == ticket.id)
        .order_by(TicketShare.issued_at.desc(), TicketShare.id.desc())
    )
    return list((await session.scalars(stmt)).all())


async def revoke_share_link(
    session: AsyncSession,
    actor: Actor,
    share_id: str,
    now: datetime | None = None,
) -> TicketShare:
    share = await session.get(TicketShare, share_id)
    if share is None:
        raise NotFound()
    await get_ticket_for_actor(session, actor, share.ticket_id)
    if not actor.can(Capability.ISSUE_SHARE_LINK):
        raise AccessDenied()
    if share.revoked_at is None:
        share.revoked_at = now or utcnow()
        await session.commit()
        logger.info("share link revoked share_id=%s ticket_id=%s", share.id, share.ticket_id)
    return share
