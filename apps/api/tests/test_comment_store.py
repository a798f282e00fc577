from datetime import timedelta

import pytest

from helpdesk.core.errors import AccessDenied, InvalidInput, NotFound
from helpdesk.services.comment_store import append_comment, can_comment, list_comments

from .conftest import T0, as_actor


class TestAppendComment:
    async def test_technician_comments(self, session, world):
        comment = await append_comment(session, as_actor(world.tech), world.ticket.id, "  on it  ")
        assert comment.body == "on it"
        assert comment.is_private is False
        assert comment.author_id == world.tech.id

    async def test_empty_body_rejected(self, session, world):
        with pytest.raises(InvalidInput):
            await append_comment(session, as_actor(world.tech), world.ticket.id, "   ")

    async def test_unknown_ticket(self, session, world):
        with pytest.raises(NotFound):
            await append_comment(session, as_actor(world.tech), "missing", "hello")

    async def test_other_tenant_denied(self, session, world):
        with pytest.raises(AccessDenied):
            await append_comment(session, as_actor(world.globex_tech), world.ticket.id, "hello")

    async def test_system_owner_crosses_tenants(self, session, world):
        comment = await append_comment(session, as_actor(world.owner), world.ticket.id, "looking", is_private=True)
        assert comment.is_private is True

    async def test_client_on_own_ticket(self, session, world):
        comment = await append_comment(session, as_actor(world.client), world.ticket.id, "still broken")
        assert comment.author_id == world.client.id

    async def test_client_on_someone_elses_ticket(self, session, world):
        with pytest.raises(AccessDenied):
            await append_comment(session, as_actor(world.other_client), world.ticket.id, "me too")

    async def test_client_blocked_by_company_policy(self, session, world):
        world.acme.allow_client_comments = False
        await session.commit()
        actor = as_actor(world.client)
        assert not await can_comment(session, actor, world.ticket)
        with pytest.raises(AccessDenied):
            await append_comment(session, actor, world.ticket.id, "hello?")

    async def test_client_cannot_write_private(self, session, world):
        with pytest.raises(AccessDenied):
            await append_comment(session, as_actor(world.client), world.ticket.id, "secret", is_private=True)

    async def test_unknown_role_never_comments(self, session, world):
        with pytest.raises(AccessDenied):
            await append_comment(session, as_actor(world.stranger), world.ticket.id, "hi")


async def test_list_comments_is_chronological(session, world):
    actor = as_actor(world.tech)
    await append_comment(session, actor, world.ticket.id, "second", now=T0 + timedelta(minutes=2))
    await append_comment(session, actor, world.ticket.id, "first", now=T0 + timedelta(minutes=1))
    bodies = [c.body for c in await list_comments(session, world.ticket.id)]
    assert bodies == ["first", "second"]
