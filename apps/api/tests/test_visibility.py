from datetime import timedelta

import pytest
import pytest_asyncio

from helpdesk.core.errors import AccessDenied, NotFound
from helpdesk.core.roles import share_actor
from helpdesk.services import ticket_mutations
from helpdesk.services.comment_store import append_comment
from helpdesk.services.visibility import load_timeline, visible_timeline

from .conftest import T0, as_actor


@pytest_asyncio.fixture
async def activity(session, world):
    tech = as_actor(world.tech)
    tid = world.ticket.id
    await append_comment(session, as_actor(world.client), tid, "help", now=T0 + timedelta(minutes=1))
    await ticket_mutations.change_status(session, tech, tid, "in_progress", now=T0 + timedelta(minutes=2))
    await append_comment(session, tech, tid, "escalate", is_private=True, now=T0 + timedelta(minutes=3))
    await append_comment(session, tech, tid, "working on it", now=T0 + timedelta(minutes=4))
    return world


async def test_client_never_sees_private(session, activity):
    entries = await visible_timeline(session, as_actor(activity.client), activity.ticket.id)
    assert [e.kind for e in entries] == ["comment", "history", "comment"]
    assert all(not getattr(e, "is_private", False) for e in entries)
    assert "escalate" not in [getattr(e, "body", None) for e in entries]


async def test_technician_sees_private_tagged(session, activity):
    entries = await visible_timeline(session, as_actor(activity.tech), activity.ticket.id)
    private = [e for e in entries if e.kind == "comment" and e.is_private]
    assert [e.body for e in private] == ["escalate"]
    assert entries[0].body == "working on it"


async def test_counts_exclude_hidden_comments(session, activity):
    view = await load_timeline(session, as_actor(activity.client), activity.ticket.id)
    assert view.comment_count == 2
    assert view.history_count == 1
    staff = await load_timeline(session, as_actor(activity.admin), activity.ticket.id)
    assert staff.comment_count == 3


async def test_pagination(session, activity):
    view = await load_timeline(session, as_actor(activity.admin), activity.ticket.id)
    assert [e.id for e in view.page(2, 1)] == [e.id for e in view.entries[1:3]]
    assert view.page(10, 10) == []


async def test_cross_tenant_denied(session, activity):
    with pytest.raises(AccessDenied):
        await visible_timeline(session, as_actor(activity.globex_tech), activity.ticket.id)


async def test_system_owner_reads_any_tenant(session, activity):
    entries = await visible_timeline(session, as_actor(activity.owner), activity.ticket.id)
    assert len(entries) == 4


async def test_unknown_role_gets_no_history_or_private(session, activity):
    view = await load_timeline(session, as_actor(activity.stranger), activity.ticket.id)
    assert view.history_count == 0
    assert all(e.kind == "comment" and not e.is_private for e in view.entries)


async def test_share_actor_matches_client_view(session, activity):
    client_view = await visible_timeline(session, as_actor(activity.client), activity.ticket.id)
    shared_view = await visible_timeline(session, share_actor("s1", activity.acme.id), activity.ticket.id)
    assert [e.id for e in shared_view] == [e.id for e in client_view]


async def test_missing_ticket(session, world):
    with pytest.raises(NotFound):
        await visible_timeline(session, as_actor(world.tech), "nope")


async def test_same_instant_history_renders_newest_first(session, world):
    actor = as_actor(world.tech)
    for i in range(20):
        ticket, _ = await ticket_mutations.create_ticket(session, actor, f"Ticket {i}", now=T0)
        await ticket_mutations.change_status(session, actor, ticket.id, "resolved", now=T0)
        entries = await visible_timeline(session, actor, ticket.id)
        assert [e.action for e in entries] == ["resolved", "status_change", "created"]
