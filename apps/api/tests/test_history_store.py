from datetime import timedelta

import pytest

from helpdesk.core.errors import AccessDenied, InvalidInput
from helpdesk.services import ticket_mutations
from helpdesk.services.history_store import (
    ACTION_ASSIGNMENT_CHANGE,
    ACTION_CREATED,
    ACTION_RESOLVED,
    ACTION_STATUS_CHANGE,
    list_history,
    record_history,
)
from helpdesk.services.mutation_feed import INSERT, TICKETS, UPDATE

from .conftest import T0, as_actor


async def test_record_history_joins_caller_transaction(session, world):
    tid = world.ticket.id
    record_history(session, tid, "note", "x", None, None, world.tech.id, now=T0)
    await session.rollback()
    assert await list_history(session, tid) == []


async def test_create_ticket_writes_history_and_mutation(session, world):
    ticket, mutation = await ticket_mutations.create_ticket(
        session, as_actor(world.client), "VPN down", priority="urgent", now=T0
    )
    assert ticket.company_id == world.acme.id
    assert mutation.table == TICKETS and mutation.event_type == INSERT
    assert mutation.after["id"] == ticket.id
    history = await list_history(session, ticket.id)
    assert [h.action for h in history] == [ACTION_CREATED]


async def test_client_cannot_assign_at_creation(session, world):
    with pytest.raises(AccessDenied):
        await ticket_mutations.create_ticket(session, as_actor(world.client), "VPN", assigned_to=world.tech.id)


async def test_each_change_gets_its_own_entry(session, world):
    actor = as_actor(world.tech)
    tid = world.ticket.id
    await ticket_mutations.change_status(session, actor, tid, "in_progress", now=T0 + timedelta(minutes=1))
    await ticket_mutations.change_status(session, actor, tid, "open", now=T0 + timedelta(minutes=2))
    await ticket_mutations.change_status(session, actor, tid, "in_progress", now=T0 + timedelta(minutes=3))

    history = await list_history(session, tid)
    assert [h.action for h in history] == [ACTION_STATUS_CHANGE] * 3
    assert [(h.old_value, h.new_value) for h in history] == [
        ("open", "in_progress"),
        ("in_progress", "open"),
        ("open", "in_progress"),
    ]


async def test_unchanged_status_is_not_recorded(session, world):
    ticket, mutation = await ticket_mutations.change_status(session, as_actor(world.tech), world.ticket.id, "open")
    assert mutation is None
    assert await list_history(session, ticket.id) == []


async def test_resolving_records_resolution(session, world):
    ticket, mutation = await ticket_mutations.change_status(
        session, as_actor(world.tech), world.ticket.id, "resolved", now=T0
    )
    assert ticket.resolved_at is not None
    assert mutation.event_type == UPDATE
    assert mutation.before["status"] == "open" and mutation.after["status"] == "resolved"
    actions = [h.action for h in await list_history(session, ticket.id)]
    assert actions == [ACTION_STATUS_CHANGE, ACTION_RESOLVED]


async def test_invalid_status(session, world):
    with pytest.raises(InvalidInput):
        await ticket_mutations.change_status(session, as_actor(world.tech), world.ticket.id, "done")


async def test_client_cannot_edit(session, world):
    with pytest.raises(AccessDenied):
        await ticket_mutations.change_priority(session, as_actor(world.client), world.ticket.id, "low")


async def test_assignment(session, world):
    ticket, mutation = await ticket_mutations.assign_ticket(
        session, as_actor(world.admin), world.ticket.id, world.admin.id
    )
    assert ticket.assigned_to == world.admin.id
    assert mutation.before["assigned_to"] == world.tech.id
    history = await list_history(session, ticket.id)
    assert history[-1].action == ACTION_ASSIGNMENT_CHANGE


async def test_assignee_must_be_staff_of_the_company(session, world):
    with pytest.raises(InvalidInput):
        await ticket_mutations.assign_ticket(session, as_actor(world.admin), world.ticket.id, world.globex_tech.id)
    with pytest.raises(InvalidInput):
        await ticket_mutations.assign_ticket(session, as_actor(world.admin), world.ticket.id, world.client.id)


async def test_same_instant_entries_keep_insertion_order(session, world):
    actor = as_actor(world.tech)
    for i in range(20):
        ticket, _ = await ticket_mutations.create_ticket(session, actor, f"Ticket {i}", now=T0)
        await ticket_mutations.change_status(session, actor, ticket.id, "resolved", now=T0)
        history = await list_history(session, ticket.id)
        assert [h.action for h in history] == [ACTION_CREATED, ACTION_STATUS_CHANGE, ACTION_RESOLVED]
