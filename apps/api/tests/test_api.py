"""HTTP surface: auth, tenant scoping, timeline scenario, share links."""
from datetime import timedelta

from helpdesk.core.clock import utcnow
from helpdesk.core.security import create_access_token
from helpdesk.models.share import TicketShare
from helpdesk.services.change_watcher import ChangeEventWatcher, EventKind
from helpdesk.services.notification_dispatcher import NotificationDispatcher

from .conftest import FakeSender, auth


class RecordingDispatcher:
    def __init__(self) -> None:
        self.events = []

    async def dispatch(self, event):
        self.events.append(event)


class TestAuth:
    async def test_health(self, client):
        r = await client.get("/health")
        assert r.status_code == 200
        assert r.json() == {"ok": True}

    async def test_missing_token(self, client, world):
        r = await client.get(f"/tickets/{world.ticket.id}")
        assert r.status_code == 401

    async def test_garbage_token(self, client, world):
        r = await client.get("/me", headers={"Authorization": "Bearer nope"})
        assert r.status_code == 401

    async def test_inactive_user(self, client, session, world):
        world.tech.active = False
        await session.commit()
        r = await client.get("/me", headers=auth(world.tech))
        assert r.status_code == 401

    async def test_unknown_subject(self, client, world):
        headers = {"Authorization": f"Bearer {create_access_token('ghost')}"}
        r = await client.get("/me", headers=headers)
        assert r.status_code == 401

    async def test_me_lists_capabilities(self, client, world):
        r = await client.get("/me", headers=auth(world.client))
        assert r.status_code == 200
        assert r.json()["capabilities"] == ["comment", "view_history"]

        r = await client.get("/me/capabilities", headers=auth(world.stranger))
        assert r.json() == []

    async def test_role_table(self, client, world):
        r = await client.get("/roles/capabilities", headers=auth(world.client))
        assert "edit_ticket" in r.json()["roles"]["technician"]


class TestTickets:
    async def test_create_and_read(self, client, world):
        r = await client.post("/tickets", json={"title": "Laptop slow", "priority": "low"}, headers=auth(world.client))
        assert r.status_code == 200
        body = r.json()
        assert body["company_id"] == world.acme.id
        assert body["created_by"] == world.client.id

        r = await client.get(f"/tickets/{body['id']}", headers=auth(world.tech))
        assert r.status_code == 200
        r = await client.get(f"/tickets/{body['id']}", headers=auth(world.globex_tech))
        assert r.status_code == 403
        assert r.json() == {"detail": "Forbidden"}

    async def test_invalid_status_is_422(self, client, world):
        r = await client.patch(f"/tickets/{world.ticket.id}/status", json={"status": "done"}, headers=auth(world.tech))
        assert r.status_code == 422

    async def test_unknown_ticket_is_404(self, client, world):
        r = await client.get("/tickets/does-not-exist", headers=auth(world.tech))
        assert r.status_code == 404
        assert r.json() == {"detail": "Not found"}

    async def test_client_cannot_change_status(self, client, world):
        r = await client.patch(f"/tickets/{world.ticket.id}/status", json={"status": "closed"}, headers=auth(world.client))
        assert r.status_code == 403

    async def test_mutations_are_published(self, client, feed, world):
        watcher = ChangeEventWatcher(feed, RecordingDispatcher())
        await watcher.start()
        headers = auth(world.tech)
        tid = world.ticket.id
        await client.patch(f"/tickets/{tid}/priority", json={"priority": "low"}, headers=headers)
        await client.patch(f"/tickets/{tid}/status", json={"status": "in_progress"}, headers=headers)
        await client.patch(f"/tickets/{tid}/assign", json={"assigned_to": world.admin.id}, headers=headers)
        await client.post(f"/tickets/{tid}/comments", json={"body": "done soon"}, headers=headers)
        await watcher.stop()

        kinds = [e.kind for e in watcher.dispatcher.events]
        assert kinds == [EventKind.STATUS_CHANGED, EventKind.ASSIGNMENT_CHANGED, EventKind.COMMENT_ADDED]
        assert watcher.dispatcher.events[-1].company_id == world.acme.id
        assert watcher.stats["dropped"] == 1

    async def test_failing_mail_never_fails_the_mutation(self, client, feed, session_factory, world):
        sender = FakeSender(fail_for={world.client.email, world.tech.email})
        watcher = ChangeEventWatcher(feed, NotificationDispatcher(session_factory, sender))
        await watcher.start()
        r = await client.patch(
            f"/tickets/{world.ticket.id}/status", json={"status": "resolved"}, headers=auth(world.tech)
        )
        await watcher.stop()
        assert r.status_code == 200
        assert r.json()["status"] == "resolved"
        assert watcher.stats["failed"] == 1

    async def test_history_endpoint(self, client, world):
        headers = auth(world.tech)
        await client.patch(f"/tickets/{world.ticket.id}/status", json={"status": "resolved"}, headers=headers)
        r = await client.get(f"/tickets/{world.ticket.id}/history", headers=headers)
        assert [h["action"] for h in r.json()] == ["status_change", "resolved"]

        r = await client.get(f"/tickets/{world.ticket.id}/history", headers=auth(world.stranger))
        assert r.status_code == 403


class TestTimelineScenario:
    async def test_private_note_hidden_from_client(self, client, world):
        tid = world.ticket.id
        r = await client.post(
            f"/tickets/{tid}/comments", json={"body": "escalate", "is_private": True}, headers=auth(world.tech)
        )
        assert r.status_code == 200

        r = await client.get(f"/tickets/{tid}/timeline", headers=auth(world.client))
        bodies = [e.get("body") for e in r.json()["entries"]]
        assert "escalate" not in bodies
        assert r.json()["comment_count"] == 0

        r = await client.get(f"/tickets/{tid}/comments", headers=auth(world.client))
        assert r.json() == []

        r = await client.get(f"/tickets/{tid}/timeline", headers=auth(world.admin))
        entries = [e for e in r.json()["entries"] if e["kind"] == "comment"]
        assert entries[0]["body"] == "escalate"
        assert entries[0]["is_private"] is True

    async def test_cross_tenant_timeline_forbidden(self, client, world):
        r = await client.get(f"/tickets/{world.ticket.id}/timeline", headers=auth(world.globex_tech))
        assert r.status_code == 403
        r = await client.get(f"/tickets/{world.ticket.id}/timeline", headers=auth(world.owner))
        assert r.status_code == 200

    async def test_paging(self, client, world):
        headers = auth(world.tech)
        for i in range(5):
            await client.post(f"/tickets/{world.ticket.id}/comments", json={"body": f"c{i}"}, headers=headers)
        r = await client.get(f"/tickets/{world.ticket.id}/timeline?limit=2&offset=1", headers=headers)
        body = r.json()
        assert body["total"] == 5
        assert len(body["entries"]) == 2

    async def test_empty_comment_is_422(self, client, world):
        r = await client.post(f"/tickets/{world.ticket.id}/comments", json={"body": "  "}, headers=auth(world.tech))
        assert r.status_code == 422


class TestShares:
    async def test_issue_and_view(self, client, world):
        tid = world.ticket.id
        await client.post(f"/tickets/{tid}/comments", json={"body": "internal", "is_private": True}, headers=auth(world.tech))
        await client.post(f"/tickets/{tid}/comments", json={"body": "public"}, headers=auth(world.tech))

        r = await client.post(f"/tickets/{tid}/shares", json={"expires_in_days": 3}, headers=auth(world.tech))
        assert r.status_code == 200
        issued = r.json()
        assert issued["url"].endswith(issued["token"])

        r = await client.get(f"/shared/tickets/{issued['token']}")
        assert r.status_code == 200
        view = r.json()
        assert view["ticket"]["id"] == tid
        assert [e["body"] for e in view["timeline"]["entries"] if e["kind"] == "comment"] == ["public"]

    async def test_password_header(self, client, world):
        r = await client.post(
            f"/tickets/{world.ticket.id}/shares",
            json={"expires_in_days": 3, "password": "s3cret"},
            headers=auth(world.admin),
        )
        token = r.json()["token"]
        assert r.json()["password_protected"] is True

        r = await client.get(f"/shared/tickets/{token}")
        assert r.status_code == 401
        assert r.json() == {"detail": "Password required"}
        r = await client.get(f"/shared/tickets/{token}", headers={"X-Share-Password": "wrong"})
        assert r.status_code == 401
        assert r.json() == {"detail": "Invalid password"}
        r = await client.get(f"/shared/tickets/{token}", headers={"X-Share-Password": "s3cret"})
        assert r.status_code == 200

    async def test_expired_looks_like_unknown(self, client, session, world):
        r = await client.post(
            f"/tickets/{world.ticket.id}/shares",
            json={"expires_in_days": 1, "password": "pw"},
            headers=auth(world.tech),
        )
        token, share_id = r.json()["token"], r.json()["id"]
        share = await session.get(TicketShare, share_id)
        share.expires_at = utcnow() - timedelta(minutes=1)
        await session.commit()

        expired = await client.get(f"/shared/tickets/{token}", headers={"X-Share-Password": "wrong"})
        unknown = await client.get("/shared/tickets/no-such-token")
        assert expired.status_code == unknown.status_code == 404
        assert expired.json() == unknown.json()

    async def test_revoke(self, client, world):
        r = await client.post(f"/tickets/{world.ticket.id}/shares", json={"expires_in_days": 5}, headers=auth(world.tech))
        token, share_id = r.json()["token"], r.json()["id"]

        r = await client.delete(f"/shares/{share_id}", headers=auth(world.globex_tech))
        assert r.status_code == 403
        r = await client.delete(f"/shares/{share_id}", headers=auth(world.admin))
        assert r.status_code == 200
        assert r.json()["revoked"] is True
        assert r.json()["active"] is False

        r = await client.get(f"/shared/tickets/{token}")
        assert r.status_code == 404

        r = await client.get(f"/tickets/{world.ticket.id}/shares", headers=auth(world.tech))
        assert [s["revoked"] for s in r.json()] == [True]

    async def test_ttl_out_of_range(self, client, world):
        r = await client.post(f"/tickets/{world.ticket.id}/shares", json={"expires_in_days": 90}, headers=auth(world.tech))
        assert r.status_code == 422

    async def test_client_cannot_issue(self, client, world):
        r = await client.post(f"/tickets/{world.ticket.id}/shares", json={"expires_in_days": 5}, headers=auth(world.client))
        assert r.status_code == 403
