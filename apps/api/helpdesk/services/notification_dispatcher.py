"""Turn classified change events into outbound mail.

Delivery is best effort: each recipient gets one attempt, the outcome is
written to ``mail_logs`` and nothing is retried. Because the watcher may
see a mutation again after a feed reconnect, recipients can receive the
same notification more than once.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.errors import DispatchError
from ..core.roles import Actor, Capability
from ..models.company import Company
from ..models.notification_setting import NotificationSetting
from ..models.ticket import Ticket
from ..models.user import User
from . import mail_templates
from .change_watcher import ChangeEvent, EventKind
from .mail_service import MailPayload, MailSender, log_delivery, normalize_email

logger = logging.getLogger(__name__)

PREFERENCE_FLAGS = {
    EventKind.CREATED: "email_on_new_ticket",
    EventKind.STATUS_CHANGED: "email_on_status_change",
    EventKind.ASSIGNMENT_CHANGED: "email_on_assignment",
    EventKind.COMMENT_ADDED: "email_on_comment",
}


@dataclass
class NotificationRequest:
    kind: str
    ticket_id: str
    ticket_title: str
    company_id: str
    actor_id: str | None = None
    created_by: str | None = None
    assigned_to: str | None = None
    old_status: str | None = None
    new_status: str | None = None
    old_assigned_to: str | None = None
    new_assigned_to: str | None = None
    comment_id: str | None = None
    is_private: bool = False

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class Recipient:
    user_id: str
    email: str
    name: str
    role: str


@dataclass
class DispatchAck:
    kind: str
    ticket_id: str
    sent: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


def build_request(event: ChangeEvent, ticket: Ticket) -> NotificationRequest:
    p = event.payload
    return NotificationRequest(
        kind=event.kind.value,
        ticket_id=ticket.id,
        ticket_title=ticket.title or p.get("title") or "",
        company_id=ticket.company_id,
        actor_id=event.actor_id,
        created_by=ticket.created_by,
        assigned_to=ticket.assigned_to,
        old_status=p.get("old_status"),
        new_status=p.get("new_status"),
        old_assigned_to=p.get("old_assigned_to"),
        new_assigned_to=p.get("new_assigned_to"),
        comment_id=p.get("comment_id"),
        is_private=bool(p.get("is_private")),
    )


def candidate_user_ids(request: NotificationRequest) -> list[str]:
    ids = [request.created_by, request.assigned_to]
    if request.kind == EventKind.ASSIGNMENT_CHANGED.value:
        ids.append(request.old_assigned_to)
    if request.kind == EventKind.COMMENT_ADDED.value:
        # The author already knows about their own comment.
        ids = [i for i in ids if i != request.actor_id]
    return list(dict.fromkeys(i for i in ids if i))


async def resolve_recipients(session: AsyncSession, request: NotificationRequest) -> list[Recipient]:
    ids = candidate_user_ids(request)
    if not ids:
        return []
    users = (await session.scalars(select(User).where(User.id.in_(ids)))).all()
    settings_rows = (
        await session.scalars(select(NotificationSetting).where(NotificationSetting.user_id.in_(ids)))
    ).all()
    prefs = {s.user_id: s for s in settings_rows}
    flag = PREFERENCE_FLAGS[EventKind(request.kind)]

    by_id = {u.id: u for u in users}
    recipients: list[Recipient] = []
    for user_id in ids:
        user = by_id.get(user_id)
        if user is None or not user.active or not user.email:
            continue
        actor = Actor(id=user.id, role=user.role, company_id=user.company_id)
        if not actor.can_access_company(request.company_id):
            continue
        if request.is_private and not actor.can(Capability.VIEW_PRIVATE):
            continue
        pref = prefs.get(user_id)
        if pref is not None and not getattr(pref, flag):
            continue
        recipients.append(Recipient(user_id=user.id, email=user.email, name=user.name, role=user.role))
    return recipients


def compose(request: NotificationRequest, ticket: Ticket, company_name: str, names: dict[str, str]) -> tuple[str, str, str]:
    """Returns (subject, text, html)."""
    title = request.ticket_title
    fields = [
        ("Ticket", f"#{ticket.id[:8]}"),
        ("Title", title),
        ("Created by", names.get(ticket.created_by, "-")),
    ]
    if ticket.assigned_to:
        fields.append(("Assigned to", names.get(ticket.assigned_to, "-")))

    if request.kind == EventKind.CREATED.value:
        subject = f"{company_name} - New ticket: {title}"
        alert_type = "New ticket"
        summary = "A new ticket was created."
    elif request.kind == EventKind.STATUS_CHANGED.value:
        subject = f"{company_name} - Status changed: {title}"
        alert_type = "Status changed"
        summary = (
            f"Status changed from {mail_templates.status_label(request.old_status)} "
            f"to {mail_templates.status_label(request.new_status)}."
        )
    elif request.kind == EventKind.ASSIGNMENT_CHANGED.value:
        subject = f"{company_name} - Ticket assigned: {title}"
        alert_type = "Assignment"
        summary = "The ticket assignee changed."
        fields.append(("Previous assignee", names.get(request.old_assigned_to or "", "Unassigned")))
    else:
        subject = f"{company_name} - New comment: {title}"
        alert_type = "New comment"
        summary = "A new comment was added to the ticket."

    text, html = mail_templates.render(
        company_name=company_name,
        alert_type=alert_type,
        summary=summary,
        fields=fields,
        status=mail_templates.status_label(ticket.status),
        priority=mail_templates.priority_label(ticket.priority),
        link_url=mail_templates.ticket_link(ticket.id),
    )
    return subject, text, html


class NotificationDispatcher:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], sender: MailSender) -> None:
        self.session_factory = session_factory
        self.sender = sender

    async def dispatch(self, event: ChangeEvent) -> DispatchAck:
        ack = DispatchAck(kind=event.kind.value, ticket_id=event.ticket_id)
        if not self.sender.ready:
            logger.info("mail sender not configured, skipping kind=%s ticket_id=%s", event.kind.value, event.ticket_id)
            return ack

        failures: list[str] = []
        async with self.session_factory() as session:
            ticket = await session.get(Ticket, event.ticket_id)
            if ticket is None:
                logger.info("ticket gone before dispatch ticket_id=%s", event.ticket_id)
                return ack
            if event.company_id and event.company_id != ticket.company_id:
                logger.warning("tenant mismatch on event ticket_id=%s, dropping", event.ticket_id)
                return ack

            request = build_request(event, ticket)
            recipients = await resolve_recipients(session, request)
            if not recipients:
                logger.info("no recipients for kind=%s ticket_id=%s", request.kind, request.ticket_id)
                return ack

            company = await session.get(Company, ticket.company_id)
            company_name = company.name if company else "Helpdesk"
            names = await _user_names(session, [ticket.created_by, ticket.assigned_to, request.old_assigned_to])
            subject, text, html = compose(request, ticket, company_name, names)

            for r in recipients:
                payload = MailPayload(
                    event_key=f"{request.kind}:{request.ticket_id}:{request.comment_id or request.new_status or request.new_assigned_to or '-'}:{r.user_id}",
                    event_type=request.kind,
                    subject=subject,
                    body_text=text,
                    body_html=html,
                    recipient_email=r.email,
                    recipient_user_id=r.user_id,
                    ticket_id=request.ticket_id,
                    sender_name=company_name,
                )
                normalized = normalize_email(r.email)
                if not normalized:
                    log_delivery(session, payload, "skipped", "invalid email address")
                    ack.skipped.append(r.user_id)
                    logger.info("invalid email, skipping user_id=%s", r.user_id)
                    continue
                payload.recipient_email = normalized
                try:
                    await self.sender.send(payload)
                except Exception as exc:
                    log_delivery(session, payload, "failed", str(exc))
                    failures.append(r.user_id)
                    logger.exception("mail delivery failed event_key=%s", payload.event_key)
                    continue
                log_delivery(session, payload, "sent")
                ack.sent.append(r.user_id)
            await session.commit()

        if failures:
            raise DispatchError(f"{len(failures)} of {len(failures) + len(ack.sent)} deliveries failed")
        return ack


async def _user_names(session: AsyncSession, ids: list[str | None]) -> dict[str, str]:
    wanted = {i for i in ids if i}
    if not wanted:
        return {}
    users = (await session.scalars(select(User).where(User.id.in_(wanted)))).all()
    return {u.id: u.name for u in users}
