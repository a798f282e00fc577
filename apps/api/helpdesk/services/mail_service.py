from __future__ import annotations

from dataclasses import dataclass
import logging
import smtplib
from email.message import EmailMessage
from typing import Protocol

import anyio
from email_validator import validate_email, EmailNotValidError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import utcnow
from ..core.config import Settings, settings
from ..models.mail_log import MailLog

logger = logging.getLogger(__name__)

SMTP_TIMEOUT_SECONDS = 10


@dataclass
class MailPayload:
    event_key: str
    event_type: str
    subject: str
    body_html: str
    body_text: str
    recipient_email: str
    recipient_user_id: str | None = None
    ticket_id: str | None = None
    sender_name: str | None = None


class MailSender(Protocol):
    ready: bool

    async def send(self, payload: MailPayload) -> None: ...


def normalize_email(addr: str | None) -> str | None:
    if not addr:
        return None
    try:
        return validate_email(addr, check_deliverability=False).normalized
    except EmailNotValidError:
        return None


class SmtpMailSender:
    """Blocking smtplib delivery, run on a worker thread."""

    def __init__(self, host: str, port: int, from_addr: str, default_name: str = "Helpdesk") -> None:
        self.host = host
        self.port = port
        self.from_addr = from_addr
        self.default_name = default_name

    @property
    def ready(self) -> bool:
        return bool(self.host and self.from_addr)

    def _build_message(self, payload: MailPayload) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = payload.subject
        msg["From"] = f"{payload.sender_name or self.default_name} <{self.from_addr}>"
        msg["To"] = payload.recipient_email
        msg.set_content(payload.body_text)
        msg.add_alternative(payload.body_html, subtype="html")
        return msg

    def _send_blocking(self, payload: MailPayload) -> None:
        msg = self._build_message(payload)
        with smtplib.SMTP(self.host, self.port, timeout=SMTP_TIMEOUT_SECONDS) as smtp:
            smtp.send_message(msg)

    async def send(self, payload: MailPayload) -> None:
        await anyio.to_thread.run_sync(self._send_blocking, payload)
        logger.info("mail sent event_key=%s", payload.event_key)


def build_mail_sender(cfg: Settings = settings) -> SmtpMailSender:
    sender = SmtpMailSender(cfg.smtp_host, cfg.smtp_port, cfg.smtp_from, cfg.mail_sender_name)
    if not sender.ready:
        logger.info("SMTP is not configured; notifications will be skipped.")
    return sender


def log_delivery(
    session: AsyncSession,
    payload: MailPayload,
    status: str,
    error_message: str | None = None,
) -> MailLog:
    log = MailLog(
        event_key=payload.event_key,
        event_type=payload.event_type,
        ticket_id=payload.ticket_id,
        recipient_user_id=payload.recipient_user_id,
        recipient_email=payload.recipient_email,
        subject=payload.subject,
        body_text=payload.body_text,
        body_html=payload.body_html,
        status=status,
        error_message=error_message,
        created_at=utcnow(),
    )
    session.add(log)
    return log
