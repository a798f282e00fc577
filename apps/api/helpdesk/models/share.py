from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, DateTime, ForeignKey

from ..core.clock import utcnow
from .user import Base, new_id


class TicketShare(Base):
    __tablename__ = "ticket_shares"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    # sha256 of the opaque token; the raw token is never stored.
    token_hash: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    ticket_id: Mapped[str] = mapped_column(String(36), ForeignKey("tickets.id", ondelete="CASCADE"), index=True)

    expires_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True))
    password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)

    issued_by: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"))
    issued_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), default=utcnow)
    revoked_at: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), nullable=True)
