from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, DateTime, ForeignKey, Integer, Text

from ..core.clock import utcnow
from .user import Base, new_id

class TicketHistory(Base):
    __tablename__ = "ticket_history"

    # Insertion order; entries written in one commit may share created_at.
    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(36), unique=True, index=True, default=new_id)

    ticket_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tickets.id", ondelete="CASCADE"), index=True
    )
    actor_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id")
    )

    # e.g. "created", "status_change", "assignment_change", "priority_change", "resolved"
    action: Mapped[str] = mapped_column(String(32))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    old_value: Mapped[str | None] = mapped_column(String(200), nullable=True)
    new_value: Mapped[str | None] = mapped_column(String(200), nullable=True)

    created_at: Mapped[DateTime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
