from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Boolean, DateTime, true

from ..core.clock import utcnow
from .user import Base, new_id


class Company(Base):
    __tablename__ = "companies"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(200))
    # Company policy: may client users comment on their own tickets.
    allow_client_comments: Mapped[bool] = mapped_column(Boolean, default=True, server_default=true())

    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), default=utcnow)
