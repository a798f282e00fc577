from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Boolean, ForeignKey

from .user import Base


class NotificationSetting(Base):
    __tablename__ = "user_notification_settings"

    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    email_on_new_ticket: Mapped[bool] = mapped_column(Boolean, default=True)
    email_on_status_change: Mapped[bool] = mapped_column(Boolean, default=True)
    email_on_assignment: Mapped[bool] = mapped_column(Boolean, default=True)
    email_on_comment: Mapped[bool] = mapped_column(Boolean, default=True)
