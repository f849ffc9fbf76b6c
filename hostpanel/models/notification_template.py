from uuid import UUID, uuid4

from sqlalchemy import Boolean, String, Text, Uuid as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from hostpanel.shared.db.base import Base

WELCOME_MESSAGE = "welcome-message"
SERVERS_SUSPENDED = "servers-suspended"


class NotificationTemplate(Base):
    """Admin-editable message template, looked up by name."""

    __tablename__ = "notification_templates"

    id: Mapped[UUID] = mapped_column(PG_UUID(), primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(191), nullable=False, unique=True, index=True)
    subject: Mapped[str] = mapped_column(String(191), nullable=False)
    # string.Template placeholders, e.g. "Hi ${user_name}"
    content: Mapped[str] = mapped_column(Text, nullable=False)
    disabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
