from datetime import datetime, timezone
from decimal import Decimal
from typing import List, TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Numeric,
    String,
    Uuid as PG_UUID,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hostpanel.shared.db.base import Base

if TYPE_CHECKING:
    from hostpanel.models.server import Server


class User(Base):
    """
    Billable account. Owns a credit balance and any number of servers.

    `credits` is only ever changed through single-statement atomic updates
    (see BillingEngine and AccountService); never assign it from Python.
    """

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("credits >= 0", name="credits_non_negative"),
    )

    id: Mapped[UUID] = mapped_column(PG_UUID(), primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(191), nullable=False)
    email: Mapped[str] = mapped_column(String(191), nullable=False, unique=True, index=True)
    credits: Mapped[Decimal] = mapped_column(
        Numeric(14, 4), nullable=False, default=Decimal("0")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    servers: Mapped[List["Server"]] = relationship(back_populates="user")
