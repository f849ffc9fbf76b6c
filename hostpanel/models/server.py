from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    Uuid as PG_UUID,
    false,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from hostpanel.shared.core.config import get_settings
from hostpanel.shared.core.pricing import price_per_day, price_per_hour
from hostpanel.shared.db.base import Base

if TYPE_CHECKING:
    from hostpanel.models.account import User


class Server(Base):
    """
    Local mirror of a server provisioned on the Pterodactyl panel.

    Rows are only created from a successful provider response and only
    removed through LifecycleReconciler.reconcile_delete, which tears down
    the remote server first.
    """

    __tablename__ = "servers"
    __table_args__ = (
        CheckConstraint("price >= 0", name="price_non_negative"),
    )

    id: Mapped[UUID] = mapped_column(PG_UUID(), primary_key=True, default=uuid4)
    pterodactyl_id: Mapped[int] = mapped_column(
        Integer, nullable=False, unique=True, index=True
    )
    identifier: Mapped[str] = mapped_column(String(64), nullable=False)
    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id"), nullable=False, index=True
    )

    name: Mapped[str] = mapped_column(String(191), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    suspended: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false(), index=True
    )

    # Limits
    memory: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cpu: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    swap: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    disk: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    io: Mapped[int] = mapped_column(Integer, nullable=False, default=500)
    threads: Mapped[Optional[str]] = mapped_column(String(191), nullable=True)
    oom_disabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Feature limits
    databases: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    backups: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    allocations: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Provider catalog references
    node_id: Mapped[int] = mapped_column(Integer, nullable=False)
    allocation_id: Mapped[int] = mapped_column(Integer, nullable=False)
    nest_id: Mapped[int] = mapped_column(Integer, nullable=False)
    egg_id: Mapped[int] = mapped_column(Integer, nullable=False)

    # Monthly price in credits
    price: Mapped[Decimal] = mapped_column(
        Numeric(14, 4), nullable=False, default=Decimal("0")
    )
    # Start of the last hourly period this server was charged for.
    last_billed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    user: Mapped["User"] = relationship(back_populates="servers")

    @validates("pterodactyl_id")
    def _validate_pterodactyl_id(self, _key: str, value: int) -> int:
        current = self.__dict__.get("pterodactyl_id")
        if current is not None and current != value:
            raise ValueError("pterodactyl_id is immutable once set")
        return value

    @property
    def price_per_hour(self) -> Decimal:
        return price_per_hour(self.price)

    @property
    def price_per_day(self) -> Decimal:
        return price_per_day(self.price)

    @property
    def client_url(self) -> str:
        return f"{get_settings().pterodactyl_base_url}/server/{self.identifier}"

    @property
    def admin_url(self) -> str:
        return (
            f"{get_settings().pterodactyl_base_url}"
            f"/admin/servers/view/{self.pterodactyl_id}"
        )

    def last_billed_at_utc(self) -> Optional[datetime]:
        """SQLite hands timestamps back naive; they are always stored as UTC."""
        value = self.last_billed_at
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value
