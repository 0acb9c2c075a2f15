from uuid import UUID

from sqlalchemy import Boolean, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from guestlink.config.table_names import TableNames
from guestlink.models.base import Base, TimeStamp


class Guest(Base, TimeStamp):
    """Read-only mapping of the guest table owned by guest management."""

    __tablename__ = TableNames.GUESTS.value

    event_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    first_name: Mapped[str] = mapped_column(String(255), nullable=False)
    last_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    side: Mapped[str | None] = mapped_column(String(50), nullable=True)
    relationship: Mapped[str | None] = mapped_column(String(100), nullable=True)
    plus_ones_allowed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Administrative fields, never exposed to guests
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_vip: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    def __repr__(self) -> str:
        return f"<Guest {self.first_name} {self.last_name}>"
