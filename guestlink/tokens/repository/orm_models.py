from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, DateTime, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column

from guestlink.config.table_names import TableNames
from guestlink.models.base import Base, TimeStamp


class RSVPToken(Base, TimeStamp):
    __tablename__ = TableNames.RSVP_TOKENS.value
    __table_args__ = (
        # At most one active token per guest
        Index(
            "uq_rsvp_tokens_active_guest",
            "guest_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active"),
        ),
    )

    # No foreign key: tokens outlive deleted guests for audit
    guest_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    token: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    # Informational only, a used token is not deactivated
    used_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<RSVPToken guest={self.guest_id} active={self.is_active}>"
