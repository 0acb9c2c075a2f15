import abc
from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from guestlink.config.database import async_session_manager
from guestlink.guests.dtos import GuestContext
from guestlink.guests.repository.orm_models import Guest


class GuestDirectory(abc.ABC):
    @abc.abstractmethod
    async def get_guest_context(self, guest_id: UUID) -> GuestContext | None:
        """Look up the guest summary for one guest, None when unknown."""
        raise NotImplementedError

    async def get_guest_contexts(self, guest_ids: Iterable[UUID]) -> dict[UUID, GuestContext]:
        contexts = {}
        for guest_id in guest_ids:
            context = await self.get_guest_context(guest_id)
            if context is not None:
                contexts[guest_id] = context
        return contexts


def to_guest_context(guest: Guest) -> GuestContext:
    return GuestContext(
        id=guest.uuid,
        event_id=guest.event_id,
        first_name=guest.first_name,
        last_name=guest.last_name,
        email=guest.email,
        phone=guest.phone,
        side=guest.side,
        relationship=guest.relationship,
        plus_ones_allowed=guest.plus_ones_allowed or 0,
    )


class SqlGuestDirectory(GuestDirectory):
    """SQL implementation of the guest directory."""

    def __init__(self, session_overwrite: AsyncSession | None = None):
        self._session_overwrite = session_overwrite

    async def get_guest_context(self, guest_id: UUID) -> GuestContext | None:
        async with async_session_manager(session_overwrite=self._session_overwrite) as session:
            result = await session.execute(select(Guest).where(Guest.uuid == guest_id))
            guest = result.scalar_one_or_none()
            if guest is None:
                return None
            return to_guest_context(guest)

    async def get_guest_contexts(self, guest_ids: Iterable[UUID]) -> dict[UUID, GuestContext]:
        guest_ids = list(guest_ids)
        if not guest_ids:
            return {}
        async with async_session_manager(session_overwrite=self._session_overwrite) as session:
            result = await session.execute(select(Guest).where(Guest.uuid.in_(guest_ids)))
            return {guest.uuid: to_guest_context(guest) for guest in result.scalars().all()}
