"""Token persistence. Stores return DTOs, never ORM models."""

import abc
import contextlib
from collections.abc import AsyncIterator
from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from guestlink.config.database import async_session_manager
from guestlink.guests.repository.orm_models import Guest
from guestlink.helpers.time import as_utc
from guestlink.tokens.dtos import EventTokenDTO, RSVPTokenDTO, TokenPersistenceError, TokenStats
from guestlink.tokens.repository.orm_models import RSVPToken


class TokenStore(abc.ABC):
    @abc.abstractmethod
    async def get(self, token: str) -> RSVPTokenDTO | None:
        raise NotImplementedError

    @abc.abstractmethod
    async def exists(self, token: str) -> bool:
        raise NotImplementedError

    @abc.abstractmethod
    async def replace_active(
        self,
        guest_id: UUID,
        token: str,
        expires_at: datetime,
        created_at: datetime,
    ) -> RSVPTokenDTO:
        """
        Deactivate every active token of the guest and insert the new active one.

        Both steps happen in one transaction.
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def deactivate(self, token: str) -> bool:
        """Set is_active=False. Returns whether the token exists."""
        raise NotImplementedError

    @abc.abstractmethod
    async def mark_used(self, token: str, used_at: datetime) -> bool:
        """Set used_at when it is still empty. Returns whether the token exists."""
        raise NotImplementedError

    @abc.abstractmethod
    async def deactivate_expired(self, now: datetime) -> int:
        raise NotImplementedError

    @abc.abstractmethod
    async def stats(self, now: datetime, event_id: UUID | None = None) -> TokenStats:
        raise NotImplementedError

    @abc.abstractmethod
    async def list_for_guest(self, guest_id: UUID) -> list[RSVPTokenDTO]:
        """Every token ever issued to the guest, oldest first, inactive ones included."""
        raise NotImplementedError

    @abc.abstractmethod
    async def list_active_for_event(self, event_id: UUID, now: datetime) -> list[EventTokenDTO]:
        raise NotImplementedError


def to_token_dto(row: RSVPToken) -> RSVPTokenDTO:
    return RSVPTokenDTO(
        id=row.uuid,
        guest_id=row.guest_id,
        token=row.token,
        expires_at=as_utc(row.expires_at),
        is_active=row.is_active,
        created_at=as_utc(row.created_at),
        used_at=as_utc(row.used_at),
    )


def compute_stats(rows: list[tuple[bool, datetime | None, datetime]], now: datetime) -> TokenStats:
    """Aggregate (is_active, used_at, expires_at) rows."""
    active = used = expired = unused = 0
    for is_active, used_at, expires_at in rows:
        is_expired = now > as_utc(expires_at)
        if is_active:
            active += 1
        if used_at is not None:
            used += 1
        # Expired counts every token past its expiry, swept or not
        if is_expired:
            expired += 1
        if is_active and used_at is None and not is_expired:
            unused += 1
    return TokenStats(total=len(rows), active=active, used=used, expired=expired, unused=unused)


class SqlTokenStore(TokenStore):
    """SQL implementation of the token store."""

    def __init__(self, session_overwrite: AsyncSession | None = None):
        self._session_overwrite = session_overwrite

    @contextlib.asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with async_session_manager(session_overwrite=self._session_overwrite) as session:
                yield session
        except SQLAlchemyError as e:
            raise TokenPersistenceError(str(e)) from e

    async def get(self, token: str) -> RSVPTokenDTO | None:
        async with self._session() as session:
            result = await session.execute(select(RSVPToken).where(RSVPToken.token == token))
            row = result.scalar_one_or_none()
            return to_token_dto(row) if row else None

    async def exists(self, token: str) -> bool:
        async with self._session() as session:
            result = await session.execute(
                select(RSVPToken.uuid).where(RSVPToken.token == token).limit(1)
            )
            return result.first() is not None

    async def replace_active(
        self,
        guest_id: UUID,
        token: str,
        expires_at: datetime,
        created_at: datetime,
    ) -> RSVPTokenDTO:
        async with self._session() as session:
            # Row lock on the guest serializes concurrent issuers across processes
            await session.execute(select(Guest.uuid).where(Guest.uuid == guest_id).with_for_update())

            await session.execute(
                update(RSVPToken)
                .where(RSVPToken.guest_id == guest_id, RSVPToken.is_active.is_(True))
                .values(is_active=False)
            )

            row = RSVPToken(
                guest_id=guest_id,
                token=token,
                expires_at=expires_at,
                is_active=True,
                created_at=created_at,
                updated_at=created_at,
            )
            session.add(row)
            await session.flush()
            return to_token_dto(row)

    async def deactivate(self, token: str) -> bool:
        async with self._session() as session:
            result = await session.execute(
                update(RSVPToken)
                .where(RSVPToken.token == token, RSVPToken.is_active.is_(True))
                .values(is_active=False)
            )
            if result.rowcount:
                return True
            found = await session.execute(
                select(RSVPToken.uuid).where(RSVPToken.token == token).limit(1)
            )
            return found.first() is not None

    async def mark_used(self, token: str, used_at: datetime) -> bool:
        async with self._session() as session:
            result = await session.execute(
                update(RSVPToken)
                .where(RSVPToken.token == token, RSVPToken.used_at.is_(None))
                .values(used_at=used_at)
            )
            if result.rowcount:
                return True
            found = await session.execute(
                select(RSVPToken.uuid).where(RSVPToken.token == token).limit(1)
            )
            return found.first() is not None

    async def deactivate_expired(self, now: datetime) -> int:
        async with self._session() as session:
            result = await session.execute(
                update(RSVPToken)
                .where(RSVPToken.is_active.is_(True), RSVPToken.expires_at < now)
                .values(is_active=False)
                .execution_options(synchronize_session="fetch")
            )
            return result.rowcount or 0

    async def stats(self, now: datetime, event_id: UUID | None = None) -> TokenStats:
        stmt = select(RSVPToken.is_active, RSVPToken.used_at, RSVPToken.expires_at)
        if event_id is not None:
            stmt = stmt.join(Guest, RSVPToken.guest_id == Guest.uuid).where(
                Guest.event_id == event_id
            )
        async with self._session() as session:
            result = await session.execute(stmt)
            return compute_stats([tuple(row) for row in result.all()], now)

    async def list_active_for_event(self, event_id: UUID, now: datetime) -> list[EventTokenDTO]:
        stmt = (
            select(RSVPToken, Guest)
            .join(Guest, RSVPToken.guest_id == Guest.uuid)
            .where(Guest.event_id == event_id, RSVPToken.is_active.is_(True))
            .order_by(RSVPToken.created_at)
        )
        async with self._session() as session:
            result = await session.execute(stmt)
            return [
                EventTokenDTO(
                    token=row.token,
                    guest_id=row.guest_id,
                    first_name=guest.first_name,
                    last_name=guest.last_name,
                    email=guest.email,
                    expires_at=as_utc(row.expires_at),
                    created_at=as_utc(row.created_at),
                    used_at=as_utc(row.used_at),
                    is_expired=now > as_utc(row.expires_at),
                )
                for row, guest in result.all()
            ]

    async def list_for_guest(self, guest_id: UUID) -> list[RSVPTokenDTO]:
        stmt = (
            select(RSVPToken)
            .where(RSVPToken.guest_id == guest_id)
            .order_by(RSVPToken.created_at, RSVPToken.uuid)
        )
        async with self._session() as session:
            result = await session.execute(stmt)
            return [to_token_dto(row) for row in result.scalars().all()]
