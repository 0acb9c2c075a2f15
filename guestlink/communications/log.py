"""Append-only audit log of delivery attempts."""

import abc
import contextlib
import logging
from collections.abc import AsyncIterator
from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from guestlink.communications.dtos import (
    TIMESTAMP_FIELDS,
    CommunicationLogError,
    CommunicationRecordDTO,
    CommunicationStats,
    CommunicationStatus,
    NewCommunicationRecord,
    can_transition,
    compute_stats,
)
from guestlink.communications.repository.orm_models import CommunicationRecord
from guestlink.config.database import async_session_manager
from guestlink.delivery.dtos import Channel
from guestlink.helpers.time import as_utc, utcnow

logger = logging.getLogger(__name__)


class CommunicationLog(abc.ABC):
    @abc.abstractmethod
    async def append(self, record: NewCommunicationRecord) -> UUID:
        """
        Insert a new record.

        Raises:
            CommunicationLogError: the record could not be written
        """
        pass

    @abc.abstractmethod
    async def update_delivery_status(
        self,
        message_id: str,
        status: CommunicationStatus,
        timestamp: datetime,
    ) -> bool:
        """
        Advance the record of a provider message id.

        Only forward transitions are applied, and only empty timestamps are filled.

        Returns:
            False when the message id is unknown or the transition is rejected
        """
        pass

    @abc.abstractmethod
    async def stats_for(self, event_id: UUID) -> CommunicationStats:
        pass

    @abc.abstractmethod
    async def list_for_event(
        self,
        event_id: UUID,
        guest_id: UUID | None = None,
        channel: Channel | None = None,
        limit: int = 100,
    ) -> list[CommunicationRecordDTO]:
        pass

    @abc.abstractmethod
    async def get_by_message_id(self, message_id: str) -> CommunicationRecordDTO | None:
        pass


def to_record_dto(row: CommunicationRecord) -> CommunicationRecordDTO:
    return CommunicationRecordDTO(
        id=row.uuid,
        event_id=row.event_id,
        guest_id=row.guest_id,
        channel=Channel(row.channel),
        recipient=row.recipient,
        subject=row.subject,
        template_id=row.template_id,
        status=CommunicationStatus(row.status),
        provider=row.provider,
        message_id=row.message_id,
        error_message=row.error_message,
        sent_at=as_utc(row.sent_at),
        delivered_at=as_utc(row.delivered_at),
        opened_at=as_utc(row.opened_at),
        clicked_at=as_utc(row.clicked_at),
        created_at=as_utc(row.created_at),
        metadata=dict(row.meta or {}),
    )


class SqlCommunicationLog(CommunicationLog):
    """SQL database implementation of CommunicationLog."""

    def __init__(self, session_overwrite: AsyncSession | None = None):
        self._session_overwrite = session_overwrite

    @contextlib.asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with async_session_manager(session_overwrite=self._session_overwrite) as session:
                yield session
        except SQLAlchemyError as e:
            raise CommunicationLogError(str(e)) from e

    async def append(self, record: NewCommunicationRecord) -> UUID:
        record_id = uuid4()
        now = utcnow()
        row = CommunicationRecord(
            uuid=record_id,
            event_id=record.event_id,
            guest_id=record.guest_id,
            channel=record.channel.value,
            recipient=record.recipient,
            subject=record.subject,
            template_id=record.template_id,
            status=record.status.value,
            provider=record.provider,
            message_id=record.message_id,
            error_message=record.error_message,
            sent_at=record.sent_at,
            meta=record.metadata,
            created_at=now,
            updated_at=now,
        )
        async with self._session() as session:
            session.add(row)
            await session.flush()
        return record_id

    async def update_delivery_status(
        self,
        message_id: str,
        status: CommunicationStatus,
        timestamp: datetime,
    ) -> bool:
        async with self._session() as session:
            result = await session.execute(
                select(CommunicationRecord)
                .where(CommunicationRecord.message_id == message_id)
                .with_for_update()
            )
            row = result.scalars().first()
            if row is None:
                return False

            current = CommunicationStatus(row.status)
            if not can_transition(current, status):
                logger.info(
                    f"Ignoring status {status.value} for message {message_id}, "
                    f"record is already {current.value}"
                )
                return False

            row.status = status.value
            if column := TIMESTAMP_FIELDS.get(status):
                if getattr(row, column) is None:
                    setattr(row, column, timestamp)
            await session.flush()
            return True

    async def stats_for(self, event_id: UUID) -> CommunicationStats:
        async with self._session() as session:
            result = await session.execute(
                select(CommunicationRecord.status).where(CommunicationRecord.event_id == event_id)
            )
            return compute_stats([CommunicationStatus(status) for status in result.scalars()])

    async def list_for_event(
        self,
        event_id: UUID,
        guest_id: UUID | None = None,
        channel: Channel | None = None,
        limit: int = 100,
    ) -> list[CommunicationRecordDTO]:
        stmt = select(CommunicationRecord).where(CommunicationRecord.event_id == event_id)
        if guest_id is not None:
            stmt = stmt.where(CommunicationRecord.guest_id == guest_id)
        if channel is not None:
            stmt = stmt.where(CommunicationRecord.channel == channel.value)
        stmt = stmt.order_by(CommunicationRecord.created_at.desc()).limit(limit)

        async with self._session() as session:
            result = await session.execute(stmt)
            return [to_record_dto(row) for row in result.scalars().all()]

    async def get_by_message_id(self, message_id: str) -> CommunicationRecordDTO | None:
        async with self._session() as session:
            result = await session.execute(
                select(CommunicationRecord).where(CommunicationRecord.message_id == message_id)
            )
            row = result.scalars().first()
            return to_record_dto(row) if row else None


class NoOpCommunicationLog(CommunicationLog):
    """No-op implementation for when logging is disabled."""

    async def append(self, record: NewCommunicationRecord) -> UUID:
        return uuid4()

    async def update_delivery_status(
        self,
        message_id: str,
        status: CommunicationStatus,
        timestamp: datetime,
    ) -> bool:
        return False

    async def stats_for(self, event_id: UUID) -> CommunicationStats:
        return CommunicationStats()

    async def list_for_event(
        self,
        event_id: UUID,
        guest_id: UUID | None = None,
        channel: Channel | None = None,
        limit: int = 100,
    ) -> list[CommunicationRecordDTO]:
        return []

    async def get_by_message_id(self, message_id: str) -> CommunicationRecordDTO | None:
        return None
