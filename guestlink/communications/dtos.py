from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from guestlink.delivery.dtos import Channel


class CommunicationLogError(Exception):
    """Raised when a communication record could not be written."""


class CommunicationStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    OPENED = "opened"
    CLICKED = "clicked"
    FAILED = "failed"
    BOUNCED = "bounced"


# Forward-only progression of a delivered message
STAGE_ORDER = (
    CommunicationStatus.PENDING,
    CommunicationStatus.SENT,
    CommunicationStatus.DELIVERED,
    CommunicationStatus.OPENED,
    CommunicationStatus.CLICKED,
)

ALLOWED_TRANSITIONS: dict[CommunicationStatus, frozenset[CommunicationStatus]] = {
    CommunicationStatus.PENDING: frozenset(
        {
            CommunicationStatus.SENT,
            CommunicationStatus.DELIVERED,
            CommunicationStatus.OPENED,
            CommunicationStatus.CLICKED,
            CommunicationStatus.FAILED,
            CommunicationStatus.BOUNCED,
        }
    ),
    CommunicationStatus.SENT: frozenset(
        {
            CommunicationStatus.DELIVERED,
            CommunicationStatus.OPENED,
            CommunicationStatus.CLICKED,
            CommunicationStatus.BOUNCED,
        }
    ),
    CommunicationStatus.DELIVERED: frozenset(
        {CommunicationStatus.OPENED, CommunicationStatus.CLICKED}
    ),
    CommunicationStatus.OPENED: frozenset({CommunicationStatus.CLICKED}),
    CommunicationStatus.CLICKED: frozenset(),
    CommunicationStatus.FAILED: frozenset(),
    CommunicationStatus.BOUNCED: frozenset(),
}

# Column filled when a record reaches the status
TIMESTAMP_FIELDS: dict[CommunicationStatus, str] = {
    CommunicationStatus.SENT: "sent_at",
    CommunicationStatus.DELIVERED: "delivered_at",
    CommunicationStatus.OPENED: "opened_at",
    CommunicationStatus.CLICKED: "clicked_at",
}


def can_transition(current: CommunicationStatus, new: CommunicationStatus) -> bool:
    return new in ALLOWED_TRANSITIONS[current]


def reached(status: CommunicationStatus, stage: CommunicationStatus) -> bool:
    """Whether a record in `status` got at least as far as `stage`."""
    if status not in STAGE_ORDER:
        return False
    return STAGE_ORDER.index(status) >= STAGE_ORDER.index(stage)


@dataclass(frozen=True)
class NewCommunicationRecord:
    event_id: UUID
    recipient: str
    status: CommunicationStatus
    provider: str
    channel: Channel = Channel.EMAIL
    guest_id: UUID | None = None
    subject: str | None = None
    template_id: str | None = None
    message_id: str | None = None
    error_message: str | None = None
    sent_at: datetime | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CommunicationRecordDTO:
    id: UUID
    event_id: UUID
    recipient: str
    status: CommunicationStatus
    provider: str
    channel: Channel
    guest_id: UUID | None = None
    subject: str | None = None
    template_id: str | None = None
    message_id: str | None = None
    error_message: str | None = None
    sent_at: datetime | None = None
    delivered_at: datetime | None = None
    opened_at: datetime | None = None
    clicked_at: datetime | None = None
    created_at: datetime | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CommunicationStats:
    total: int = 0
    pending: int = 0
    sent: int = 0
    delivered: int = 0
    opened: int = 0
    clicked: int = 0
    failed: int = 0
    bounced: int = 0

    @property
    def delivery_rate(self) -> float:
        return (self.delivered / self.sent) * 100 if self.sent else 0.0


def compute_stats(statuses: list[CommunicationStatus]) -> CommunicationStats:
    """sent/delivered/opened/clicked count every record that got at least that far."""
    return CommunicationStats(
        total=len(statuses),
        pending=sum(1 for s in statuses if s is CommunicationStatus.PENDING),
        sent=sum(1 for s in statuses if reached(s, CommunicationStatus.SENT)),
        delivered=sum(1 for s in statuses if reached(s, CommunicationStatus.DELIVERED)),
        opened=sum(1 for s in statuses if reached(s, CommunicationStatus.OPENED)),
        clicked=sum(1 for s in statuses if reached(s, CommunicationStatus.CLICKED)),
        failed=sum(1 for s in statuses if s is CommunicationStatus.FAILED),
        bounced=sum(1 for s in statuses if s is CommunicationStatus.BOUNCED),
    )
