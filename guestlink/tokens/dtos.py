from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID

from guestlink.guests.dtos import GuestContext


class TokenGenerationError(Exception):
    """Raised when no unused token value could be generated."""

    def __init__(self, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(f"Could not generate a unique RSVP token after {attempts} attempts")


class TokenPersistenceError(Exception):
    """Raised when the token table could not be written."""


class InvalidReason(str, Enum):
    NOT_FOUND = "not_found"
    DEACTIVATED = "deactivated"
    EXPIRED = "expired"
    USED = "used"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class RSVPTokenDTO:
    """Stored token row."""

    id: UUID
    guest_id: UUID
    token: str
    expires_at: datetime
    is_active: bool
    created_at: datetime
    used_at: datetime | None = None


@dataclass(frozen=True)
class TokenValidationResult:
    valid: bool
    guest: GuestContext | None = None
    reason: InvalidReason | None = None

    @classmethod
    def ok(cls, guest: GuestContext) -> "TokenValidationResult":
        return cls(valid=True, guest=guest)

    @classmethod
    def invalid(cls, reason: InvalidReason) -> "TokenValidationResult":
        return cls(valid=False, reason=reason)


@dataclass(frozen=True)
class IssuedToken:
    """One entry of a batch issuance; either token or error is set."""

    guest_id: UUID
    token: str | None = None
    rsvp_url: str | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.token is not None


@dataclass(frozen=True)
class TokenStats:
    total: int
    active: int
    used: int
    expired: int
    unused: int

    @property
    def usage_rate(self) -> float:
        return (self.used / self.total) * 100 if self.total else 0.0


@dataclass(frozen=True)
class EventTokenDTO:
    """Active token of an event, as listed for admins."""

    token: str
    guest_id: UUID
    first_name: str
    last_name: str
    email: str | None
    expires_at: datetime
    created_at: datetime
    used_at: datetime | None
    is_expired: bool

    @property
    def is_used(self) -> bool:
        return self.used_at is not None
