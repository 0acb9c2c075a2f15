from dataclasses import dataclass
from uuid import UUID


class GuestNotFoundError(Exception):
    """Raised when a guest id does not resolve in the guest directory."""

    def __init__(self, guest_id: UUID) -> None:
        self.guest_id = guest_id
        super().__init__(f"Guest '{guest_id}' not found")


@dataclass(frozen=True)
class GuestContext:
    """Guest summary handed to the RSVP flow.

    Only what the RSVP form needs; administrative fields stay in the directory.
    """

    id: UUID
    event_id: UUID
    first_name: str
    last_name: str
    email: str | None = None
    phone: str | None = None
    side: str | None = None
    relationship: str | None = None
    plus_ones_allowed: int = 0

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
