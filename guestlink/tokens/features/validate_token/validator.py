import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError

from guestlink.guests.repository.read_models import GuestDirectory
from guestlink.helpers.time import utcnow
from guestlink.tokens.dtos import InvalidReason, TokenPersistenceError, TokenValidationResult
from guestlink.tokens.repository.store import TokenStore

logger = logging.getLogger(__name__)

# token_urlsafe(32) yields 43 characters, anything far longer is not ours
MAX_TOKEN_LENGTH = 255


def url_for(token: str, base_url: str) -> str:
    return f"{base_url.rstrip('/')}/rsvp/{token}"


class TokenValidator:
    def __init__(
        self,
        store: TokenStore,
        guest_directory: GuestDirectory,
        clock: Callable[[], datetime] = utcnow,
        single_use: bool = False,
    ) -> None:
        self._store = store
        self._guest_directory = guest_directory
        self._clock = clock
        self._single_use = single_use

    async def validate(self, token: str) -> TokenValidationResult:
        """
        Check a presented token.

        Order matters: unknown, then deactivated, then expired (which deactivates
        the row). A deactivated row past its expiry reports EXPIRED, so repeated
        checks of an expired token agree. Never raises; storage errors come back
        as UNAVAILABLE.
        """
        if not token or not token.strip() or len(token) > MAX_TOKEN_LENGTH:
            return TokenValidationResult.invalid(InvalidReason.NOT_FOUND)

        try:
            record = await self._store.get(token)
            if record is None:
                return TokenValidationResult.invalid(InvalidReason.NOT_FOUND)

            expired = self._clock() > record.expires_at
            if not record.is_active:
                # Expired rows get deactivated on first sight and keep reporting expiry
                reason = InvalidReason.EXPIRED if expired else InvalidReason.DEACTIVATED
                return TokenValidationResult.invalid(reason)

            if expired:
                await self._store.deactivate(token)
                logger.info(f"RSVP token of guest {record.guest_id} expired, deactivated")
                return TokenValidationResult.invalid(InvalidReason.EXPIRED)

            if self._single_use and record.used_at is not None:
                return TokenValidationResult.invalid(InvalidReason.USED)

            guest = await self._guest_directory.get_guest_context(record.guest_id)
        except (TokenPersistenceError, SQLAlchemyError):
            logger.exception("Could not validate RSVP token")
            return TokenValidationResult.invalid(InvalidReason.UNAVAILABLE)

        if guest is None:
            return TokenValidationResult.invalid(InvalidReason.NOT_FOUND)
        return TokenValidationResult.ok(guest)

    async def mark_used(self, token: str) -> bool:
        """Record the first RSVP submission. Later calls keep the first timestamp."""
        return await self._store.mark_used(token, self._clock())

    async def cleanup_expired(self) -> int:
        count = await self._store.deactivate_expired(self._clock())
        if count:
            logger.info(f"Deactivated {count} expired RSVP tokens")
        return count

    @staticmethod
    def url_for(token: str, base_url: str) -> str:
        return url_for(token, base_url)
