"""Issuing, rotating and revoking RSVP tokens."""

import asyncio
import contextlib
import logging
import secrets
from collections.abc import AsyncIterator, Callable, Iterable
from datetime import datetime, timedelta
from uuid import UUID

from guestlink.guests.dtos import GuestNotFoundError
from guestlink.guests.repository.read_models import GuestDirectory
from guestlink.helpers.time import utcnow
from guestlink.tokens.dtos import IssuedToken, TokenGenerationError
from guestlink.tokens.features.validate_token.validator import url_for
from guestlink.tokens.repository.store import TokenStore

logger = logging.getLogger(__name__)

# 32 random bytes, 256 bits of entropy
TOKEN_BYTES = 32
MAX_GENERATION_ATTEMPTS = 5


def generate_token_value() -> str:
    return secrets.token_urlsafe(TOKEN_BYTES)


class GuestLocks:
    """One asyncio.Lock per guest id, dropped once nobody holds or waits on it."""

    def __init__(self) -> None:
        self._locks: dict[UUID, asyncio.Lock] = {}
        self._users: dict[UUID, int] = {}

    @contextlib.asynccontextmanager
    async def hold(self, guest_id: UUID) -> AsyncIterator[None]:
        lock = self._locks.setdefault(guest_id, asyncio.Lock())
        self._users[guest_id] = self._users.get(guest_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[guest_id] -= 1
            if not self._users[guest_id]:
                del self._users[guest_id]
                del self._locks[guest_id]


# Shared by every issuer in the process; issuers are built per request
guest_locks = GuestLocks()


class TokenIssuer:
    def __init__(
        self,
        store: TokenStore,
        guest_directory: GuestDirectory,
        base_url: str,
        clock: Callable[[], datetime] = utcnow,
        token_factory: Callable[[], str] = generate_token_value,
        locks: GuestLocks | None = None,
    ) -> None:
        self._store = store
        self._guest_directory = guest_directory
        self._base_url = base_url
        self._clock = clock
        self._token_factory = token_factory
        self._locks = locks or guest_locks

    async def _new_token_value(self) -> str:
        for _ in range(MAX_GENERATION_ATTEMPTS):
            value = self._token_factory()
            if not await self._store.exists(value):
                return value
            logger.warning("RSVP token collision, generating a new value")
        raise TokenGenerationError(MAX_GENERATION_ATTEMPTS)

    async def issue(self, guest_id: UUID, ttl_days: int) -> str:
        """
        Issue a new active token for the guest, superseding any previous one.

        Raises:
            ValueError: ttl_days is not positive
            GuestNotFoundError: the guest directory does not know the guest
            TokenGenerationError: no unused token value could be produced
            TokenPersistenceError: the token table could not be written
        """
        if ttl_days <= 0:
            raise ValueError("ttl_days must be positive")

        if await self._guest_directory.get_guest_context(guest_id) is None:
            raise GuestNotFoundError(guest_id)

        async with self._locks.hold(guest_id):
            value = await self._new_token_value()
            now = self._clock()
            await self._store.replace_active(
                guest_id=guest_id,
                token=value,
                expires_at=now + timedelta(days=ttl_days),
                created_at=now,
            )

        logger.info(f"Issued RSVP token for guest {guest_id}, valid for {ttl_days} days")
        return value

    async def regenerate(self, guest_id: UUID, ttl_days: int) -> str:
        return await self.issue(guest_id, ttl_days)

    async def issue_batch(self, guest_ids: Iterable[UUID], ttl_days: int) -> list[IssuedToken]:
        """Issue tokens for many guests; one guest failing does not stop the others."""
        results = []
        for guest_id in guest_ids:
            try:
                token = await self.issue(guest_id, ttl_days)
            except GuestNotFoundError as e:
                results.append(IssuedToken(guest_id=guest_id, error=str(e)))
            except Exception as e:
                logger.exception(f"Failed to issue RSVP token for guest {guest_id}")
                results.append(IssuedToken(guest_id=guest_id, error=str(e) or type(e).__name__))
            else:
                results.append(
                    IssuedToken(
                        guest_id=guest_id,
                        token=token,
                        rsvp_url=url_for(token, self._base_url),
                    )
                )
        return results

    async def revoke(self, token: str) -> bool:
        """Deactivate a token. Safe to call repeatedly; False when the token is unknown."""
        revoked = await self._store.deactivate(token)
        if revoked:
            logger.info("Revoked RSVP token")
        return revoked
