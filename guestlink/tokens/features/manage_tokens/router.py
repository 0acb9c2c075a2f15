from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from guestlink.config.settings import settings
from guestlink.helpers.time import utcnow
from guestlink.tokens.features.validate_token.router import get_token_validator
from guestlink.tokens.features.validate_token.validator import TokenValidator, url_for
from guestlink.tokens.repository.store import SqlTokenStore, TokenStore
from guestlink.tokens.urls import (
    CLEANUP_TOKENS_URL,
    EVENT_TOKENS_URL,
    GUEST_TOKENS_URL,
    TOKEN_STATS_URL,
)

router = APIRouter()


class CleanupResponse(BaseModel):
    deactivated: int


class EventTokenResponse(BaseModel):
    token: str
    rsvp_url: str
    guest_id: UUID
    guest_name: str
    email: str | None = None
    expires_at: datetime
    created_at: datetime
    used_at: datetime | None = None
    is_used: bool
    is_expired: bool


class GuestTokenResponse(BaseModel):
    token: str
    rsvp_url: str
    is_active: bool
    expires_at: datetime
    created_at: datetime
    used_at: datetime | None = None
    is_expired: bool


class TokenStatsResponse(BaseModel):
    total: int
    active: int
    used: int
    expired: int
    unused: int
    usage_rate: float


def get_token_store() -> TokenStore:
    """Dependency to get the token store."""
    return SqlTokenStore()


@router.post(CLEANUP_TOKENS_URL, response_model=CleanupResponse)
async def cleanup_expired_tokens(
    validator: TokenValidator = Depends(get_token_validator),
) -> CleanupResponse:
    """Deactivate every active token past its expiry."""
    return CleanupResponse(deactivated=await validator.cleanup_expired())


@router.get(EVENT_TOKENS_URL, response_model=list[EventTokenResponse])
async def list_event_tokens(
    event_id: UUID,
    store: TokenStore = Depends(get_token_store),
) -> list[EventTokenResponse]:
    tokens = await store.list_active_for_event(event_id, utcnow())
    return [
        EventTokenResponse(
            token=item.token,
            rsvp_url=url_for(item.token, settings.frontend_url),
            guest_id=item.guest_id,
            guest_name=f"{item.first_name} {item.last_name}".strip(),
            email=item.email,
            expires_at=item.expires_at,
            created_at=item.created_at,
            used_at=item.used_at,
            is_used=item.is_used,
            is_expired=item.is_expired,
        )
        for item in tokens
    ]


@router.get(TOKEN_STATS_URL, response_model=TokenStatsResponse)
async def token_stats(
    event_id: UUID | None = None,
    store: TokenStore = Depends(get_token_store),
) -> TokenStatsResponse:
    stats = await store.stats(utcnow(), event_id=event_id)
    return TokenStatsResponse(
        total=stats.total,
        active=stats.active,
        used=stats.used,
        expired=stats.expired,
        unused=stats.unused,
        usage_rate=round(stats.usage_rate, 2),
    )


@router.get(GUEST_TOKENS_URL, response_model=list[GuestTokenResponse])
async def list_guest_tokens(
    guest_id: UUID,
    store: TokenStore = Depends(get_token_store),
) -> list[GuestTokenResponse]:
    """Token history of one guest, revoked and superseded links included."""
    now = utcnow()
    return [
        GuestTokenResponse(
            token=item.token,
            rsvp_url=url_for(item.token, settings.frontend_url),
            is_active=item.is_active,
            expires_at=item.expires_at,
            created_at=item.created_at,
            used_at=item.used_at,
            is_expired=now > item.expires_at,
        )
        for item in await store.list_for_guest(guest_id)
    ]
