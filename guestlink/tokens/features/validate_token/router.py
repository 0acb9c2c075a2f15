from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from guestlink.config.settings import settings
from guestlink.guests.repository.read_models import SqlGuestDirectory
from guestlink.tokens.dtos import TokenPersistenceError
from guestlink.tokens.features.validate_token.validator import TokenValidator
from guestlink.tokens.repository.store import SqlTokenStore
from guestlink.tokens.urls import MARK_TOKEN_USED_URL, VALIDATE_TOKEN_URL

router = APIRouter()

# Same message for every invalid reason, callers learn nothing about the token
INVALID_LINK_MESSAGE = "This link is no longer valid"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TokenRequest(BaseModel):
    token: str


class GuestResponse(CamelModel):
    id: UUID
    event_id: UUID
    first_name: str
    last_name: str
    email: str | None = None
    phone: str | None = None
    side: str | None = None
    relationship: str | None = None
    plus_ones_allowed: int = 0


class ValidateTokenResponse(CamelModel):
    is_valid: bool
    guest: GuestResponse | None = None
    error: str | None = None


class MarkUsedResponse(BaseModel):
    marked: bool


def get_token_validator() -> TokenValidator:
    """Dependency to get the token validator."""
    return TokenValidator(
        store=SqlTokenStore(),
        guest_directory=SqlGuestDirectory(),
        single_use=settings.token_single_use,
    )


@router.post(
    VALIDATE_TOKEN_URL,
    response_model=ValidateTokenResponse,
    response_model_exclude_none=True,
)
async def validate_token(
    request: TokenRequest,
    validator: TokenValidator = Depends(get_token_validator),
) -> ValidateTokenResponse:
    """
    Check an RSVP link token.

    Always answers 200; an invalid token gets a generic error message.
    """
    result = await validator.validate(request.token)
    if not result.valid:
        return ValidateTokenResponse(is_valid=False, error=INVALID_LINK_MESSAGE)

    guest = result.guest
    return ValidateTokenResponse(
        is_valid=True,
        guest=GuestResponse(
            id=guest.id,
            event_id=guest.event_id,
            first_name=guest.first_name,
            last_name=guest.last_name,
            email=guest.email,
            phone=guest.phone,
            side=guest.side,
            relationship=guest.relationship,
            plus_ones_allowed=guest.plus_ones_allowed,
        ),
    )


@router.post(MARK_TOKEN_USED_URL, response_model=MarkUsedResponse)
async def mark_token_used(
    request: TokenRequest,
    validator: TokenValidator = Depends(get_token_validator),
) -> MarkUsedResponse:
    """Record that the guest submitted their RSVP with this token."""
    try:
        marked = await validator.mark_used(request.token)
    except TokenPersistenceError:
        raise HTTPException(status_code=503, detail="RSVP links are temporarily unavailable")
    return MarkUsedResponse(marked=marked)
