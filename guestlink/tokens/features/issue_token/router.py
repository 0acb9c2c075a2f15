from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from guestlink.config.settings import settings
from guestlink.guests.dtos import GuestNotFoundError
from guestlink.guests.repository.read_models import SqlGuestDirectory
from guestlink.tokens.dtos import TokenGenerationError, TokenPersistenceError
from guestlink.tokens.features.issue_token.write_model import TokenIssuer, guest_locks
from guestlink.tokens.features.validate_token.validator import url_for
from guestlink.tokens.repository.store import SqlTokenStore
from guestlink.tokens.urls import ISSUE_TOKENS_URL, REGENERATE_TOKEN_URL, REVOKE_TOKEN_URL

router = APIRouter()


class IssueTokensRequest(BaseModel):
    guest_ids: list[UUID] = Field(min_length=1, max_length=1000)
    ttl_days: int | None = Field(default=None, gt=0)


class IssuedTokenResponse(BaseModel):
    guest_id: UUID
    success: bool
    token: str | None = None
    rsvp_url: str | None = None
    error: str | None = None


class IssueTokensResponse(BaseModel):
    results: list[IssuedTokenResponse]
    issued: int
    failed: int


class RegenerateTokenRequest(BaseModel):
    ttl_days: int | None = Field(default=None, gt=0)


class RegenerateTokenResponse(BaseModel):
    guest_id: UUID
    token: str
    rsvp_url: str


class RevokeTokenRequest(BaseModel):
    token: str


class RevokeTokenResponse(BaseModel):
    revoked: bool


def get_token_issuer() -> TokenIssuer:
    """Dependency to get the token issuer."""
    return TokenIssuer(
        store=SqlTokenStore(),
        guest_directory=SqlGuestDirectory(),
        base_url=settings.frontend_url,
        locks=guest_locks,
    )


@router.post(ISSUE_TOKENS_URL, response_model=IssueTokensResponse)
async def issue_tokens(
    event_id: UUID,
    request: IssueTokensRequest,
    issuer: TokenIssuer = Depends(get_token_issuer),
) -> IssueTokensResponse:
    """
    Issue RSVP links for a batch of guests.

    Each guest gets its own result; one failure does not stop the batch.
    """
    issued = await issuer.issue_batch(request.guest_ids, request.ttl_days or settings.token_ttl_days)
    results = [
        IssuedTokenResponse(
            guest_id=item.guest_id,
            success=item.success,
            token=item.token,
            rsvp_url=item.rsvp_url,
            error=item.error,
        )
        for item in issued
    ]
    succeeded = sum(1 for item in issued if item.success)
    return IssueTokensResponse(results=results, issued=succeeded, failed=len(issued) - succeeded)


@router.post(REGENERATE_TOKEN_URL, response_model=RegenerateTokenResponse)
async def regenerate_token(
    guest_id: UUID,
    request: RegenerateTokenRequest | None = None,
    issuer: TokenIssuer = Depends(get_token_issuer),
) -> RegenerateTokenResponse:
    """Replace the guest's RSVP link. The previous link stops working."""
    ttl_days = (request.ttl_days if request else None) or settings.token_ttl_days
    try:
        token = await issuer.regenerate(guest_id, ttl_days)
    except GuestNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (TokenGenerationError, TokenPersistenceError):
        raise HTTPException(status_code=503, detail="Could not issue a new RSVP link")

    return RegenerateTokenResponse(
        guest_id=guest_id,
        token=token,
        rsvp_url=url_for(token, settings.frontend_url),
    )


@router.post(REVOKE_TOKEN_URL, response_model=RevokeTokenResponse)
async def revoke_token(
    request: RevokeTokenRequest,
    issuer: TokenIssuer = Depends(get_token_issuer),
) -> RevokeTokenResponse:
    """Deactivate an RSVP link. Revoking twice is fine."""
    revoked = await issuer.revoke(request.token)
    if not revoked:
        raise HTTPException(status_code=404, detail="Token not found")
    return RevokeTokenResponse(revoked=True)
