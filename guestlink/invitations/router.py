from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from guestlink.communications.router import get_delivery_dispatcher
from guestlink.config.settings import settings
from guestlink.delivery.dispatcher import DeliveryDispatcher
from guestlink.guests.dtos import GuestNotFoundError
from guestlink.guests.repository.read_models import SqlGuestDirectory
from guestlink.invitations.service import InvitationService
from guestlink.invitations.urls import SEND_INVITATION_URL
from guestlink.tokens.dtos import TokenGenerationError, TokenPersistenceError
from guestlink.tokens.features.issue_token.router import get_token_issuer
from guestlink.tokens.features.issue_token.write_model import TokenIssuer

router = APIRouter()


class SendInvitationRequest(BaseModel):
    ttl_days: int | None = Field(default=None, gt=0)
    variables: dict[str, str] = {}


class SendInvitationResponse(BaseModel):
    guest_id: UUID
    token: str
    rsvp_url: str
    sent: bool
    provider: str | None = None
    message_id: str | None = None
    warning: str | None = None


def get_invitation_service(
    issuer: TokenIssuer = Depends(get_token_issuer),
    dispatcher: DeliveryDispatcher = Depends(get_delivery_dispatcher),
) -> InvitationService:
    """Dependency to get the invitation service."""
    return InvitationService(
        issuer=issuer,
        guest_directory=SqlGuestDirectory(),
        dispatcher=dispatcher,
        base_url=settings.frontend_url,
        ttl_days=settings.token_ttl_days,
    )


@router.post(SEND_INVITATION_URL, response_model=SendInvitationResponse)
async def send_invitation(
    event_id: UUID,
    guest_id: UUID,
    request: SendInvitationRequest | None = None,
    service: InvitationService = Depends(get_invitation_service),
) -> SendInvitationResponse:
    """
    Issue a new RSVP link for the guest and email it.

    The link is issued even when the email fails; the failure comes back as a warning.
    """
    request = request or SendInvitationRequest()
    try:
        result = await service.send_invitation(
            guest_id,
            event_id=event_id,
            ttl_days=request.ttl_days,
            variables=request.variables,
        )
    except GuestNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (TokenGenerationError, TokenPersistenceError):
        raise HTTPException(status_code=503, detail="Could not issue a new RSVP link")

    send_result = result.send_result
    return SendInvitationResponse(
        guest_id=result.guest_id,
        token=result.token,
        rsvp_url=result.rsvp_url,
        sent=result.sent,
        provider=send_result.provider if send_result else None,
        message_id=send_result.message_id if send_result else None,
        warning=result.warning,
    )
