"""Issue an RSVP link and email it to the guest."""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from uuid import UUID

from guestlink.communications.dtos import CommunicationLogError
from guestlink.delivery.dispatcher import DeliveryDispatcher
from guestlink.delivery.dtos import OutboundMessage, SendResult
from guestlink.delivery.templating import guest_variables, substitute
from guestlink.guests.dtos import GuestNotFoundError
from guestlink.guests.repository.read_models import GuestDirectory
from guestlink.invitations.templates import (
    DEFAULT_INVITATION,
    INVITATION_TEMPLATE_ID,
    InvitationTemplate,
)
from guestlink.tokens.features.issue_token.write_model import TokenIssuer
from guestlink.tokens.features.validate_token.validator import url_for

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InvitationResult:
    guest_id: UUID
    token: str
    rsvp_url: str
    sent: bool
    send_result: SendResult | None = None
    warning: str | None = None


class InvitationService:
    def __init__(
        self,
        issuer: TokenIssuer,
        guest_directory: GuestDirectory,
        dispatcher: DeliveryDispatcher,
        base_url: str,
        ttl_days: int = 30,
        template: InvitationTemplate = DEFAULT_INVITATION,
    ):
        self._issuer = issuer
        self._guest_directory = guest_directory
        self._dispatcher = dispatcher
        self._base_url = base_url
        self._ttl_days = ttl_days
        self._template = template

    async def send_invitation(
        self,
        guest_id: UUID,
        event_id: UUID | None = None,
        ttl_days: int | None = None,
        variables: Mapping[str, str] | None = None,
    ) -> InvitationResult:
        """
        Issue a fresh token for the guest and send the invitation email.

        A failed send is reported as a warning; the issued token stays active.

        Raises:
            GuestNotFoundError: unknown guest, or the guest belongs to another event
        """
        guest = await self._guest_directory.get_guest_context(guest_id)
        if guest is None or (event_id is not None and guest.event_id != event_id):
            raise GuestNotFoundError(guest_id)

        token = await self._issuer.issue(guest_id, ttl_days or self._ttl_days)
        rsvp_url = url_for(token, self._base_url)

        if not guest.email:
            logger.warning(f"Guest {guest_id} has no email address, invitation not sent")
            return InvitationResult(
                guest_id=guest_id,
                token=token,
                rsvp_url=rsvp_url,
                sent=False,
                warning="Guest has no email address; the RSVP link was issued but not sent",
            )

        values = {**guest_variables(guest, rsvp_link=rsvp_url), **(variables or {})}
        message = OutboundMessage(
            to=guest.email,
            subject=substitute(self._template.subject, values),
            html=substitute(self._template.html, values),
            text=substitute(self._template.text, values),
            event_id=guest.event_id,
            guest_id=guest.id,
            template_id=INVITATION_TEMPLATE_ID,
        )

        try:
            result = await self._dispatcher.send(message)
        except CommunicationLogError as e:
            return InvitationResult(
                guest_id=guest_id,
                token=token,
                rsvp_url=rsvp_url,
                sent=False,
                warning=f"The delivery outcome could not be recorded: {e}",
            )

        if not result.success:
            logger.warning(f"Invitation for guest {guest_id} not sent: {result.error}")
            return InvitationResult(
                guest_id=guest_id,
                token=token,
                rsvp_url=rsvp_url,
                sent=False,
                send_result=result,
                warning=f"The RSVP link was issued but the email could not be sent: {result.error}",
            )

        return InvitationResult(
            guest_id=guest_id, token=token, rsvp_url=rsvp_url, sent=True, send_result=result
        )
