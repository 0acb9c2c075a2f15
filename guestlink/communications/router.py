import logging
from dataclasses import asdict
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query

from guestlink.communications.dtos import CommunicationLogError, CommunicationRecordDTO
from guestlink.communications.log import CommunicationLog, SqlCommunicationLog
from guestlink.communications.schemas import (
    CommunicationRecordResponse,
    CommunicationStatsResponse,
    MessageContent,
    ProviderHealthResponse,
    ProvidersResponse,
    SendBulkRequest,
    SendBulkResponse,
    SendRequest,
    SendResponse,
    StatusUpdateRequest,
    StatusUpdateResponse,
)
from guestlink.communications.urls import (
    LOGS_URL,
    MESSAGE_STATUS_URL,
    PROVIDERS_URL,
    SEND_BULK_URL,
    SEND_URL,
    STATS_URL,
    STATUS_UPDATE_URL,
    VERIFY_PROVIDERS_URL,
)
from guestlink.config.settings import settings
from guestlink.delivery.config_source import ProviderConfigSource, SettingsProviderConfigSource
from guestlink.delivery.dispatcher import DeliveryDispatcher
from guestlink.delivery.dtos import Attachment, Channel, OutboundMessage, ProviderConfig, SendResult
from guestlink.delivery.factory import build_dispatcher
from guestlink.delivery.templating import guest_variables, substitute
from guestlink.guests.repository.read_models import GuestDirectory, SqlGuestDirectory
from guestlink.helpers.time import utcnow

logger = logging.getLogger(__name__)

router = APIRouter()


def get_provider_config_source() -> ProviderConfigSource:
    """Dependency to get where event provider credentials are read from."""
    return SettingsProviderConfigSource(settings)


async def get_provider_config(
    event_id: UUID,
    source: ProviderConfigSource = Depends(get_provider_config_source),
) -> ProviderConfig:
    """Dependency to get the provider credentials of an event."""
    return await source.get_provider_config(event_id)


def get_communication_log() -> CommunicationLog:
    """Dependency to get the communication log."""
    return SqlCommunicationLog()


def get_delivery_dispatcher(
    config: ProviderConfig = Depends(get_provider_config),
    communication_log: CommunicationLog = Depends(get_communication_log),
) -> DeliveryDispatcher:
    """Dependency to get a dispatcher for the event's providers."""
    return build_dispatcher(config, communication_log)


def get_guest_directory() -> GuestDirectory:
    return SqlGuestDirectory()


def to_send_response(result: SendResult) -> SendResponse:
    return SendResponse(
        success=result.success,
        provider=result.provider,
        delivery_status=result.delivery_status,
        message_id=result.message_id,
        error=result.error,
        recipient=result.recipient,
        guest_id=result.guest_id,
        log_error=result.log_error,
    )


def to_record_response(record: CommunicationRecordDTO) -> CommunicationRecordResponse:
    return CommunicationRecordResponse(**asdict(record))


def build_message(
    content: MessageContent,
    event_id: UUID,
    to: str,
    guest_id: UUID | None = None,
    variables: dict[str, str] | None = None,
) -> OutboundMessage:
    variables = variables or {}
    return OutboundMessage(
        to=to,
        subject=substitute(content.subject, variables),
        html=substitute(content.html, variables),
        text=substitute(content.text, variables),
        event_id=event_id,
        from_address=content.from_address,
        from_name=content.from_name,
        reply_to=content.reply_to,
        attachments=tuple(
            Attachment(
                filename=attachment.filename,
                content=attachment.content,
                content_type=attachment.content_type,
            )
            for attachment in content.attachments
        ),
        template_id=content.template_id,
        guest_id=guest_id,
        metadata=dict(content.metadata),
    )


@router.post(SEND_URL, response_model=SendResponse)
async def send_message(
    event_id: UUID,
    request: SendRequest,
    dispatcher: DeliveryDispatcher = Depends(get_delivery_dispatcher),
) -> SendResponse:
    """
    Send one email through the event's providers, in order, until one accepts it.

    A delivery failure is a normal response with success false.
    """
    if request.event_id is not None and request.event_id != event_id:
        raise HTTPException(status_code=400, detail="event_id does not match the URL")

    message = build_message(request, event_id, to=request.to, guest_id=request.guest_id)
    try:
        result = await dispatcher.send(message)
    except CommunicationLogError:
        raise HTTPException(status_code=500, detail="The delivery outcome could not be recorded")
    return to_send_response(result)


@router.post(SEND_BULK_URL, response_model=SendBulkResponse)
async def send_bulk(
    event_id: UUID,
    request: SendBulkRequest,
    dispatcher: DeliveryDispatcher = Depends(get_delivery_dispatcher),
    guest_directory: GuestDirectory = Depends(get_guest_directory),
) -> SendBulkResponse:
    """
    Send the same message to many recipients.

    {{ variables }} are filled per recipient from the guest record (when guest_id is
    given) and the recipient's own variables. Results keep the request order.
    """
    guest_ids = [r.guest_id for r in request.recipients if r.guest_id is not None]
    guests = await guest_directory.get_guest_contexts(guest_ids) if guest_ids else {}

    messages = []
    for recipient in request.recipients:
        variables = {}
        if recipient.guest_id in guests:
            variables.update(guest_variables(guests[recipient.guest_id]))
        variables.update(recipient.variables)
        messages.append(
            build_message(
                request,
                event_id,
                to=recipient.to,
                guest_id=recipient.guest_id,
                variables=variables,
            )
        )

    results = await dispatcher.send_bulk(messages)
    sent = sum(1 for result in results if result.success)
    return SendBulkResponse(
        results=[to_send_response(result) for result in results],
        sent=sent,
        failed=len(results) - sent,
    )


@router.get(PROVIDERS_URL, response_model=ProvidersResponse)
async def list_providers(
    event_id: UUID,
    dispatcher: DeliveryDispatcher = Depends(get_delivery_dispatcher),
) -> ProvidersResponse:
    registry = dispatcher.registry
    return ProvidersResponse(configured=registry.list_configured(), providers=registry.describe())


@router.post(VERIFY_PROVIDERS_URL, response_model=list[ProviderHealthResponse])
async def verify_providers(
    event_id: UUID,
    dispatcher: DeliveryDispatcher = Depends(get_delivery_dispatcher),
) -> list[ProviderHealthResponse]:
    """Check credentials and connectivity of every configured provider."""
    health = await dispatcher.registry.verify_all()
    return [ProviderHealthResponse(name=h.name, healthy=h.healthy, error=h.error) for h in health]


@router.get(STATS_URL, response_model=CommunicationStatsResponse)
async def communication_stats(
    event_id: UUID,
    communication_log: CommunicationLog = Depends(get_communication_log),
) -> CommunicationStatsResponse:
    stats = await communication_log.stats_for(event_id)
    return CommunicationStatsResponse(
        **asdict(stats),
        delivery_rate=round(stats.delivery_rate, 2),
    )


@router.get(LOGS_URL, response_model=list[CommunicationRecordResponse])
async def communication_logs(
    event_id: UUID,
    guest_id: UUID | None = None,
    channel: Channel | None = None,
    limit: int = Query(default=100, ge=1, le=1000),
    communication_log: CommunicationLog = Depends(get_communication_log),
) -> list[CommunicationRecordResponse]:
    records = await communication_log.list_for_event(
        event_id, guest_id=guest_id, channel=channel, limit=limit
    )
    return [to_record_response(record) for record in records]


@router.post(STATUS_UPDATE_URL, response_model=StatusUpdateResponse)
async def update_delivery_status(
    event_id: UUID,
    request: StatusUpdateRequest,
    communication_log: CommunicationLog = Depends(get_communication_log),
) -> StatusUpdateResponse:
    """
    Record a later delivery event (delivered, opened, clicked, bounced).

    Status only moves forward; a stale or unknown update answers updated=false.
    """
    record = await communication_log.get_by_message_id(request.message_id)
    if record is None or record.event_id != event_id:
        return StatusUpdateResponse(updated=False)

    updated = await communication_log.update_delivery_status(
        request.message_id, request.status, request.timestamp or utcnow()
    )
    return StatusUpdateResponse(updated=updated)


@router.get(MESSAGE_STATUS_URL, response_model=CommunicationRecordResponse)
async def message_status(
    event_id: UUID,
    message_id: str,
    communication_log: CommunicationLog = Depends(get_communication_log),
) -> CommunicationRecordResponse:
    record = await communication_log.get_by_message_id(message_id)
    if record is None or record.event_id != event_id:
        raise HTTPException(status_code=404, detail="Message not found")
    return to_record_response(record)
