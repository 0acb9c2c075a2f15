from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

from guestlink.communications.dtos import CommunicationStatus
from guestlink.delivery.dtos import Channel, DeliveryStatus


class AttachmentSchema(BaseModel):
    filename: str
    # base64 encoded
    content: str
    content_type: str | None = None


class MessageContent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    subject: str = Field(min_length=1)
    html: str | None = None
    text: str | None = None
    from_address: EmailStr | None = Field(default=None, alias="from")
    from_name: str | None = None
    reply_to: EmailStr | None = None
    attachments: list[AttachmentSchema] = []
    template_id: str | None = None
    metadata: dict[str, Any] = {}

    @model_validator(mode="after")
    def check_body(self):
        if not self.html and not self.text:
            raise ValueError("Either html or text is required")
        return self


class SendRequest(MessageContent):
    to: EmailStr
    guest_id: UUID | None = None
    event_id: UUID | None = None


class SendResponse(BaseModel):
    success: bool
    provider: str
    delivery_status: DeliveryStatus
    message_id: str | None = None
    error: str | None = None
    recipient: str | None = None
    guest_id: UUID | None = None
    log_error: str | None = None


class BulkRecipient(BaseModel):
    to: EmailStr
    guest_id: UUID | None = None
    variables: dict[str, str] = {}


class SendBulkRequest(MessageContent):
    recipients: list[BulkRecipient] = Field(min_length=1, max_length=1000)


class SendBulkResponse(BaseModel):
    results: list[SendResponse]
    sent: int
    failed: int


class ProviderDescription(BaseModel):
    name: str
    kind: str
    configured: bool


class ProvidersResponse(BaseModel):
    configured: list[str]
    providers: list[ProviderDescription]


class ProviderHealthResponse(BaseModel):
    name: str
    healthy: bool
    error: str | None = None


class CommunicationStatsResponse(BaseModel):
    total: int
    pending: int
    sent: int
    delivered: int
    opened: int
    clicked: int
    failed: int
    bounced: int
    delivery_rate: float


class CommunicationRecordResponse(BaseModel):
    id: UUID
    event_id: UUID
    guest_id: UUID | None = None
    channel: Channel
    recipient: str
    subject: str | None = None
    template_id: str | None = None
    status: CommunicationStatus
    provider: str
    message_id: str | None = None
    error_message: str | None = None
    sent_at: datetime | None = None
    delivered_at: datetime | None = None
    opened_at: datetime | None = None
    clicked_at: datetime | None = None
    created_at: datetime | None = None
    metadata: dict[str, Any] = {}


class StatusUpdateRequest(BaseModel):
    message_id: str = Field(min_length=1)
    status: CommunicationStatus
    timestamp: datetime | None = None


class StatusUpdateResponse(BaseModel):
    updated: bool
