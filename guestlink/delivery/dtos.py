from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class ProviderKind(str, Enum):
    SENDGRID = "sendgrid"
    BREVO = "brevo"
    RESEND = "resend"
    GMAIL_OAUTH = "gmail_oauth"
    OUTLOOK_OAUTH = "outlook_oauth"
    SMTP = "smtp"
    GMAIL_SMTP = "gmail_smtp"


DEFAULT_PROVIDER_ORDER = (
    ProviderKind.SENDGRID,
    ProviderKind.BREVO,
    ProviderKind.RESEND,
    ProviderKind.GMAIL_OAUTH,
    ProviderKind.OUTLOOK_OAUTH,
    ProviderKind.SMTP,
    ProviderKind.GMAIL_SMTP,
)


class ErrorKind(str, Enum):
    # Timeouts, throttling, server errors: worth trying the next provider
    TRANSIENT = "transient"
    # This provider cannot send (rejected credentials, account disabled): next provider
    PROVIDER = "provider"
    # The message itself is rejected (bad recipient, malformed payload): stop
    PERMANENT = "permanent"

    @property
    def fails_over(self) -> bool:
        return self is not ErrorKind.PERMANENT


class Channel(str, Enum):
    EMAIL = "email"
    WHATSAPP = "whatsapp"
    SMS = "sms"


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"


class ProviderSendError(Exception):
    """Raised by a provider when a send attempt fails."""

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.TRANSIENT) -> None:
        self.kind = kind
        super().__init__(message)


@dataclass(frozen=True)
class Attachment:
    filename: str
    # base64 encoded
    content: str
    content_type: str | None = None


@dataclass(frozen=True)
class OutboundMessage:
    """One message to one recipient."""

    to: str
    subject: str
    event_id: UUID
    html: str | None = None
    text: str | None = None
    from_address: str | None = None
    from_name: str | None = None
    reply_to: str | None = None
    attachments: tuple[Attachment, ...] = ()
    template_id: str | None = None
    guest_id: UUID | None = None
    channel: Channel = Channel.EMAIL
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.html and not self.text:
            raise ValueError("A message needs an html or a text body")


@dataclass(frozen=True)
class SendResult:
    success: bool
    provider: str
    message_id: str | None = None
    error: str | None = None
    delivery_status: DeliveryStatus = DeliveryStatus.PENDING
    error_kind: ErrorKind | None = None
    recipient: str | None = None
    guest_id: UUID | None = None
    # Set when the delivery went through but its audit record could not be written
    log_error: str | None = None

    @classmethod
    def sent(cls, provider: str, message_id: str | None = None) -> "SendResult":
        return cls(
            success=True,
            provider=provider,
            message_id=message_id,
            delivery_status=DeliveryStatus.SENT,
        )

    @classmethod
    def failed(
        cls, provider: str, error: str, error_kind: ErrorKind | None = None
    ) -> "SendResult":
        return cls(
            success=False,
            provider=provider,
            error=error,
            delivery_status=DeliveryStatus.FAILED,
            error_kind=error_kind,
        )


@dataclass(frozen=True)
class ProviderHealth:
    name: str
    healthy: bool
    error: str | None = None


class ProviderConfig(BaseModel):
    """Per-event provider credentials. Read-only input, never mutated."""

    model_config = ConfigDict(frozen=True)

    provider_order: list[ProviderKind] = list(DEFAULT_PROVIDER_ORDER)

    email_from: str | None = None
    email_from_name: str | None = None
    email_reply_to: str | None = None

    sendgrid_api_key: str | None = None
    brevo_api_key: str | None = None
    resend_api_key: str | None = None

    gmail_client_id: str | None = None
    gmail_client_secret: str | None = None
    gmail_refresh_token: str | None = None
    gmail_account: str | None = None

    outlook_client_id: str | None = None
    outlook_client_secret: str | None = None
    outlook_refresh_token: str | None = None
    outlook_account: str | None = None

    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_secure: bool = False
    smtp_username: str | None = None
    smtp_password: str | None = None

    use_gmail_direct_smtp: bool = False
    gmail_password: str | None = None
    gmail_smtp_host: str = "smtp.gmail.com"
    gmail_smtp_port: int = 587
