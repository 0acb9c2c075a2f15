import asyncio
import base64
import logging
import smtplib
from email import encoders
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid

from guestlink.delivery.dtos import (
    ErrorKind,
    OutboundMessage,
    ProviderKind,
    ProviderSendError,
    SendResult,
)
from guestlink.delivery.providers.base import Provider, format_sender

logger = logging.getLogger(__name__)


def create_mime_message(message: OutboundMessage, from_header: str) -> MIMEMultipart:
    body = MIMEMultipart("alternative")
    if message.text:
        body.attach(MIMEText(message.text, "plain"))
    if message.html:
        body.attach(MIMEText(message.html, "html"))

    if message.attachments:
        msg = MIMEMultipart("mixed")
        msg.attach(body)
        for attachment in message.attachments:
            content_type = attachment.content_type or "application/octet-stream"
            maintype, _, subtype = content_type.partition("/")
            part = MIMEBase(maintype, subtype or "octet-stream")
            part.set_payload(base64.b64decode(attachment.content))
            encoders.encode_base64(part)
            part.add_header("Content-Disposition", "attachment", filename=attachment.filename)
            msg.attach(part)
    else:
        msg = body

    msg["Subject"] = message.subject
    msg["From"] = from_header
    msg["To"] = message.to
    if message.reply_to:
        msg["Reply-To"] = message.reply_to
    msg["Message-ID"] = make_msgid()
    return msg


def classify_smtp_error(error: Exception) -> ErrorKind:
    if isinstance(error, (smtplib.SMTPAuthenticationError, smtplib.SMTPSenderRefused)):
        return ErrorKind.PROVIDER
    if isinstance(error, smtplib.SMTPNotSupportedError):
        return ErrorKind.PROVIDER
    if isinstance(error, smtplib.SMTPRecipientsRefused):
        return ErrorKind.PERMANENT
    if isinstance(error, smtplib.SMTPConnectError):
        return ErrorKind.TRANSIENT
    if isinstance(error, smtplib.SMTPResponseException):
        return ErrorKind.PERMANENT if error.smtp_code >= 500 else ErrorKind.TRANSIENT
    # Disconnects, socket errors, timeouts
    return ErrorKind.TRANSIENT


class SmtpProvider(Provider):
    def __init__(
        self,
        host: str,
        port: int = 587,
        username: str | None = None,
        password: str | None = None,
        secure: bool = False,
        timeout: float = 15.0,
        kind: ProviderKind = ProviderKind.SMTP,
        name: str = "SMTP",
    ):
        self.kind = kind
        self.name = name
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.secure = secure
        self.timeout = timeout

    def _connect(self) -> smtplib.SMTP:
        if self.secure:
            return smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout)
        server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        if self.username:
            server.starttls()
        return server

    def _authenticate(self, server: smtplib.SMTP) -> None:
        if self.username and self.password:
            server.login(self.username, self.password)

    def _send(self, msg: MIMEMultipart) -> None:
        with self._connect() as server:
            self._authenticate(server)
            server.send_message(msg)

    def _check(self) -> None:
        with self._connect() as server:
            self._authenticate(server)
            server.noop()

    async def send(self, message: OutboundMessage) -> SendResult:
        msg = create_mime_message(message, format_sender(message))
        try:
            await asyncio.to_thread(self._send, msg)
        except (smtplib.SMTPException, OSError) as e:
            raise ProviderSendError(f"{self.name} error: {e}", classify_smtp_error(e)) from e
        return SendResult.sent(self.name, msg["Message-ID"])

    async def verify(self) -> bool:
        try:
            await asyncio.to_thread(self._check)
        except (smtplib.SMTPException, OSError) as e:
            logger.warning(f"{self.name} health check failed: {e}")
            return False
        return True
