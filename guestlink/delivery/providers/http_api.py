"""API-key HTTP senders: one class, vendor selected by ProviderKind."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx

from guestlink.delivery.dtos import (
    ErrorKind,
    OutboundMessage,
    ProviderKind,
    ProviderSendError,
    SendResult,
)
from guestlink.delivery.providers.base import (
    DEFAULT_FROM_ADDRESS,
    DEFAULT_FROM_NAME,
    Provider,
    format_sender,
)

logger = logging.getLogger(__name__)


def _sendgrid_payload(message: OutboundMessage) -> dict[str, Any]:
    # SendGrid wants text/plain before text/html
    content = []
    if message.text:
        content.append({"type": "text/plain", "value": message.text})
    if message.html:
        content.append({"type": "text/html", "value": message.html})

    payload: dict[str, Any] = {
        "personalizations": [{"to": [{"email": message.to}], "subject": message.subject}],
        "from": {
            "email": message.from_address or DEFAULT_FROM_ADDRESS,
            "name": message.from_name or DEFAULT_FROM_NAME,
        },
        "content": content,
    }
    if message.reply_to:
        payload["reply_to"] = {"email": message.reply_to}
    if message.attachments:
        payload["attachments"] = [
            {
                "filename": attachment.filename,
                "content": attachment.content,
                "type": attachment.content_type or "application/octet-stream",
                "disposition": "attachment",
            }
            for attachment in message.attachments
        ]
    return payload


def _brevo_payload(message: OutboundMessage) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "sender": {
            "email": message.from_address or DEFAULT_FROM_ADDRESS,
            "name": message.from_name or DEFAULT_FROM_NAME,
        },
        "to": [{"email": message.to}],
        "subject": message.subject,
    }
    if message.html:
        payload["htmlContent"] = message.html
    if message.text:
        payload["textContent"] = message.text
    if message.reply_to:
        payload["replyTo"] = {"email": message.reply_to}
    if message.attachments:
        payload["attachment"] = [
            {"name": attachment.filename, "content": attachment.content}
            for attachment in message.attachments
        ]
    return payload


def _resend_payload(message: OutboundMessage) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "from": format_sender(message),
        "to": [message.to],
        "subject": message.subject,
    }
    if message.html:
        payload["html"] = message.html
    if message.text:
        payload["text"] = message.text
    if message.reply_to:
        payload["reply_to"] = message.reply_to
    if message.attachments:
        payload["attachments"] = [
            {
                "filename": attachment.filename,
                "content": attachment.content,
                "content_type": attachment.content_type,
            }
            for attachment in message.attachments
        ]
    return payload


def _json_field(name: str) -> Callable[[httpx.Response], str | None]:
    def extract(response: httpx.Response) -> str | None:
        # The mail is already accepted here, a malformed body only loses the id
        try:
            data = response.json()
        except ValueError:
            return None
        if not isinstance(data, dict):
            return None
        value = data.get(name)
        return str(value) if value is not None else None

    return extract


def _header(name: str) -> Callable[[httpx.Response], str | None]:
    def extract(response: httpx.Response) -> str | None:
        return response.headers.get(name)

    return extract


@dataclass(frozen=True)
class ApiVendor:
    name: str
    send_url: str
    verify_url: str
    auth_headers: Callable[[str], dict[str, str]]
    build_payload: Callable[[OutboundMessage], dict[str, Any]]
    message_id: Callable[[httpx.Response], str | None]


def _bearer(api_key: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {api_key}"}


API_VENDORS: dict[ProviderKind, ApiVendor] = {
    ProviderKind.SENDGRID: ApiVendor(
        name="SendGrid",
        send_url="https://api.sendgrid.com/v3/mail/send",
        verify_url="https://api.sendgrid.com/v3/scopes",
        auth_headers=_bearer,
        build_payload=_sendgrid_payload,
        message_id=_header("X-Message-Id"),
    ),
    ProviderKind.BREVO: ApiVendor(
        name="Brevo",
        send_url="https://api.brevo.com/v3/smtp/email",
        verify_url="https://api.brevo.com/v3/account",
        auth_headers=lambda api_key: {"api-key": api_key},
        build_payload=_brevo_payload,
        message_id=_json_field("messageId"),
    ),
    ProviderKind.RESEND: ApiVendor(
        name="Resend",
        send_url="https://api.resend.com/emails",
        verify_url="https://api.resend.com/domains",
        auth_headers=_bearer,
        build_payload=_resend_payload,
        message_id=_json_field("id"),
    ),
}


def classify_status(status_code: int) -> ErrorKind:
    if status_code == 429 or status_code >= 500:
        return ErrorKind.TRANSIENT
    if status_code in (401, 403):
        return ErrorKind.PROVIDER
    return ErrorKind.PERMANENT


def error_detail(response: httpx.Response) -> str:
    """Best effort extraction of the vendor's error message."""
    try:
        data = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(data, dict):
        if errors := data.get("errors"):
            if isinstance(errors, list) and isinstance(errors[0], dict):
                return errors[0].get("message") or str(errors[0])
        if message := data.get("message"):
            return message
    return f"HTTP {response.status_code}"


class ApiKeyProvider(Provider):
    def __init__(
        self,
        kind: ProviderKind,
        api_key: str,
        timeout: float = 15.0,
        http_client_class: type[httpx.AsyncClient] = httpx.AsyncClient,
    ):
        if kind not in API_VENDORS:
            raise ValueError(f"{kind.value} is not an API-key provider")
        self.kind = kind
        self._vendor = API_VENDORS[kind]
        self.name = self._vendor.name
        self._api_key = api_key
        self._timeout = timeout
        self._http_client_class = http_client_class

    def _headers(self) -> dict[str, str]:
        return {**self._vendor.auth_headers(self._api_key), "Content-Type": "application/json"}

    async def send(self, message: OutboundMessage) -> SendResult:
        try:
            async with self._http_client_class(timeout=self._timeout) as client:
                response = await client.post(
                    self._vendor.send_url,
                    headers=self._headers(),
                    json=self._vendor.build_payload(message),
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            raise ProviderSendError(
                f"{self.name} API error ({status_code}): {error_detail(e.response)}",
                classify_status(status_code),
            ) from e
        except httpx.TimeoutException as e:
            raise ProviderSendError(f"{self.name} timed out", ErrorKind.TRANSIENT) from e
        except httpx.HTTPError as e:
            raise ProviderSendError(f"{self.name} unreachable: {e}", ErrorKind.TRANSIENT) from e

        return SendResult.sent(self.name, self._vendor.message_id(response))

    async def verify(self) -> bool:
        try:
            async with self._http_client_class(timeout=self._timeout) as client:
                response = await client.get(self._vendor.verify_url, headers=self._headers())
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"{self.name} health check failed: {e}")
            return False
        return True
