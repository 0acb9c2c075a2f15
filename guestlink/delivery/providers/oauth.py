"""SMTP with XOAUTH2, the access token refreshed from a stored refresh token."""

import logging
import smtplib
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

import httpx

from guestlink.delivery.dtos import (
    ErrorKind,
    OutboundMessage,
    ProviderKind,
    ProviderSendError,
    SendResult,
)
from guestlink.delivery.providers.smtp import SmtpProvider
from guestlink.helpers.time import utcnow

logger = logging.getLogger(__name__)

# Refresh a little before the provider says the token expires
EXPIRY_MARGIN = timedelta(seconds=60)


@dataclass(frozen=True)
class OAuthEndpoint:
    name: str
    token_url: str
    smtp_host: str
    smtp_port: int
    scope: str | None = None


OAUTH_ENDPOINTS: dict[ProviderKind, OAuthEndpoint] = {
    ProviderKind.GMAIL_OAUTH: OAuthEndpoint(
        name="Gmail OAuth2",
        token_url="https://oauth2.googleapis.com/token",
        smtp_host="smtp.gmail.com",
        smtp_port=587,
    ),
    ProviderKind.OUTLOOK_OAUTH: OAuthEndpoint(
        name="Outlook OAuth2",
        token_url="https://login.microsoftonline.com/common/oauth2/v2.0/token",
        smtp_host="smtp.office365.com",
        smtp_port=587,
        scope="https://outlook.office.com/SMTP.Send offline_access",
    ),
}


def xoauth2_string(username: str, access_token: str) -> str:
    return f"user={username}\1auth=Bearer {access_token}\1\1"


class OAuth2Provider(SmtpProvider):
    def __init__(
        self,
        kind: ProviderKind,
        client_id: str,
        client_secret: str,
        refresh_token: str,
        account: str,
        timeout: float = 15.0,
        http_client_class: type[httpx.AsyncClient] = httpx.AsyncClient,
        clock: Callable[[], datetime] = utcnow,
    ):
        if kind not in OAUTH_ENDPOINTS:
            raise ValueError(f"{kind.value} is not an OAuth2 provider")
        endpoint = OAUTH_ENDPOINTS[kind]
        super().__init__(
            host=endpoint.smtp_host,
            port=endpoint.smtp_port,
            username=account,
            timeout=timeout,
            kind=kind,
            name=endpoint.name,
        )
        self._endpoint = endpoint
        self._client_id = client_id
        self._client_secret = client_secret
        self._refresh_token = refresh_token
        self._http_client_class = http_client_class
        self._clock = clock
        self._access_token: str | None = None
        self._expires_at: datetime | None = None

    async def access_token(self) -> str:
        """Return a cached access token, refreshing it when missing or about to expire."""
        if self._access_token and self._expires_at and self._clock() < self._expires_at:
            return self._access_token

        data = {
            "client_id": self._client_id,
            "client_secret": self._client_secret,
            "refresh_token": self._refresh_token,
            "grant_type": "refresh_token",
        }
        if self._endpoint.scope:
            data["scope"] = self._endpoint.scope

        try:
            async with self._http_client_class(timeout=self.timeout) as client:
                response = await client.post(self._endpoint.token_url, data=data)
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as e:
            kind = ErrorKind.TRANSIENT if e.response.status_code >= 500 else ErrorKind.PROVIDER
            raise ProviderSendError(
                f"{self.name} token refresh rejected ({e.response.status_code})", kind
            ) from e
        except httpx.HTTPError as e:
            raise ProviderSendError(
                f"{self.name} token refresh failed: {e}", ErrorKind.TRANSIENT
            ) from e

        token = payload.get("access_token")
        if not token:
            raise ProviderSendError(f"{self.name} returned no access token", ErrorKind.PROVIDER)

        self._access_token = token
        expires_in = int(payload.get("expires_in", 3600))
        self._expires_at = self._clock() + timedelta(seconds=expires_in) - EXPIRY_MARGIN
        return token

    def _authenticate(self, server: smtplib.SMTP) -> None:
        auth_string = xoauth2_string(self.username, self._access_token)
        server.ehlo()
        server.auth("XOAUTH2", lambda challenge=None: auth_string, initial_response_ok=True)

    async def send(self, message: OutboundMessage) -> SendResult:
        await self.access_token()
        return await super().send(message)

    async def verify(self) -> bool:
        try:
            await self.access_token()
        except ProviderSendError as e:
            logger.warning(f"{self.name} health check failed: {e}")
            return False
        return await super().verify()
