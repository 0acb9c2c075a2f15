import asyncio
import logging
from collections.abc import Callable

import httpx

from guestlink.delivery.dtos import (
    DEFAULT_PROVIDER_ORDER,
    ProviderConfig,
    ProviderHealth,
    ProviderKind,
)
from guestlink.delivery.providers import ApiKeyProvider, OAuth2Provider, Provider, SmtpProvider

logger = logging.getLogger(__name__)

DISPLAY_NAMES = {
    ProviderKind.SENDGRID: "SendGrid",
    ProviderKind.BREVO: "Brevo",
    ProviderKind.RESEND: "Resend",
    ProviderKind.GMAIL_OAUTH: "Gmail OAuth2",
    ProviderKind.OUTLOOK_OAUTH: "Outlook OAuth2",
    ProviderKind.SMTP: "SMTP",
    ProviderKind.GMAIL_SMTP: "Gmail SMTP",
}

ProviderBuilder = Callable[[ProviderConfig, float, type[httpx.AsyncClient]], Provider | None]


def _api_key_builder(kind: ProviderKind, field_name: str) -> ProviderBuilder:
    def build(config, timeout, http_client_class):
        api_key = getattr(config, field_name)
        if not api_key:
            return None
        return ApiKeyProvider(kind, api_key, timeout=timeout, http_client_class=http_client_class)

    return build


def _oauth_builder(kind: ProviderKind, prefix: str) -> ProviderBuilder:
    def build(config, timeout, http_client_class):
        client_id = getattr(config, f"{prefix}_client_id")
        client_secret = getattr(config, f"{prefix}_client_secret")
        refresh_token = getattr(config, f"{prefix}_refresh_token")
        account = getattr(config, f"{prefix}_account") or config.email_from
        if not (client_id and client_secret and refresh_token and account):
            return None
        return OAuth2Provider(
            kind,
            client_id=client_id,
            client_secret=client_secret,
            refresh_token=refresh_token,
            account=account,
            timeout=timeout,
            http_client_class=http_client_class,
        )

    return build


def _build_smtp(config, timeout, http_client_class):
    if not config.smtp_host:
        return None
    return SmtpProvider(
        host=config.smtp_host,
        port=config.smtp_port,
        username=config.smtp_username,
        password=config.smtp_password,
        secure=config.smtp_secure,
        timeout=timeout,
    )


def _build_gmail_smtp(config, timeout, http_client_class):
    if not (config.use_gmail_direct_smtp and config.gmail_password and config.email_from):
        return None
    return SmtpProvider(
        host=config.gmail_smtp_host,
        port=config.gmail_smtp_port,
        username=config.gmail_account or config.email_from,
        password=config.gmail_password,
        secure=config.gmail_smtp_port == 465,
        timeout=timeout,
        kind=ProviderKind.GMAIL_SMTP,
        name=DISPLAY_NAMES[ProviderKind.GMAIL_SMTP],
    )


BUILDERS: dict[ProviderKind, ProviderBuilder] = {
    ProviderKind.SENDGRID: _api_key_builder(ProviderKind.SENDGRID, "sendgrid_api_key"),
    ProviderKind.BREVO: _api_key_builder(ProviderKind.BREVO, "brevo_api_key"),
    ProviderKind.RESEND: _api_key_builder(ProviderKind.RESEND, "resend_api_key"),
    ProviderKind.GMAIL_OAUTH: _oauth_builder(ProviderKind.GMAIL_OAUTH, "gmail"),
    ProviderKind.OUTLOOK_OAUTH: _oauth_builder(ProviderKind.OUTLOOK_OAUTH, "outlook"),
    ProviderKind.SMTP: _build_smtp,
    ProviderKind.GMAIL_SMTP: _build_gmail_smtp,
}


class ProviderRegistry:
    """Ordered list of the providers an event has credentials for."""

    def __init__(self, providers: list[Provider]):
        self._providers = list(providers)

    @classmethod
    def from_config(
        cls,
        config: ProviderConfig,
        timeout: float = 15.0,
        http_client_class: type[httpx.AsyncClient] = httpx.AsyncClient,
    ) -> "ProviderRegistry":
        providers = []
        seen = set()
        for kind in config.provider_order:
            if kind in seen:
                continue
            seen.add(kind)
            provider = BUILDERS[kind](config, timeout, http_client_class)
            if provider is not None:
                providers.append(provider)
        logger.debug(f"Configured providers: {[p.name for p in providers]}")
        return cls(providers)

    @property
    def providers(self) -> list[Provider]:
        return list(self._providers)

    def __len__(self) -> int:
        return len(self._providers)

    def __bool__(self) -> bool:
        return bool(self._providers)

    def list_configured(self) -> list[str]:
        return [provider.name for provider in self._providers]

    async def _check(self, provider: Provider) -> ProviderHealth:
        try:
            healthy = await provider.verify()
        except Exception as e:
            logger.warning(f"Verifying {provider.name} raised: {e}")
            return ProviderHealth(name=provider.name, healthy=False, error=str(e))
        return ProviderHealth(
            name=provider.name,
            healthy=healthy,
            error=None if healthy else "Verification failed",
        )

    async def verify_all(self) -> list[ProviderHealth]:
        return list(await asyncio.gather(*(self._check(p) for p in self._providers)))

    def describe(self) -> list[dict]:
        configured = {provider.kind for provider in self._providers}
        return [
            {"name": DISPLAY_NAMES[kind], "kind": kind.value, "configured": kind in configured}
            for kind in DEFAULT_PROVIDER_ORDER
        ]
