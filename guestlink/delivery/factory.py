import httpx

from guestlink.communications.log import CommunicationLog
from guestlink.config.settings import settings
from guestlink.delivery.dispatcher import DeliveryDispatcher
from guestlink.delivery.dtos import ProviderConfig
from guestlink.delivery.registry import ProviderRegistry


def build_registry(
    config: ProviderConfig,
    http_client_class: type[httpx.AsyncClient] = httpx.AsyncClient,
) -> ProviderRegistry:
    return ProviderRegistry.from_config(
        config,
        timeout=settings.provider_timeout_seconds,
        http_client_class=http_client_class,
    )


def build_dispatcher(
    config: ProviderConfig,
    communication_log: CommunicationLog,
    http_client_class: type[httpx.AsyncClient] = httpx.AsyncClient,
) -> DeliveryDispatcher:
    """Dispatcher for one event's providers, tuned from the application settings."""
    return DeliveryDispatcher(
        registry=build_registry(config, http_client_class),
        communication_log=communication_log,
        defaults=config,
        provider_timeout=settings.provider_timeout_seconds,
        bulk_delay=settings.bulk_delay_seconds,
        bulk_concurrency=settings.bulk_concurrency,
        bulk_deadline=settings.bulk_deadline_seconds,
    )
