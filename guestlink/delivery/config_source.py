"""Where an event's provider credentials come from."""

import abc
from uuid import UUID

from guestlink.config.settings import Settings
from guestlink.delivery.dtos import ProviderConfig


class ProviderConfigSource(abc.ABC):
    @abc.abstractmethod
    async def get_provider_config(self, event_id: UUID) -> ProviderConfig:
        """Provider credentials of one event. Never fails for unknown events."""
        raise NotImplementedError


class SettingsProviderConfigSource(ProviderConfigSource):
    """
    Reads per-event credentials from the application settings.

    Events listed in EVENT_PROVIDER_CONFIGS use their own entry, every other
    event falls back to the environment-wide provider settings.
    """

    def __init__(self, settings: Settings):
        self._settings = settings

    async def get_provider_config(self, event_id: UUID) -> ProviderConfig:
        config = self._settings.event_provider_configs.get(event_id)
        if config is not None:
            return config
        return self._settings.provider_config()
