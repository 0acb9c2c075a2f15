from guestlink.delivery.providers.base import Provider
from guestlink.delivery.providers.http_api import ApiKeyProvider
from guestlink.delivery.providers.oauth import OAuth2Provider
from guestlink.delivery.providers.smtp import SmtpProvider

__all__ = ["Provider", "ApiKeyProvider", "OAuth2Provider", "SmtpProvider"]
