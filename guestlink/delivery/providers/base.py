from abc import ABC, abstractmethod

from guestlink.delivery.dtos import OutboundMessage, ProviderKind, SendResult

DEFAULT_FROM_ADDRESS = "noreply@example.com"
DEFAULT_FROM_NAME = "Wedding RSVP"


class Provider(ABC):
    """
    One configured transport.

    send() returns a successful SendResult, or raises ProviderSendError
    carrying an ErrorKind. Callers never look at the concrete class.
    """

    kind: ProviderKind
    name: str

    @abstractmethod
    async def send(self, message: OutboundMessage) -> SendResult:
        pass

    @abstractmethod
    async def verify(self) -> bool:
        """Check connectivity and credentials without sending anything."""
        pass

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


def format_sender(message: OutboundMessage) -> str:
    address = message.from_address or DEFAULT_FROM_ADDRESS
    name = message.from_name or DEFAULT_FROM_NAME
    return f"{name} <{address}>"
