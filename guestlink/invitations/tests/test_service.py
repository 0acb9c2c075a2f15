from uuid import uuid4

import pytest

from guestlink.communications.dtos import CommunicationStatus
from guestlink.communications.tests.inmemory_models import (
    FailingCommunicationLog,
    InMemoryCommunicationLog,
)
from guestlink.delivery.dispatcher import DeliveryDispatcher
from guestlink.delivery.registry import ProviderRegistry
from guestlink.delivery.tests.inmemory_models import FakeProvider, permanent
from guestlink.guests.dtos import GuestNotFoundError
from guestlink.invitations.service import InvitationService
from guestlink.invitations.templates import INVITATION_TEMPLATE_ID, InvitationTemplate
from guestlink.tokens.features.issue_token.write_model import TokenIssuer
from guestlink.tokens.features.validate_token.validator import TokenValidator
from guestlink.tokens.tests.inmemory_models import (
    InMemoryGuestDirectory,
    InMemoryTokenStore,
    create_test_guest,
)

BASE_URL = "https://rsvp.example.com"


@pytest.fixture
def guest():
    return create_test_guest(first_name="Ana", last_name="Lopez", email="ana@example.com")


@pytest.fixture
def directory(guest):
    return InMemoryGuestDirectory(guests=[guest])


@pytest.fixture
def store(directory):
    return InMemoryTokenStore(guest_directory=directory)


@pytest.fixture
def log():
    return InMemoryCommunicationLog()


@pytest.fixture
def make_service(store, directory, log):
    def make(*providers, communication_log=None, **kwargs):
        dispatcher = DeliveryDispatcher(
            registry=ProviderRegistry(list(providers)),
            communication_log=communication_log or log,
        )
        issuer = TokenIssuer(store=store, guest_directory=directory, base_url=BASE_URL)
        return InvitationService(
            issuer=issuer,
            guest_directory=directory,
            dispatcher=dispatcher,
            base_url=BASE_URL,
            **kwargs,
        )

    return make


async def test_invitation_carries_the_rsvp_link(make_service, store, directory, log, guest):
    provider = FakeProvider("SMTP")

    result = await make_service(provider).send_invitation(guest.id, event_id=guest.event_id)

    assert result.sent is True
    assert result.rsvp_url == f"{BASE_URL}/rsvp/{result.token}"
    assert result.send_result.provider == "SMTP"

    message = provider.calls[0]
    assert message.to == "ana@example.com"
    assert message.subject == "You're Invited, Ana!"
    assert result.rsvp_url in message.html
    assert result.rsvp_url in message.text
    assert "Ana Lopez" in message.html
    assert message.template_id == INVITATION_TEMPLATE_ID

    assert log.records[0].template_id == INVITATION_TEMPLATE_ID
    assert log.records[0].status == CommunicationStatus.SENT

    validation = await TokenValidator(store=store, guest_directory=directory).validate(
        result.token
    )
    assert validation.valid is True


async def test_resending_invalidates_previous_link(make_service, store, guest):
    service = make_service(FakeProvider("SMTP"))

    first = await service.send_invitation(guest.id)
    second = await service.send_invitation(guest.id)

    assert store.rows[first.token].is_active is False
    assert store.rows[second.token].is_active is True


async def test_custom_ttl_and_variables(make_service, store, guest):
    provider = FakeProvider("SMTP")
    template = InvitationTemplate(
        subject="{{couple}} are getting married",
        html="<p>{{guest_first_name}}: {{rsvp_link}}</p>",
        text="{{rsvp_link}}",
    )
    service = make_service(provider, template=template, ttl_days=30)

    result = await service.send_invitation(guest.id, ttl_days=3, variables={"couple": "Ana & Luis"})

    row = store.rows[result.token]
    assert (row.expires_at - row.created_at).days == 3
    assert provider.calls[0].subject == "Ana & Luis are getting married"


async def test_failed_send_keeps_the_token(make_service, store, guest, log):
    provider = FakeProvider("SMTP", outcomes=[permanent("mailbox unavailable")])

    result = await make_service(provider).send_invitation(guest.id)

    assert result.sent is False
    assert "mailbox unavailable" in result.warning
    assert store.rows[result.token].is_active is True
    assert log.records[0].status == CommunicationStatus.FAILED


async def test_guest_without_email(make_service, store, directory):
    guest = create_test_guest(email=None)
    directory.add_guest(guest)
    provider = FakeProvider("SMTP")

    result = await make_service(provider).send_invitation(guest.id)

    assert result.sent is False
    assert result.warning
    assert result.token in store.rows
    assert provider.calls == []


async def test_log_failure_is_a_warning(make_service, guest):
    service = make_service(FakeProvider("SMTP"), communication_log=FailingCommunicationLog())

    result = await service.send_invitation(guest.id)

    assert result.sent is False
    assert "could not be recorded" in result.warning


async def test_unknown_guest(make_service, store):
    with pytest.raises(GuestNotFoundError):
        await make_service(FakeProvider("SMTP")).send_invitation(uuid4())
    assert store.rows == {}


async def test_guest_of_another_event(make_service, store, guest):
    with pytest.raises(GuestNotFoundError):
        await make_service(FakeProvider("SMTP")).send_invitation(guest.id, event_id=uuid4())
    assert store.rows == {}
