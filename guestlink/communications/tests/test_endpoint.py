from uuid import uuid4

import pytest

from guestlink.communications.router import (
    get_communication_log,
    get_delivery_dispatcher,
    get_guest_directory,
    get_provider_config_source,
)
from guestlink.communications.tests.inmemory_models import (
    FailingCommunicationLog,
    InMemoryCommunicationLog,
)
from guestlink.communications.urls import (
    LOGS_URL,
    MESSAGE_STATUS_URL,
    PROVIDERS_URL,
    SEND_BULK_URL,
    SEND_URL,
    STATS_URL,
    STATUS_UPDATE_URL,
    VERIFY_PROVIDERS_URL,
)
from guestlink.delivery.dispatcher import DeliveryDispatcher
from guestlink.delivery.dtos import ProviderConfig, ProviderKind
from guestlink.delivery.registry import ProviderRegistry
from guestlink.delivery.tests.inmemory_models import (
    FakeProvider,
    InMemoryProviderConfigSource,
    permanent,
    transient,
)
from guestlink.tokens.tests.inmemory_models import InMemoryGuestDirectory, create_test_guest


@pytest.fixture
def event_id():
    return uuid4()


@pytest.fixture
def log():
    return InMemoryCommunicationLog()


@pytest.fixture
def directory():
    return InMemoryGuestDirectory()


@pytest.fixture
def providers():
    return [
        FakeProvider("SendGrid", kind=ProviderKind.SENDGRID),
        FakeProvider("SMTP", kind=ProviderKind.SMTP),
    ]


@pytest.fixture
def make_overrides(log, directory):
    def make(providers, communication_log=None):
        communication_log = communication_log or log
        dispatcher = DeliveryDispatcher(
            registry=ProviderRegistry(providers),
            communication_log=communication_log,
            bulk_delay=0,
        )
        return {
            get_delivery_dispatcher: lambda: dispatcher,
            get_communication_log: lambda: communication_log,
            get_guest_directory: lambda: directory,
        }

    return make


def send_payload(**kwargs):
    payload = {
        "to": "guest@example.com",
        "subject": "Save the date",
        "html": "<p>See you there</p>",
    }
    payload.update(kwargs)
    return payload


async def test_send_message(client_factory, make_overrides, providers, event_id, log):
    guest_id = uuid4()

    async with client_factory(make_overrides(providers)) as client:
        response = await client.post(
            SEND_URL.format(event_id=event_id),
            json=send_payload(guest_id=str(guest_id), **{"from": "rsvp@example.wedding"}),
        )

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["provider"] == "SendGrid"
    assert data["delivery_status"] == "sent"
    assert data["message_id"] == "SendGrid-1"
    assert data["guest_id"] == str(guest_id)
    assert providers[0].calls[0].from_address == "rsvp@example.wedding"
    assert log.records[0].event_id == event_id


async def test_send_falls_back(client_factory, make_overrides, event_id):
    providers = [FakeProvider("SendGrid", outcomes=[transient()]), FakeProvider("SMTP")]

    async with client_factory(make_overrides(providers)) as client:
        response = await client.post(SEND_URL.format(event_id=event_id), json=send_payload())

    assert response.json()["provider"] == "SMTP"


async def test_delivery_failure_is_a_normal_response(client_factory, make_overrides, event_id):
    providers = [FakeProvider("SendGrid", outcomes=[permanent("invalid recipient")])]

    async with client_factory(make_overrides(providers)) as client:
        response = await client.post(SEND_URL.format(event_id=event_id), json=send_payload())

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is False
    assert data["delivery_status"] == "failed"
    assert data["error"] == "invalid recipient"


async def test_send_without_providers(client_factory, make_overrides, event_id, log):
    async with client_factory(make_overrides([])) as client:
        response = await client.post(SEND_URL.format(event_id=event_id), json=send_payload())

    assert response.json()["provider"] == "none"
    assert len(log.records) == 1


@pytest.mark.parametrize(
    "payload",
    [
        send_payload(html=None),
        send_payload(to="not-an-email"),
        send_payload(subject=""),
        {"subject": "Hi", "html": "<p>Hi</p>"},
    ],
)
async def test_send_validation(client_factory, make_overrides, providers, event_id, payload):
    async with client_factory(make_overrides(providers)) as client:
        response = await client.post(SEND_URL.format(event_id=event_id), json=payload)

    assert response.status_code == 422
    assert providers[0].calls == []


async def test_send_event_mismatch(client_factory, make_overrides, providers, event_id):
    async with client_factory(make_overrides(providers)) as client:
        response = await client.post(
            SEND_URL.format(event_id=event_id), json=send_payload(event_id=str(uuid4()))
        )

    assert response.status_code == 400
    assert providers[0].calls == []


async def test_send_log_failure(client_factory, make_overrides, providers, event_id):
    overrides = make_overrides(providers, communication_log=FailingCommunicationLog())

    async with client_factory(overrides) as client:
        response = await client.post(SEND_URL.format(event_id=event_id), json=send_payload())

    assert response.status_code == 500


async def test_send_bulk_personalizes_per_recipient(
    client_factory, make_overrides, providers, directory, event_id
):
    guest = create_test_guest(first_name="Ana", last_name="Lopez", event_id=event_id)
    directory.add_guest(guest)
    payload = send_payload(
        subject="Hello {{guest_first_name}}",
        html="<p>{{guest_name}}, your table is {{table}}</p>",
        recipients=[
            {"to": "ana@example.com", "guest_id": str(guest.id), "variables": {"table": "7"}},
            {"to": "luis@example.com", "variables": {"guest_first_name": "Luis"}},
        ],
    )
    del payload["to"]

    async with client_factory(make_overrides(providers)) as client:
        response = await client.post(SEND_BULK_URL.format(event_id=event_id), json=payload)

    assert response.status_code == 200
    data = response.json()
    assert (data["sent"], data["failed"]) == (2, 0)
    assert [r["recipient"] for r in data["results"]] == ["ana@example.com", "luis@example.com"]

    first, second = providers[0].calls
    assert first.subject == "Hello Ana"
    assert first.html == "<p>Ana Lopez, your table is 7</p>"
    assert second.subject == "Hello Luis"
    assert second.html == "<p>{{guest_name}}, your table is {{table}}</p>"


async def test_send_bulk_reports_failures(client_factory, make_overrides, event_id):
    providers = [FakeProvider("SMTP", outcomes=[None, permanent("mailbox full")])]
    payload = send_payload(recipients=[{"to": "a@example.com"}, {"to": "b@example.com"}])

    async with client_factory(make_overrides(providers)) as client:
        response = await client.post(SEND_BULK_URL.format(event_id=event_id), json=payload)

    data = response.json()
    assert (data["sent"], data["failed"]) == (1, 1)
    assert data["results"][1]["error"] == "mailbox full"


async def test_send_bulk_requires_recipients(client_factory, make_overrides, providers, event_id):
    async with client_factory(make_overrides(providers)) as client:
        response = await client.post(
            SEND_BULK_URL.format(event_id=event_id), json=send_payload(recipients=[])
        )

    assert response.status_code == 422


async def test_list_and_verify_providers(client_factory, make_overrides, event_id):
    providers = [
        FakeProvider("SendGrid", kind=ProviderKind.SENDGRID),
        FakeProvider("SMTP", kind=ProviderKind.SMTP, healthy=False),
    ]

    async with client_factory(make_overrides(providers)) as client:
        listed = await client.get(PROVIDERS_URL.format(event_id=event_id))
        verified = await client.post(VERIFY_PROVIDERS_URL.format(event_id=event_id))

    data = listed.json()
    assert data["configured"] == ["SendGrid", "SMTP"]
    configured_kinds = [p["kind"] for p in data["providers"] if p["configured"]]
    assert configured_kinds == ["sendgrid", "smtp"]
    assert verified.json() == [
        {"name": "SendGrid", "healthy": True, "error": None},
        {"name": "SMTP", "healthy": False, "error": "Verification failed"},
    ]


async def test_status_update_stats_and_logs(client_factory, make_overrides, providers, event_id):
    async with client_factory(make_overrides(providers)) as client:
        sent = await client.post(SEND_URL.format(event_id=event_id), json=send_payload())
        message_id = sent.json()["message_id"]
        await client.post(SEND_URL.format(event_id=event_id), json=send_payload())

        delivered = await client.post(
            STATUS_UPDATE_URL.format(event_id=event_id),
            json={"message_id": message_id, "status": "delivered"},
        )
        stale = await client.post(
            STATUS_UPDATE_URL.format(event_id=event_id),
            json={"message_id": message_id, "status": "sent"},
        )
        unknown = await client.post(
            STATUS_UPDATE_URL.format(event_id=event_id),
            json={"message_id": "unknown", "status": "delivered"},
        )
        other_event = await client.post(
            STATUS_UPDATE_URL.format(event_id=uuid4()),
            json={"message_id": message_id, "status": "opened"},
        )
        stats = await client.get(STATS_URL.format(event_id=event_id))
        logs = await client.get(LOGS_URL.format(event_id=event_id), params={"limit": 1})
        status = await client.get(
            MESSAGE_STATUS_URL.format(event_id=event_id, message_id=message_id)
        )
        missing = await client.get(
            MESSAGE_STATUS_URL.format(event_id=event_id, message_id="unknown")
        )

    assert delivered.json() == {"updated": True}
    assert stale.json() == {"updated": False}
    assert unknown.json() == {"updated": False}
    assert other_event.json() == {"updated": False}

    assert stats.json()["sent"] == 2
    assert stats.json()["delivered"] == 1
    assert stats.json()["delivery_rate"] == 50.0

    assert len(logs.json()) == 1

    record = status.json()
    assert record["status"] == "delivered"
    assert record["delivered_at"] is not None
    assert record["metadata"]["attempts"] == [{"provider": "SendGrid", "success": True}]
    assert missing.status_code == 404


async def test_logs_limit_is_bounded(client_factory, make_overrides, providers, event_id):
    async with client_factory(make_overrides(providers)) as client:
        response = await client.get(LOGS_URL.format(event_id=event_id), params={"limit": 5000})

    assert response.status_code == 422


async def test_providers_are_resolved_per_event(client_factory, log):
    wedding, party = uuid4(), uuid4()
    source = InMemoryProviderConfigSource(
        {
            wedding: ProviderConfig(sendgrid_api_key="sg-key"),
            party: ProviderConfig(
                provider_order=[ProviderKind.SMTP, ProviderKind.BREVO],
                smtp_host="smtp.example.com",
                brevo_api_key="brevo-key",
            ),
        }
    )
    overrides = {
        get_provider_config_source: lambda: source,
        get_communication_log: lambda: log,
    }

    async with client_factory(overrides) as client:
        for_wedding = await client.get(PROVIDERS_URL.format(event_id=wedding))
        for_party = await client.get(PROVIDERS_URL.format(event_id=party))
        for_unknown = await client.get(PROVIDERS_URL.format(event_id=uuid4()))

    assert for_wedding.json()["configured"] == ["SendGrid"]
    assert for_party.json()["configured"] == ["SMTP", "Brevo"]
    assert for_unknown.json()["configured"] == []
    assert source.requested[:2] == [wedding, party]
