import asyncio

import pytest

from guestlink.communications.dtos import CommunicationLogError, CommunicationStatus
from guestlink.communications.tests.inmemory_models import (
    FailingCommunicationLog,
    InMemoryCommunicationLog,
)
from guestlink.delivery.dispatcher import ALL_FAILED, NO_PROVIDER, DeliveryDispatcher
from guestlink.delivery.dtos import (
    DeliveryStatus,
    ErrorKind,
    OutboundMessage,
    ProviderConfig,
    SendResult,
)
from guestlink.delivery.providers import Provider
from guestlink.delivery.registry import ProviderRegistry
from guestlink.delivery.tests.inmemory_models import (
    FakeProvider,
    create_test_message,
    permanent,
    rejected,
    transient,
)


@pytest.fixture
def log():
    return InMemoryCommunicationLog()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def make_dispatcher(log, sleeps):
    async def fake_sleep(delay):
        sleeps.append(delay)

    def make(*providers, **kwargs):
        kwargs.setdefault("sleep", fake_sleep)
        return DeliveryDispatcher(
            registry=ProviderRegistry(list(providers)),
            communication_log=kwargs.pop("communication_log", log),
            **kwargs,
        )

    return make


async def test_first_provider_success(make_dispatcher, log):
    first = FakeProvider("SendGrid")
    second = FakeProvider("Brevo")
    message = create_test_message()

    result = await make_dispatcher(first, second).send(message)

    assert result.success is True
    assert result.provider == "SendGrid"
    assert result.message_id == "SendGrid-1"
    assert result.delivery_status == DeliveryStatus.SENT
    assert result.recipient == message.to
    assert result.guest_id == message.guest_id
    assert len(second.calls) == 0

    assert len(log.records) == 1
    record = log.records[0]
    assert record.status == CommunicationStatus.SENT
    assert record.provider == "SendGrid"
    assert record.message_id == "SendGrid-1"
    assert record.sent_at is not None
    assert record.metadata["attempts"] == [{"provider": "SendGrid", "success": True}]


async def test_falls_back_to_next_provider(make_dispatcher, log):
    first = FakeProvider("SendGrid", outcomes=[transient("503 from upstream")])
    second = FakeProvider("Brevo")

    result = await make_dispatcher(first, second).send(create_test_message())

    assert result.success is True
    assert result.provider == "Brevo"
    assert len(first.calls) == 1
    assert len(second.calls) == 1

    assert len(log.records) == 1
    attempts = log.records[0].metadata["attempts"]
    assert attempts[0] == {
        "provider": "SendGrid",
        "success": False,
        "error": "503 from upstream",
        "error_kind": "transient",
    }
    assert attempts[1] == {"provider": "Brevo", "success": True}


async def test_provider_rejection_also_falls_back(make_dispatcher):
    first = FakeProvider("Resend", outcomes=[rejected()])
    second = FakeProvider("SMTP")

    result = await make_dispatcher(first, second).send(create_test_message())

    assert result.provider == "SMTP"


async def test_all_providers_fail(make_dispatcher, log):
    first = FakeProvider("SendGrid", outcomes=[transient("timeout")])
    second = FakeProvider("SMTP", outcomes=[rejected("535 authentication failed")])

    result = await make_dispatcher(first, second).send(create_test_message())

    assert result.success is False
    assert result.provider == ALL_FAILED
    assert result.delivery_status == DeliveryStatus.FAILED
    assert "535 authentication failed" in result.error
    assert result.error_kind == ErrorKind.PROVIDER

    assert len(log.records) == 1
    record = log.records[0]
    assert record.status == CommunicationStatus.FAILED
    assert record.provider == ALL_FAILED
    assert record.sent_at is None
    assert [a["provider"] for a in record.metadata["attempts"]] == ["SendGrid", "SMTP"]


async def test_permanent_error_stops_fallback(make_dispatcher, log):
    first = FakeProvider("SendGrid", outcomes=[permanent("Does not contain a valid address")])
    second = FakeProvider("Brevo")

    result = await make_dispatcher(first, second).send(create_test_message())

    assert result.success is False
    assert result.provider == "SendGrid"
    assert result.error_kind == ErrorKind.PERMANENT
    assert len(second.calls) == 0
    assert len(log.records) == 1


async def test_no_providers_configured(make_dispatcher, log):
    result = await make_dispatcher().send(create_test_message())

    assert result.success is False
    assert result.provider == NO_PROVIDER
    assert result.error == "No email providers configured"
    assert len(log.records) == 1
    assert log.records[0].status == CommunicationStatus.FAILED
    assert log.records[0].metadata["attempts"] == []


async def test_slow_provider_times_out_and_falls_back(make_dispatcher, log):
    slow = FakeProvider("Resend", delay=1)
    fast = FakeProvider("SMTP")

    result = await make_dispatcher(slow, fast, provider_timeout=0.01).send(create_test_message())

    assert result.provider == "SMTP"
    attempts = log.records[0].metadata["attempts"]
    assert "timed out" in attempts[0]["error"]
    assert attempts[0]["error_kind"] == "transient"


async def test_unexpected_provider_exception_falls_back(make_dispatcher):
    broken = FakeProvider("Brevo", outcomes=[RuntimeError("boom")])
    working = FakeProvider("SMTP")

    result = await make_dispatcher(broken, working).send(create_test_message())

    assert result.provider == "SMTP"


async def test_failed_send_result_is_treated_as_error(make_dispatcher):
    first = FakeProvider(
        "Brevo", outcomes=[SendResult.failed("Brevo", "quota exceeded", ErrorKind.PROVIDER)]
    )
    second = FakeProvider("SMTP")

    result = await make_dispatcher(first, second).send(create_test_message())

    assert result.provider == "SMTP"


async def test_defaults_fill_sender_fields(make_dispatcher):
    provider = FakeProvider("SMTP")
    defaults = ProviderConfig(
        email_from="rsvp@ana-and-luis.com",
        email_from_name="Ana & Luis",
        email_reply_to="ana@example.com",
    )
    dispatcher = make_dispatcher(provider, defaults=defaults)

    await dispatcher.send(create_test_message())
    await dispatcher.send(create_test_message(from_address="custom@example.com"))

    first, second = provider.calls
    assert first.from_address == "rsvp@ana-and-luis.com"
    assert first.from_name == "Ana & Luis"
    assert first.reply_to == "ana@example.com"
    assert second.from_address == "custom@example.com"


async def test_message_metadata_is_recorded(make_dispatcher, log):
    message = create_test_message(template_id="rsvp_invitation", metadata={"campaign": "save"})

    await make_dispatcher(FakeProvider("SMTP")).send(message)

    record = log.records[0]
    assert record.template_id == "rsvp_invitation"
    assert record.metadata["campaign"] == "save"
    assert record.guest_id == message.guest_id


async def test_send_raises_when_record_cannot_be_written(make_dispatcher):
    provider = FakeProvider("SMTP")
    dispatcher = make_dispatcher(provider, communication_log=FailingCommunicationLog())

    with pytest.raises(CommunicationLogError):
        await dispatcher.send(create_test_message())
    assert len(provider.calls) == 1


async def test_unexpected_log_error_is_wrapped(make_dispatcher):
    dispatcher = make_dispatcher(
        FakeProvider("SMTP"), communication_log=FailingCommunicationLog(RuntimeError("disk full"))
    )

    with pytest.raises(CommunicationLogError, match="disk full"):
        await dispatcher.send(create_test_message())


def test_concurrency_must_be_positive(make_dispatcher):
    with pytest.raises(ValueError):
        make_dispatcher(bulk_concurrency=0)


def test_message_requires_a_body():
    with pytest.raises(ValueError):
        create_test_message(html=None, text=None)


async def test_bulk_keeps_order_and_paces_sends(make_dispatcher, log, sleeps):
    provider = FakeProvider("SMTP", outcomes=[None, permanent("mailbox unavailable"), None])
    messages = [create_test_message(to=f"guest{i}@example.com") for i in range(3)]

    results = await make_dispatcher(provider, bulk_delay=0.25).send_bulk(messages)

    assert [r.recipient for r in results] == [m.to for m in messages]
    assert [r.success for r in results] == [True, False, True]
    assert sleeps == [0.25, 0.25]
    assert [r.recipient for r in log.records] == [m.to for m in messages]


async def test_bulk_with_no_messages(make_dispatcher):
    assert await make_dispatcher(FakeProvider("SMTP")).send_bulk([]) == []


async def test_bulk_reports_log_failures_per_message(make_dispatcher):
    dispatcher = make_dispatcher(
        FakeProvider("SMTP"), communication_log=FailingCommunicationLog(), bulk_delay=0
    )

    results = await dispatcher.send_bulk([create_test_message(), create_test_message()])

    assert all(result.success for result in results)
    assert all(result.log_error == "database is down" for result in results)


async def test_bulk_deadline_fails_remaining_messages(make_dispatcher, log):
    provider = FakeProvider("SMTP", delay=0.1)
    messages = [create_test_message(to=f"guest{i}@example.com") for i in range(3)]

    results = await make_dispatcher(provider, bulk_deadline=0.05, bulk_delay=0).send_bulk(
        messages
    )

    assert results[0].success is True
    for result in results[1:]:
        assert result.success is False
        assert result.provider == NO_PROVIDER
        assert result.error == "Batch deadline exceeded before sending"
    assert len(provider.calls) == 1
    assert len(log.records) == 3


class CountingProvider(Provider):
    name = "Counting"

    def __init__(self):
        self.active = 0
        self.peak = 0

    async def send(self, message: OutboundMessage) -> SendResult:
        self.active += 1
        self.peak = max(self.peak, self.active)
        await asyncio.sleep(0.01)
        self.active -= 1
        return SendResult.sent(self.name)

    async def verify(self) -> bool:
        return True


@pytest.mark.parametrize("concurrency, expected_peak", [(1, 1), (3, 3)])
async def test_bulk_concurrency_limit(make_dispatcher, concurrency, expected_peak):
    provider = CountingProvider()
    messages = [create_test_message() for _ in range(6)]

    results = await make_dispatcher(
        provider, bulk_concurrency=concurrency, bulk_delay=0
    ).send_bulk(messages)

    assert all(result.success for result in results)
    assert provider.peak == expected_peak
