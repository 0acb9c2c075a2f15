"""Ordered provider fallback and bulk dispatch."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import replace
from datetime import datetime
from typing import Any

from guestlink.communications.dtos import (
    CommunicationLogError,
    CommunicationStatus,
    NewCommunicationRecord,
)
from guestlink.communications.log import CommunicationLog
from guestlink.delivery.dtos import (
    ErrorKind,
    OutboundMessage,
    ProviderConfig,
    ProviderSendError,
    SendResult,
)
from guestlink.delivery.providers import Provider
from guestlink.delivery.registry import ProviderRegistry
from guestlink.helpers.time import utcnow

logger = logging.getLogger(__name__)

NO_PROVIDER = "none"
ALL_FAILED = "fallback"


class DeliveryDispatcher:
    def __init__(
        self,
        registry: ProviderRegistry,
        communication_log: CommunicationLog,
        defaults: ProviderConfig | None = None,
        provider_timeout: float = 15.0,
        bulk_delay: float = 0.1,
        bulk_concurrency: int = 1,
        bulk_deadline: float = 600.0,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if bulk_concurrency < 1:
            raise ValueError("bulk_concurrency must be at least 1")
        self._registry = registry
        self._log = communication_log
        self._defaults = defaults
        self._provider_timeout = provider_timeout
        self._bulk_delay = bulk_delay
        self._bulk_concurrency = bulk_concurrency
        self._bulk_deadline = bulk_deadline
        self._clock = clock
        self._sleep = sleep

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    def _with_defaults(self, message: OutboundMessage) -> OutboundMessage:
        if self._defaults is None:
            return message
        return replace(
            message,
            from_address=message.from_address or self._defaults.email_from,
            from_name=message.from_name or self._defaults.email_from_name,
            reply_to=message.reply_to or self._defaults.email_reply_to,
        )

    async def _attempt(self, provider: Provider, message: OutboundMessage) -> SendResult:
        """One provider call. Every failure comes out as ProviderSendError."""
        try:
            result = await asyncio.wait_for(provider.send(message), self._provider_timeout)
        except ProviderSendError:
            raise
        except asyncio.TimeoutError as e:
            raise ProviderSendError(
                f"{provider.name} timed out after {self._provider_timeout}s", ErrorKind.TRANSIENT
            ) from e
        except Exception as e:
            logger.exception(f"Unexpected error from {provider.name}")
            raise ProviderSendError(
                f"{provider.name}: {e or type(e).__name__}", ErrorKind.TRANSIENT
            ) from e

        if not result.success:
            raise ProviderSendError(
                result.error or f"{provider.name} failed", result.error_kind or ErrorKind.TRANSIENT
            )
        return result

    async def _deliver(self, message: OutboundMessage) -> tuple[SendResult, list[dict]]:
        attempts: list[dict] = []
        if not self._registry:
            logger.error(f"No email providers configured, cannot send to {message.to}")
            return (
                SendResult.failed(NO_PROVIDER, "No email providers configured", ErrorKind.PROVIDER),
                attempts,
            )

        last_error: ProviderSendError | None = None
        for provider in self._registry.providers:
            try:
                result = await self._attempt(provider, message)
            except ProviderSendError as e:
                attempts.append(
                    {
                        "provider": provider.name,
                        "success": False,
                        "error": str(e),
                        "error_kind": e.kind.value,
                    }
                )
                if not e.kind.fails_over:
                    logger.warning(f"{provider.name} rejected message to {message.to}: {e}")
                    return SendResult.failed(provider.name, str(e), e.kind), attempts
                logger.warning(f"{provider.name} failed ({e.kind.value}): {e}, trying next provider")
                last_error = e
                continue

            attempts.append({"provider": provider.name, "success": True})
            logger.info(f"Sent message to {message.to} via {provider.name}")
            return result, attempts

        logger.error(f"All email providers failed for {message.to}. Last error: {last_error}")
        return (
            SendResult.failed(
                ALL_FAILED, f"All providers failed. Last error: {last_error}", last_error.kind
            ),
            attempts,
        )

    async def _record(
        self, message: OutboundMessage, result: SendResult, attempts: list[dict]
    ) -> None:
        record = NewCommunicationRecord(
            event_id=message.event_id,
            guest_id=message.guest_id,
            channel=message.channel,
            recipient=message.to,
            subject=message.subject,
            template_id=message.template_id,
            status=CommunicationStatus.SENT if result.success else CommunicationStatus.FAILED,
            provider=result.provider,
            message_id=result.message_id,
            error_message=result.error,
            sent_at=self._clock() if result.success else None,
            metadata={**message.metadata, "attempts": attempts},
        )
        try:
            await self._log.append(record)
        except CommunicationLogError:
            logger.exception(f"Could not record delivery to {message.to}")
            raise
        except Exception as e:
            logger.exception(f"Could not record delivery to {message.to}")
            raise CommunicationLogError(str(e)) from e

    async def _send_and_record(
        self, message: OutboundMessage
    ) -> tuple[SendResult, CommunicationLogError | None]:
        message = self._with_defaults(message)
        result, attempts = await self._deliver(message)
        result = replace(result, recipient=message.to, guest_id=message.guest_id)
        try:
            await self._record(message, result, attempts)
        except CommunicationLogError as e:
            return result, e
        return result, None

    async def send(self, message: OutboundMessage) -> SendResult:
        """
        Deliver one message through the first provider that accepts it.

        Exactly one communication record is written before returning.

        Raises:
            CommunicationLogError: the delivery outcome could not be recorded
        """
        result, log_error = await self._send_and_record(message)
        if log_error is not None:
            raise log_error
        return result

    async def _send_in_batch(self, message: OutboundMessage) -> SendResult:
        try:
            result, log_error = await self._send_and_record(message)
        except Exception as e:
            logger.exception(f"Bulk send to {message.to} failed")
            return replace(
                SendResult.failed(NO_PROVIDER, str(e) or type(e).__name__),
                recipient=message.to,
                guest_id=message.guest_id,
            )
        if log_error is not None:
            return replace(result, log_error=str(log_error))
        return result

    async def _expire(self, message: OutboundMessage) -> SendResult:
        result = replace(
            SendResult.failed(
                NO_PROVIDER, "Batch deadline exceeded before sending", ErrorKind.TRANSIENT
            ),
            recipient=message.to,
            guest_id=message.guest_id,
        )
        try:
            await self._record(message, result, [])
        except CommunicationLogError as e:
            return replace(result, log_error=str(e))
        return result

    async def send_bulk(self, messages: Iterable[OutboundMessage]) -> list[SendResult]:
        """
        Send many messages, results in input order.

        Starts are spaced by the bulk delay. With the default concurrency of 1 every
        message, including its log write, finishes before the next one starts.
        Messages not started before the batch deadline fail without being sent.
        """
        messages = list(messages)
        results: list[SendResult | None] = [None] * len(messages)
        if not messages:
            return []

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._bulk_deadline
        pending = iter(enumerate(messages))
        pacing = asyncio.Lock()
        started = False

        async def worker():
            nonlocal started
            for index, message in pending:
                async with pacing:
                    expired = loop.time() >= deadline
                    if not expired and started and self._bulk_delay > 0:
                        await self._sleep(self._bulk_delay)
                        expired = loop.time() >= deadline
                    if not expired:
                        started = True

                if expired:
                    results[index] = await self._expire(message)
                else:
                    results[index] = await self._send_in_batch(message)

        workers = min(self._bulk_concurrency, len(messages))
        await asyncio.gather(*(worker() for _ in range(workers)))

        sent = sum(1 for result in results if result.success)
        logger.info(f"Bulk send finished: {sent}/{len(messages)} sent")
        return results
