from __future__ import annotations
import asyncio
import inspect
import logging
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, Optional, Union

from ..core.log import token_prefix
from ..domain.interfaces import Provider, TokenStore
from ..domain.models import BroadcastSummary, DeliveryResult, NotificationEnvelope
from ..domain.templates import stringify_data
from ..core.timeutil import now_iso

logger = logging.getLogger(__name__)

Middleware = Callable[
    [NotificationEnvelope],
    Union[NotificationEnvelope, Awaitable[NotificationEnvelope]],
]

# Failures that no amount of retrying will fix
PERMANENT_REASONS = frozenset({"invalid_token", "device_not_registered", "no_target"})


@dataclass(frozen=True)
class DispatchConfig:
    enabled: bool = True
    max_retries: int = 3
    retry_delay: float = 1.0  # seconds; attempt n waits retry_delay * n


class NotificationService:
    """Named providers, ordered middleware and retry with linear backoff."""

    def __init__(
        self,
        config: DispatchConfig = DispatchConfig(),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.config = config
        self._enabled = config.enabled
        self._providers: dict[str, Provider] = {}
        self._middleware: list[Middleware] = []
        self._sleep = sleep

    def register_provider(self, name: str, provider: Provider) -> None:
        if not isinstance(provider, Provider) or not callable(getattr(provider, "send", None)):
            raise TypeError(f"Provider {name} must implement send(envelope)")
        self._providers[name] = provider
        logger.info("Notification provider registered: %s (%s)", name, type(provider).__name__)

    def use(self, middleware: Middleware) -> None:
        if not callable(middleware):
            raise TypeError("Middleware must be callable")
        self._middleware.append(middleware)

    @property
    def enabled(self) -> bool:
        return self._enabled

    def enable(self) -> None:
        self._enabled = True

    def disable(self) -> None:
        self._enabled = False

    def providers(self) -> list[str]:
        return list(self._providers)

    def get_provider(self, name: str) -> Optional[Provider]:
        return self._providers.get(name)

    async def send(self, envelope: NotificationEnvelope, provider_name: str = "default") -> DeliveryResult:
        if not self._enabled:
            logger.info("Notifications disabled globally; dropping %r", envelope.title)
            return DeliveryResult(success=False, reason="disabled", provider=provider_name)

        try:
            processed = await self._apply_middleware(envelope)
            provider = self._providers.get(provider_name)
            if provider is None:
                raise LookupError(f"Provider {provider_name} not found")
        except Exception as e:
            logger.error("Error sending notification via %s: %s", provider_name, e)
            return DeliveryResult(success=False, error=str(e), provider=provider_name)

        return await self._send_with_retry(provider_name, provider, processed)

    async def broadcast(self, envelope: NotificationEnvelope) -> list[DeliveryResult]:
        """Send through every registered provider; one failure never blocks the others."""
        names = self.providers()
        outcomes = await asyncio.gather(
            *(self.send(envelope, name) for name in names),
            return_exceptions=True,
        )
        results: list[DeliveryResult] = []
        for name, outcome in zip(names, outcomes):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                results.append(DeliveryResult(success=False, error=str(outcome), provider=name))
            else:
                results.append(outcome)
        return results

    async def _apply_middleware(self, envelope: NotificationEnvelope) -> NotificationEnvelope:
        processed = envelope
        for middleware in self._middleware:
            out = middleware(processed)
            if inspect.isawaitable(out):
                out = await out
            processed = out
        return processed

    async def _send_with_retry(
        self, name: str, provider: Provider, envelope: NotificationEnvelope
    ) -> DeliveryResult:
        max_attempts = max(1, self.config.max_retries)
        error: Optional[str] = None
        reason: Optional[str] = None

        for attempt in range(1, max_attempts + 1):
            try:
                result = await provider.send(envelope)
                if result.success:
                    logger.info("Notification sent via %s (attempt %d)", name, attempt)
                    return replace(result, provider=name, attempts=attempt)
                error = result.error or "Provider send failed"
                reason = result.reason
            except Exception as e:
                error = str(e) or type(e).__name__
                reason = None
                logger.warning("Provider %s raised on attempt %d: %s", name, attempt, error)

            if reason in PERMANENT_REASONS:
                logger.error("Notification via %s failed permanently: %s", name, error)
                return DeliveryResult(
                    success=False, error=error, attempts=attempt, provider=name, reason=reason
                )

            if attempt < max_attempts:
                logger.info("Retrying notification via %s (attempt %d)", name, attempt + 1)
                await self._sleep(self.config.retry_delay * attempt)

        logger.error("Failed to send notification via %s after %d attempts", name, max_attempts)
        return DeliveryResult(
            success=False, error=error, attempts=max_attempts, provider=name, reason=reason
        )


async def send_to_registered_devices(
    service: NotificationService,
    store: TokenStore,
    envelope: NotificationEnvelope,
    provider_name: str = "default",
) -> BroadcastSummary:
    """One send per known device token; a failed token never retries the batch."""
    records = await store.list()
    results: list[DeliveryResult] = []
    for record in records:
        targeted = replace(envelope, target_token=record.token, broadcast=False)
        result = await service.send(targeted, provider_name)
        if not result.success:
            logger.warning("Delivery to %s failed: %s", token_prefix(record.token), result.error or result.reason)
        results.append(replace(result, token=record.token))

    ok = sum(1 for r in results if r.success)
    logger.info("Device broadcast %r: %d/%d delivered", envelope.title, ok, len(results))
    return BroadcastSummary(
        total_recipients=len(records),
        successful_sends=ok,
        failed_sends=len(results) - ok,
        results=results,
    )


# --- Middleware ---

def stamp_timestamp(envelope: NotificationEnvelope) -> NotificationEnvelope:
    if "timestamp" in envelope.data:
        return envelope
    return replace(envelope, data={**envelope.data, "timestamp": now_iso()})


def stringify_payload(envelope: NotificationEnvelope) -> NotificationEnvelope:
    return replace(envelope, data=stringify_data(envelope.data))
