"""
Tests for the notification dispatch service
"""
from dataclasses import replace

import pytest

from conftest import ScriptedProvider, no_sleep
from pureflow.core.errors import ProviderError
from pureflow.domain.models import DeliveryResult, NotificationEnvelope
from pureflow.services.dispatch import (
    DispatchConfig,
    NotificationService,
    send_to_registered_devices,
    stamp_timestamp,
    stringify_payload,
)
from pureflow.storage.json_store import JsonTokenStore


def envelope(**kwargs) -> NotificationEnvelope:
    fields = {"title": "pH High", "body": "pH is above maximum safe level!", "target_token": "tok-1"}
    fields.update(kwargs)
    return NotificationEnvelope(**fields)


FAIL = DeliveryResult(success=False, error="gateway unavailable")


class TestRegistration:
    """Provider and middleware registration"""

    def test_provider_without_send_is_rejected(self, service) -> None:
        with pytest.raises(TypeError):
            service.register_provider("broken", object())

    def test_non_callable_middleware_is_rejected(self, service) -> None:
        with pytest.raises(TypeError):
            service.use("not a function")

    def test_registered_providers_are_listed(self, service) -> None:
        service.register_provider("default", ScriptedProvider())
        service.register_provider("backup", ScriptedProvider())
        assert service.providers() == ["default", "backup"]
        assert service.get_provider("missing") is None


class TestSendWithRetry:
    """Retry with linear backoff"""

    @pytest.mark.asyncio
    async def test_fails_twice_then_succeeds(self) -> None:
        delays = []

        async def record_sleep(seconds: float) -> None:
            delays.append(seconds)

        service = NotificationService(DispatchConfig(max_retries=3, retry_delay=1.0), sleep=record_sleep)
        provider = ScriptedProvider([FAIL, ProviderError("timeout"), DeliveryResult(success=True, message_id="m-1")])
        service.register_provider("default", provider)

        result = await service.send(envelope())

        assert result.success is True
        assert result.message_id == "m-1"
        assert result.attempts == 3
        assert len(provider.calls) == 3
        assert delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_retries_reuse_the_same_envelope(self, service) -> None:
        provider = ScriptedProvider([FAIL, FAIL])
        service.register_provider("default", provider)

        await service.send(envelope())

        assert provider.calls[0] is provider.calls[1] is provider.calls[2]

    @pytest.mark.asyncio
    async def test_exhaustion_reports_attempts(self, service) -> None:
        provider = ScriptedProvider([FAIL, FAIL, FAIL, FAIL])
        service.register_provider("default", provider)

        result = await service.send(envelope())

        assert result.success is False
        assert result.attempts == 3
        assert result.error == "gateway unavailable"
        assert len(provider.calls) == 3

    @pytest.mark.asyncio
    async def test_permanent_failure_is_not_retried(self, service) -> None:
        provider = ScriptedProvider([DeliveryResult(success=False, error="bad token", reason="invalid_token")])
        service.register_provider("default", provider)

        result = await service.send(envelope())

        assert result.success is False
        assert result.reason == "invalid_token"
        assert result.attempts == 1
        assert len(provider.calls) == 1

    @pytest.mark.asyncio
    async def test_unknown_provider_is_a_failure_result(self, service) -> None:
        result = await service.send(envelope(), "sms")
        assert result.success is False
        assert "sms" in result.error


class TestEnableDisable:
    """Global toggle"""

    @pytest.mark.asyncio
    async def test_disabled_service_contacts_no_provider(self, service) -> None:
        provider = ScriptedProvider()
        service.register_provider("default", provider)
        service.disable()

        result = await service.send(envelope())

        assert result.success is False
        assert result.reason == "disabled"
        assert provider.calls == []

        service.enable()
        assert (await service.send(envelope())).success is True


class TestMiddleware:
    """Middleware runs in registration order before every send"""

    @pytest.mark.asyncio
    async def test_order_and_async_middleware(self, service) -> None:
        provider = ScriptedProvider()
        service.register_provider("default", provider)

        def first(env):
            return replace(env, title=env.title + " [1]")

        async def second(env):
            return replace(env, title=env.title + " [2]")

        service.use(first)
        service.use(second)

        await service.send(envelope())

        assert provider.calls[0].title == "pH High [1] [2]"

    @pytest.mark.asyncio
    async def test_failing_middleware_is_a_failure_result(self, service) -> None:
        provider = ScriptedProvider()
        service.register_provider("default", provider)

        def explode(env):
            raise ValueError("redaction failed")

        service.use(explode)
        result = await service.send(envelope())

        assert result.success is False
        assert result.error == "redaction failed"
        assert provider.calls == []

    def test_shipped_middleware(self) -> None:
        env = stringify_payload(stamp_timestamp(envelope(data={"value": 9.2, "critical": True})))

        assert env.data["value"] == "9.2"
        assert env.data["critical"] == "true"
        assert env.data["timestamp"]

    def test_stamp_keeps_existing_timestamp(self) -> None:
        env = stamp_timestamp(envelope(data={"timestamp": "2024-01-01T00:00:00Z"}))
        assert env.data["timestamp"] == "2024-01-01T00:00:00Z"


class TestProviderBroadcast:
    """Fan-out across every registered provider"""

    @pytest.mark.asyncio
    async def test_one_throwing_provider_does_not_block_others(self) -> None:
        service = NotificationService(DispatchConfig(max_retries=1), sleep=no_sleep)
        service.register_provider("push", ScriptedProvider())
        service.register_provider("email", ScriptedProvider([RuntimeError("smtp down")]))
        service.register_provider("log", ScriptedProvider())

        results = await service.broadcast(envelope(broadcast=True, target_token=None))

        assert [r.provider for r in results] == ["push", "email", "log"]
        assert [r.success for r in results] == [True, False, True]
        assert results[1].error == "smtp down"


class TestRegisteredDevices:
    """One send per registered token"""

    @pytest.mark.asyncio
    async def test_counts_and_per_token_results(self, service, tmp_path) -> None:
        store = JsonTokenStore(tmp_path / "tokens.json")
        for token in ("tok-a", "tok-b", "tok-c"):
            await store.upsert(token)
        provider = ScriptedProvider([
            DeliveryResult(success=True, message_id="1"),
            DeliveryResult(success=False, error="gone", reason="device_not_registered"),
            DeliveryResult(success=True, message_id="3"),
        ])
        service.register_provider("default", provider)

        summary = await send_to_registered_devices(service, store, envelope(target_token=None))

        assert summary.total_recipients == 3
        assert summary.successful_sends == 2
        assert summary.failed_sends == 1
        assert summary.success is True
        assert [c.target_token for c in provider.calls] == ["tok-a", "tok-b", "tok-c"]
        assert [r.token for r in summary.results] == ["tok-a", "tok-b", "tok-c"]

    @pytest.mark.asyncio
    async def test_no_registered_devices(self, service, tmp_path) -> None:
        service.register_provider("default", ScriptedProvider())
        summary = await send_to_registered_devices(service, JsonTokenStore(tmp_path / "t.json"), envelope())
        assert (summary.total_recipients, summary.successful_sends, summary.failed_sends) == (0, 0, 0)
