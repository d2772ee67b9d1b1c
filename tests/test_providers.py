"""
Tests for the Expo push provider and the logging provider
"""
import json

import httpx
import pytest

from pureflow.core.errors import ProviderError
from pureflow.domain.models import NotificationEnvelope
from pureflow.providers.expo import ExpoPushProvider, is_expo_token
from pureflow.providers.log_provider import LoggingProvider

TOKEN = "ExponentPushToken[abc123]"
URL = "https://exp.host/--/api/v2/push/send"


def expo(handler) -> ExpoPushProvider:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ExpoPushProvider(url=URL, access_token="secret", client=client)


def alert_envelope(token=TOKEN) -> NotificationEnvelope:
    return NotificationEnvelope(
        title="pH High",
        body="pH is above maximum safe level!",
        data={"type": "water_quality_alert", "parameter": "pH"},
        target_token=token,
        priority="high",
        channel_id="alerts",
        sound="water_alert",
    )


class TestTokenFormat:
    """Expo token shape check"""

    @pytest.mark.parametrize("token", ["ExponentPushToken[xyz]", "ExpoPushToken[xyz]"])
    def test_valid(self, token) -> None:
        assert is_expo_token(token)

    @pytest.mark.parametrize("token", ["", "fcm-token", "ExponentPushToken[]", None])
    def test_invalid(self, token) -> None:
        assert not is_expo_token(token)


class TestExpoSend:
    """Ticket handling of the push API"""

    @pytest.mark.asyncio
    async def test_ok_ticket_is_success(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            seen["auth"] = request.headers.get("authorization")
            return httpx.Response(200, json={"data": {"status": "ok", "id": "ticket-1"}})

        result = await expo(handler).send(alert_envelope())

        assert result.success is True
        assert result.message_id == "ticket-1"
        assert seen["auth"] == "Bearer secret"
        assert seen["body"]["to"] == TOKEN
        assert seen["body"]["priority"] == "high"
        assert seen["body"]["channelId"] == "alerts"
        assert seen["body"]["sound"] == "water_alert"

    @pytest.mark.asyncio
    async def test_invalid_token_never_hits_the_network(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("network must not be used")

        result = await expo(handler).send(alert_envelope("not-an-expo-token"))

        assert result.success is False
        assert result.reason == "invalid_token"

    @pytest.mark.asyncio
    async def test_missing_target(self) -> None:
        result = await expo(lambda r: httpx.Response(500)).send(alert_envelope(None))
        assert result.reason == "no_target"

    @pytest.mark.asyncio
    async def test_device_not_registered(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"data": {
                "status": "error",
                "message": "not a registered push notification recipient",
                "details": {"error": "DeviceNotRegistered"},
            }})

        result = await expo(handler).send(alert_envelope())

        assert result.success is False
        assert result.reason == "device_not_registered"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("response", [
        httpx.Response(503, text="unavailable"),
        httpx.Response(200, text="<html>"),
        httpx.Response(200, json={"errors": [{"code": "PUSH_TOO_MANY_EXPERIENCE_IDS"}]}),
        httpx.Response(200, json={"data": {"status": "error", "message": "MessageRateExceeded"}}),
    ])
    async def test_transient_failures_raise(self, response) -> None:
        with pytest.raises(ProviderError):
            await expo(lambda r: response).send(alert_envelope())

    @pytest.mark.asyncio
    async def test_transport_error_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ProviderError):
            await expo(handler).send(alert_envelope())


class TestLoggingProvider:
    """Development provider"""

    @pytest.mark.asyncio
    async def test_records_and_succeeds(self) -> None:
        provider = LoggingProvider()

        result = await provider.send(alert_envelope())

        assert result.success is True
        assert result.message_id.startswith("log-")
        assert list(provider.sent) == [alert_envelope()]
        assert (await provider.health())["status"] == "healthy"
