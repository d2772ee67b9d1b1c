from __future__ import annotations

import logging
import re
from typing import Any, Optional

import httpx

from ..core.errors import ProviderError
from ..core.log import token_prefix
from ..domain.models import DeliveryResult, NotificationEnvelope

logger = logging.getLogger(__name__)

EXPO_TOKEN_RE = re.compile(r"^Expo(nent)?PushToken\[[^\]]+\]$")


def is_expo_token(token: object) -> bool:
    return isinstance(token, str) and bool(EXPO_TOKEN_RE.match(token))


class ExpoPushProvider:
    """Delivers one envelope to one device through the Expo push HTTP API."""

    def __init__(
        self,
        url: str = "https://exp.host/--/api/v2/push/send",
        access_token: str = "",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._url = url
        self._access_token = access_token
        self._timeout = timeout
        self._client = client

    def _message(self, envelope: NotificationEnvelope) -> dict[str, Any]:
        return {
            "to": envelope.target_token,
            "title": envelope.title,
            "body": envelope.body,
            "data": dict(envelope.data),
            "priority": "high" if envelope.priority == "high" else "default",
            "sound": envelope.sound or "default",
            "channelId": envelope.channel_id,
        }

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if self._access_token:
            headers["Authorization"] = f"Bearer {self._access_token}"
        return headers

    async def _post(self, message: dict[str, Any]) -> httpx.Response:
        if self._client is not None:
            return await self._client.post(self._url, json=message, headers=self._headers())
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.post(self._url, json=message, headers=self._headers())

    async def send(self, envelope: NotificationEnvelope) -> DeliveryResult:
        token = envelope.target_token
        if not token:
            return DeliveryResult(success=False, error="Envelope has no target token", reason="no_target")
        if not is_expo_token(token):
            logger.warning("Invalid Expo push token: %s", token_prefix(token))
            return DeliveryResult(success=False, error="Invalid Expo push token", reason="invalid_token")

        try:
            resp = await self._post(self._message(envelope))
            resp.raise_for_status()
            body = resp.json()
        except httpx.HTTPError as e:
            raise ProviderError(f"Expo push request failed: {e}") from e
        except ValueError as e:
            raise ProviderError("Expo push returned invalid JSON") from e

        if body.get("errors"):
            raise ProviderError(f"Expo push rejected request: {body['errors']}")

        ticket = body.get("data") or {}
        if isinstance(ticket, list):
            ticket = ticket[0] if ticket else {}

        if ticket.get("status") == "ok":
            logger.info("Expo ticket %s for %s", ticket.get("id"), token_prefix(token))
            return DeliveryResult(success=True, message_id=ticket.get("id"))

        message = ticket.get("message") or "Expo push ticket error"
        details = ticket.get("details") or {}
        if details.get("error") == "DeviceNotRegistered":
            return DeliveryResult(success=False, error=message, reason="device_not_registered")
        raise ProviderError(message)

    async def health(self) -> dict[str, Any]:
        return {"status": "configured", "provider": "expo", "url": self._url}
