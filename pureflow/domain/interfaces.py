from __future__ import annotations
from typing import Any, Mapping, Optional, Protocol, runtime_checkable
from .models import DeliveryResult, NotificationEnvelope, TokenRecord


@runtime_checkable
class Provider(Protocol):
    """Delivery backend. Raise ProviderError or return success=False on failure."""

    async def send(self, envelope: NotificationEnvelope) -> DeliveryResult:
        ...


@runtime_checkable
class TokenStore(Protocol):
    async def init(self) -> None:
        ...

    async def upsert(self, token: str, metadata: Optional[Mapping[str, Any]] = None) -> TokenRecord:
        ...

    async def list(self) -> list[TokenRecord]:
        ...

    async def remove(self, token: str) -> None:
        ...


@runtime_checkable
class ReadingSource(Protocol):
    async def fetch_latest(self) -> list[dict[str, Any]]:
        ...
