from __future__ import annotations
import logging
import uuid
from collections import deque
from typing import Any

from ..core.log import token_prefix
from ..domain.models import DeliveryResult, NotificationEnvelope

logger = logging.getLogger(__name__)


class LoggingProvider:
    """Development provider: logs the envelope and reports success."""

    def __init__(self) -> None:
        self.sent: deque[NotificationEnvelope] = deque(maxlen=100)

    async def send(self, envelope: NotificationEnvelope) -> DeliveryResult:
        self.sent.append(envelope)
        message_id = f"log-{uuid.uuid4().hex[:12]}"
        logger.info(
            "NOTIFY %s -> %s: %s | %s",
            message_id,
            token_prefix(envelope.target_token) if envelope.target_token else "*",
            envelope.title,
            envelope.body,
        )
        return DeliveryResult(success=True, message_id=message_id)

    async def health(self) -> dict[str, Any]:
        return {"status": "healthy", "provider": "log"}
