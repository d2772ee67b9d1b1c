from __future__ import annotations

import hmac
import logging
from typing import Optional

from fastapi import Header, Request

logger = logging.getLogger(__name__)


class ApiKeyError(Exception):
    def __init__(self, status_code: int, error: str, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error = error
        self.message = message


def _presented_key(x_api_key: Optional[str], authorization: Optional[str]) -> Optional[str]:
    if x_api_key:
        return x_api_key
    if authorization and authorization.startswith("Bearer "):
        return authorization[len("Bearer "):]
    return None


async def require_api_key(
    request: Request,
    x_api_key: Optional[str] = Header(default=None),
    authorization: Optional[str] = Header(default=None),
) -> None:
    presented = _presented_key(x_api_key, authorization)
    if not presented:
        raise ApiKeyError(
            401, "API key required", "Provide API key in x-api-key header or Authorization header"
        )

    expected = request.app.state.settings.api_secret_key
    if not expected:
        logger.warning("API key not configured; rejecting request")
        raise ApiKeyError(500, "Server config error", "Set API_SECRET_KEY in server environment")

    if not hmac.compare_digest(presented.encode("utf-8"), expected.encode("utf-8")):
        raise ApiKeyError(401, "Invalid API key", "API key is not valid")
