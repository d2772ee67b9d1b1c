from __future__ import annotations
from typing import Any, Mapping, Optional

from ..core.errors import InvalidTokenError
from ..domain.models import TokenRecord

METADATA_FIELDS = ("userId", "platform", "deviceInfo")


def validate_token(token: object) -> str:
    if not isinstance(token, str) or not token.strip():
        raise InvalidTokenError("Token must be a non-empty string")
    return token


def merge_record(
    existing: Optional[TokenRecord],
    token: str,
    metadata: Optional[Mapping[str, Any]],
    now: str,
) -> TokenRecord:
    """New metadata wins where given; createdAt is kept from the first registration."""
    metadata = metadata or {}
    current = existing.to_dict() if existing else {}
    merged = {
        key: metadata.get(key) if metadata.get(key) is not None else current.get(key)
        for key in METADATA_FIELDS
    }
    return TokenRecord(
        token=token,
        created_at=existing.created_at if existing else now,
        last_seen=now,
        user_id=merged["userId"],
        platform=merged["platform"],
        device_info=merged["deviceInfo"],
    )
