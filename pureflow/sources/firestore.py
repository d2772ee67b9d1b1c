from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)

FIRESTORE_BASE_URL = "https://firestore.googleapis.com/v1"


def decode_value(value: dict[str, Any]) -> Any:
    """Decode one Firestore REST typed value into a plain Python value."""
    if "nullValue" in value:
        return None
    if "booleanValue" in value:
        return bool(value["booleanValue"])
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "stringValue" in value:
        return value["stringValue"]
    if "timestampValue" in value:
        return value["timestampValue"]
    if "mapValue" in value:
        return decode_fields(value["mapValue"].get("fields", {}))
    if "arrayValue" in value:
        return [decode_value(v) for v in value["arrayValue"].get("values", [])]
    return None


def decode_fields(fields: dict[str, Any]) -> dict[str, Any]:
    return {name: decode_value(v) for name, v in fields.items()}


class FirestoreReadingSource:
    """Reads the newest sensor documents of a collection over the Firestore REST API."""

    def __init__(
        self,
        project_id: str,
        collection: str = "datm_data",
        api_key: str = "",
        page_size: int = 50,
        order_by: str = "datetime desc",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if not project_id:
            raise ValueError("Firestore project id is required")
        self._url = (
            f"{FIRESTORE_BASE_URL}/projects/{project_id}/databases/(default)/documents/{collection}"
        )
        self._api_key = api_key
        self._page_size = page_size
        self._order_by = order_by
        self._timeout = timeout
        self._client = client

    def _params(self) -> dict[str, Any]:
        params: dict[str, Any] = {"pageSize": self._page_size}
        if self._order_by:
            params["orderBy"] = self._order_by
        if self._api_key:
            params["key"] = self._api_key
        return params

    async def _get(self) -> httpx.Response:
        if self._client is not None:
            return await self._client.get(self._url, params=self._params())
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.get(self._url, params=self._params())

    async def fetch_latest(self) -> list[dict[str, Any]]:
        resp = await self._get()
        resp.raise_for_status()
        body = resp.json()
        docs = [decode_fields(d.get("fields", {})) for d in body.get("documents", [])]
        logger.debug("Fetched %d sensor documents", len(docs))
        return docs
