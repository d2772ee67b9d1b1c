from __future__ import annotations
import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Mapping, Optional

from .base import merge_record, validate_token
from ..core.log import token_prefix
from ..core.timeutil import now_iso, now_utc
from ..domain.models import TokenRecord

logger = logging.getLogger(__name__)


class JsonTokenStore:
    """Token records as one JSON array in a file.

    Every mutation is a locked read-modify-write of the whole array, written to
    a temp file in the same directory and renamed over the original.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    async def init(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)

    async def upsert(self, token: str, metadata: Optional[Mapping[str, Any]] = None) -> TokenRecord:
        validate_token(token)
        async with self._lock:
            records = await self._load()
            index = next((i for i, r in enumerate(records) if r.token == token), None)
            existing = records[index] if index is not None else None
            record = merge_record(existing, token, metadata, now_iso())
            if index is None:
                records.append(record)
            else:
                records[index] = record
            await self._save(records)
        logger.info(
            "Token %s %s", token_prefix(token), "registered" if existing is None else "refreshed"
        )
        return record

    async def list(self) -> list[TokenRecord]:
        async with self._lock:
            return await self._load()

    async def remove(self, token: str) -> None:
        async with self._lock:
            records = await self._load()
            kept = [r for r in records if r.token != token]
            if len(kept) != len(records):
                await self._save(kept)
                logger.info("Token %s removed", token_prefix(token))

    async def _load(self) -> list[TokenRecord]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._read_sync)

    async def _save(self, records: list[TokenRecord]) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._write_sync, records)

    def _read_sync(self) -> list[TokenRecord]:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError as e:
            logger.error("Error reading tokens file %s: %s", self._path, e)
            return []
        if not raw.strip():
            return []
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            self._set_aside(f"invalid JSON ({e})")
            return []
        if not isinstance(data, list):
            self._set_aside("not a JSON array")
            return []

        records: list[TokenRecord] = []
        seen: set[str] = set()
        for item in data:
            if not isinstance(item, dict) or not isinstance(item.get("token"), str):
                logger.warning("Skipping malformed token record: %r", item)
                continue
            if item["token"] in seen:
                continue
            seen.add(item["token"])
            records.append(TokenRecord.from_dict(item))
        return records

    def _set_aside(self, reason: str) -> Optional[Path]:
        """Rename an unparseable file to ``<name>.corrupt-<utc timestamp>``."""
        stamp = now_utc().strftime("%Y%m%dT%H%M%S%fZ")
        target = self._path.with_name(f"{self._path.name}.corrupt-{stamp}")
        try:
            os.replace(self._path, target)
        except OSError as e:
            logger.error("Tokens file %s is unreadable (%s) and could not be moved: %s", self._path, reason, e)
            return None
        logger.warning("Tokens file %s is unreadable (%s); moved to %s", self._path, reason, target)
        return target

    def _write_sync(self, records: list[TokenRecord]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps([r.to_dict() for r in records], indent=2)
        fd, tmp = tempfile.mkstemp(
            dir=self._path.parent, prefix=f".{self._path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self._path)
        except BaseException:
            try:
                os.unlink(tmp)
            except FileNotFoundError:
                pass
            raise
