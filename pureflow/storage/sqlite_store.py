from __future__ import annotations
import json
import logging
from typing import Any, List, Mapping, Optional

import aiosqlite

from .base import merge_record, validate_token
from ..core.log import token_prefix
from ..core.timeutil import now_iso
from ..domain.models import TokenRecord

logger = logging.getLogger(__name__)

_COLUMNS = "token,user_id,platform,device_info,created_at,last_seen"


def _row_to_record(row) -> TokenRecord:
    token, user_id, platform, device_info, created_at, last_seen = row
    return TokenRecord(
        token=token,
        user_id=user_id,
        platform=platform,
        device_info=json.loads(device_info) if device_info else None,
        created_at=created_at,
        last_seen=last_seen,
    )


class SQLiteTokenStore:
    def __init__(self, path: str) -> None:
        self._path = path

    async def init(self) -> None:
        async with aiosqlite.connect(self._path) as db:
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS tokens (
                    token TEXT PRIMARY KEY,
                    user_id TEXT,
                    platform TEXT,
                    device_info TEXT,
                    created_at TEXT NOT NULL,
                    last_seen TEXT NOT NULL
                )
                """
            )
            await db.commit()

    async def upsert(self, token: str, metadata: Optional[Mapping[str, Any]] = None) -> TokenRecord:
        validate_token(token)
        async with aiosqlite.connect(self._path) as db:
            # BEGIN IMMEDIATE serialises concurrent writers across processes
            await db.execute("BEGIN IMMEDIATE")
            cur = await db.execute(f"SELECT {_COLUMNS} FROM tokens WHERE token = ?", (token,))
            row = await cur.fetchone()
            existing = _row_to_record(row) if row else None
            record = merge_record(existing, token, metadata, now_iso())
            await db.execute(
                f"INSERT INTO tokens({_COLUMNS}) VALUES (?,?,?,?,?,?) "
                "ON CONFLICT(token) DO UPDATE SET user_id=excluded.user_id, "
                "platform=excluded.platform, device_info=excluded.device_info, "
                "last_seen=excluded.last_seen",
                (
                    record.token,
                    record.user_id,
                    record.platform,
                    json.dumps(record.device_info) if record.device_info is not None else None,
                    record.created_at,
                    record.last_seen,
                ),
            )
            await db.commit()
        logger.info(
            "Token %s %s", token_prefix(token), "registered" if existing is None else "refreshed"
        )
        return record

    async def list(self) -> List[TokenRecord]:
        try:
            async with aiosqlite.connect(self._path) as db:
                cur = await db.execute(f"SELECT {_COLUMNS} FROM tokens ORDER BY created_at")
                rows = await cur.fetchall()
        except aiosqlite.Error as e:
            logger.error("Error reading token table: %s", e)
            return []
        return [_row_to_record(row) for row in rows]

    async def remove(self, token: str) -> None:
        async with aiosqlite.connect(self._path) as db:
            await db.execute("DELETE FROM tokens WHERE token = ?", (token,))
            await db.commit()
