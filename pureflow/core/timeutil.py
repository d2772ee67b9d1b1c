import time
from datetime import datetime, timezone

_started_monotonic = time.monotonic()


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def now_iso() -> str:
    return now_utc().isoformat()


def uptime_seconds() -> float:
    return time.monotonic() - _started_monotonic
