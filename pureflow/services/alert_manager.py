"""Alert de-duplication across polls.

A reading is identified by a data signature built from its timestamp and key
values; a signature seen before is skipped outright. Alerts produced by new
readings are keyed by an alert signature. An alert already active is only
touched (``last_seen``, ``occurrence_count``), a missing one is new. Active
alerts absent from the current reading for longer than the grace period are
resolved, so a later breach of the same kind fires again.
"""
from __future__ import annotations
import itertools
import json
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Mapping, Optional, Sequence

from ..core.timeutil import now_utc
from ..domain.classifier import classify, latest_reading, reading_timestamp
from ..domain.models import Alert

logger = logging.getLogger(__name__)

HISTORY_SIZE = 100
RESOLVE_AFTER_SECONDS = 60.0

SEVERITY = {"error": "high", "warning": "medium", "info": "low"}
_SEVERITY_ORDER = {"high": 3, "medium": 2, "low": 1}


def _parse_time(raw: Any) -> Optional[datetime]:
    if isinstance(raw, datetime):
        return raw
    if not isinstance(raw, str) or not raw:
        return None
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None


def newest_document(documents: Sequence[Mapping[str, Any]]) -> Optional[Mapping[str, Any]]:
    """The document with the latest ``datetime``/``timestamp``.

    Documents without a parseable time only win when none has one, in which
    case the last element is taken.
    """
    if not documents:
        return None
    dated = []
    for doc in documents:
        ts = _parse_time(reading_timestamp(doc)) if isinstance(doc, Mapping) else None
        if ts is not None:
            dated.append((ts, doc))
    if not dated:
        return latest_reading(list(documents))
    try:
        return max(dated, key=lambda pair: pair[0])[1]
    except TypeError:
        # naive and aware datetimes mixed
        return latest_reading(list(documents))


def alert_signature(alert: Alert) -> str:
    value = alert.value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        value = round(value * 100) / 100
    return f"{alert.parameter}-{alert.type}-{alert.title}-{value}"


@dataclass
class ActiveAlert:
    alert: Alert
    signature: str
    id: str
    created_at: datetime
    last_seen: datetime
    data_signature: str
    occurrence_count: int = 1

    @property
    def severity(self) -> str:
        return SEVERITY.get(self.alert.type, "low")

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.alert.to_dict(),
            "id": self.id,
            "severity": self.severity,
            "createdAt": self.created_at.isoformat(),
            "lastSeen": self.last_seen.isoformat(),
            "occurrenceCount": self.occurrence_count,
        }


@dataclass
class ProcessResult:
    alerts: list[ActiveAlert]
    new_alerts: list[ActiveAlert] = field(default_factory=list)
    resolved_alerts: list[ActiveAlert] = field(default_factory=list)
    skipped: bool = False
    reason: Optional[str] = None
    data_signature: Optional[str] = None


class AlertManager:
    def __init__(
        self,
        history_size: int = HISTORY_SIZE,
        resolve_after_seconds: float = RESOLVE_AFTER_SECONDS,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        if history_size < 1:
            raise ValueError("history_size must be at least 1")
        self.history_size = history_size
        self.resolve_after = timedelta(seconds=resolve_after_seconds)
        self._clock = clock

        self._history: OrderedDict[str, None] = OrderedDict()
        self._active: dict[str, ActiveAlert] = {}
        self._ids = itertools.count(1)
        self.last_processed: Optional[datetime] = None

    def data_signature(self, reading: Any) -> str:
        latest = latest_reading(reading)
        if latest is None:
            return "empty-data"
        key_values = {
            "timestamp": reading_timestamp(latest) or self._clock().isoformat(),
            "ph": latest.get("pH", latest.get("ph")),
            "temperature": latest.get("temperature"),
            "tds": latest.get("tds"),
            "salinity": latest.get("salinity"),
            "turbidity": latest.get("turbidity"),
            "isRaining": latest.get("isRaining"),
        }
        return json.dumps(key_values, sort_keys=True, default=str)

    def process(self, reading: Any, thresholds: Any) -> ProcessResult:
        signature = self.data_signature(reading)
        if signature in self._history:
            logger.debug("Skipping alert processing, reading already processed")
            return ProcessResult(
                alerts=self.active_alerts(), skipped=True, reason="duplicate-data",
                data_signature=signature,
            )

        now = self._clock()
        generated = [a for a in classify(reading, thresholds) if a.type != "normal"]
        current: set[str] = set()
        new_alerts: list[ActiveAlert] = []

        for alert in generated:
            key = alert_signature(alert)
            current.add(key)
            existing = self._active.get(key)
            if existing is not None:
                existing.last_seen = now
                existing.occurrence_count += 1
                logger.debug("Alert seen again: %s (x%d)", alert.title, existing.occurrence_count)
                continue
            tracked = ActiveAlert(
                alert=alert,
                signature=key,
                id=f"alert_{int(now.timestamp() * 1000)}_{next(self._ids)}",
                created_at=now,
                last_seen=now,
                data_signature=signature,
            )
            self._active[key] = tracked
            new_alerts.append(tracked)
            logger.info("New alert: %s", alert.title)

        resolved: list[ActiveAlert] = []
        for key, tracked in list(self._active.items()):
            if key not in current and now - tracked.last_seen > self.resolve_after:
                del self._active[key]
                resolved.append(tracked)
                logger.info("Alert resolved: %s", tracked.alert.title)

        self._history[signature] = None
        while len(self._history) > self.history_size:
            self._history.popitem(last=False)
        self.last_processed = now

        return ProcessResult(
            alerts=self.active_alerts(),
            new_alerts=new_alerts,
            resolved_alerts=resolved,
            data_signature=signature,
        )

    def active_alerts(self) -> list[ActiveAlert]:
        """Most severe first, newest first within a severity."""
        return sorted(
            self._active.values(),
            key=lambda a: (_SEVERITY_ORDER.get(a.severity, 0), a.created_at),
            reverse=True,
        )

    def severity_breakdown(self) -> dict[str, int]:
        breakdown = {"high": 0, "medium": 0, "low": 0}
        for tracked in self._active.values():
            breakdown[tracked.severity] = breakdown.get(tracked.severity, 0) + 1
        return breakdown

    def stats(self) -> dict[str, Any]:
        return {
            "activeAlerts": len(self._active),
            "historySize": len(self._history),
            "lastProcessed": self.last_processed.isoformat() if self.last_processed else None,
            "severityBreakdown": self.severity_breakdown(),
        }

    def clear(self) -> None:
        self._active.clear()
        self._history.clear()
        self.last_processed = None
