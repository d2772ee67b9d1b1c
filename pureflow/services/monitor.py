from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from ..core.timeutil import now_utc
from ..domain.classifier import breaches
from ..domain.interfaces import ReadingSource, TokenStore
from ..domain.models import Alert
from ..domain.templates import alert_notification
from ..domain.thresholds import ThresholdRegistry
from .alert_manager import HISTORY_SIZE, RESOLVE_AFTER_SECONDS, AlertManager, newest_document
from .dispatch import NotificationService, send_to_registered_devices

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MonitorConfig:
    interval_seconds: float = 60.0
    cooldown_seconds: float = 300.0
    provider_name: str = "default"
    history_size: int = HISTORY_SIZE
    resolve_after_seconds: float = RESOLVE_AFTER_SECONDS


@dataclass
class MonitorHandle:
    task: asyncio.Task
    stop_event: asyncio.Event

    @property
    def running(self) -> bool:
        return not self.task.done()


@dataclass
class MonitorState:
    ticks: int = 0
    last_poll_utc: Optional[datetime] = None
    last_error: Optional[str] = None
    documents_seen: int = 0
    notifications_sent: int = 0
    last_alerts: list[Alert] = field(default_factory=list)


class AlertMonitor:
    """Polls sensor documents and pushes breach alerts to every registered device."""

    def __init__(
        self,
        source: ReadingSource,
        registry: ThresholdRegistry,
        service: NotificationService,
        store: TokenStore,
        config: MonitorConfig = MonitorConfig(),
        alerts: Optional[AlertManager] = None,
    ) -> None:
        self._source = source
        self._registry = registry
        self._service = service
        self._store = store
        self.config = config
        self.alerts = alerts or AlertManager(
            history_size=config.history_size,
            resolve_after_seconds=config.resolve_after_seconds,
        )

        self._handle: Optional[MonitorHandle] = None
        self._last_notified: dict[str, datetime] = {}
        self.state = MonitorState()

    @property
    def running(self) -> bool:
        return self._handle is not None and self._handle.running

    async def start(self) -> MonitorHandle:
        if self._handle is not None and self._handle.running:
            logger.debug("Alert monitor already running")
            return self._handle
        stop_event = asyncio.Event()
        task = asyncio.create_task(self._run(stop_event), name="alert_monitor")
        self._handle = MonitorHandle(task=task, stop_event=stop_event)
        return self._handle

    async def stop(self, handle: Optional[MonitorHandle] = None) -> None:
        handle = handle or self._handle
        if handle is None:
            return
        handle.stop_event.set()
        await handle.task
        if handle is self._handle:
            self._handle = None

    def _cooldown_elapsed(self, parameter: str, now: datetime) -> bool:
        last = self._last_notified.get(parameter)
        if last is None:
            return True
        return (now - last) >= timedelta(seconds=self.config.cooldown_seconds)

    async def poll_once(self) -> list[Alert]:
        """One tick: returns the breach alerts that were dispatched.

        Only the newest document is evaluated, and only breaches that are new
        to the alert manager are pushed. A reading already processed yields
        nothing.
        """
        self.state.ticks += 1
        self.state.last_poll_utc = now_utc()
        try:
            documents = await self._source.fetch_latest()
        except Exception as e:
            self.state.last_error = str(e)
            logger.warning("Polling sensor documents failed: %s", e)
            return []

        self.state.last_error = None
        self.state.documents_seen = len(documents)
        dispatched: list[Alert] = []

        latest = newest_document(documents)
        if latest is None:
            self.state.last_alerts = dispatched
            return dispatched

        result = self.alerts.process(latest, self._registry.get_thresholds())
        if result.skipped:
            logger.debug("Newest reading already processed (%s)", result.reason)
            self.state.last_alerts = dispatched
            return dispatched

        for alert in breaches(tracked.alert for tracked in result.new_alerts):
            now = now_utc()
            if not self._cooldown_elapsed(alert.parameter, now):
                logger.debug("Cooldown active for %s, skipping", alert.parameter)
                continue
            logger.warning("ALERT: %s (value=%s)", alert.title, alert.value)
            summary = await send_to_registered_devices(
                self._service,
                self._store,
                alert_notification(alert),
                self.config.provider_name,
            )
            self._last_notified[alert.parameter] = now
            self.state.notifications_sent += summary.successful_sends
            dispatched.append(alert)

        self.state.last_alerts = dispatched
        return dispatched

    async def _run(self, stop_event: asyncio.Event) -> None:
        logger.info("Alert monitor started (interval=%ss)", self.config.interval_seconds)

        while not stop_event.is_set():
            try:
                await self.poll_once()
            except Exception as e:
                logger.exception("Alert monitor tick error: %s", e)

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.config.interval_seconds)
            except asyncio.TimeoutError:
                pass

        logger.info("Alert monitor stopped")
