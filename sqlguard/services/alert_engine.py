"""
Alert engine: turns the metrics feed into debounced operator alerts.

Each tick moves the engine idle -> evaluating -> suppressed | raised:
- the query rate at or above the policy threshold arms a candidate alert,
  above the critical rate it is raised as critical, otherwise warning;
- a candidate is emitted only if no alert was raised yet or the debounce
  window has elapsed since the last one;
- emitted alerts are prepended to a bounded log (oldest evicted), and a
  best-effort system notification is fired without awaiting it.

Malformed snapshots are skipped and leave every piece of state untouched.
Log mutations (raise and dismiss) happen under one lock, so a concurrent
dismiss never observes a half-applied raise.
"""

from __future__ import annotations

import asyncio
import itertools
import threading
import time
from typing import Awaitable, Callable, List, Optional, Set

from sqlguard.core.config import AlertPolicy, get_settings
from sqlguard.core.errors import MalformedSnapshot
from sqlguard.core.logger import get_logger
from sqlguard.schemas.alerts import AlertEngineState, AlertEvent, AlertSeverity, AlertState
from sqlguard.schemas.metrics import MetricSnapshot, validate_snapshot
from sqlguard.services.notifier import NullNotifier, SystemNotifier, build_notifier

log = get_logger(__name__)

AlertListener = Callable[[List[AlertEvent]], Awaitable[None]]

ALERT_TITLE = "High Query Traffic Alert"
NOTIFICATION_TITLE = "SQL Security Alert"


class AlertEngine:
    def __init__(
        self,
        policy: Optional[AlertPolicy] = None,
        notifier: Optional[SystemNotifier] = None,
        listeners: Optional[List[AlertListener]] = None,
    ) -> None:
        self.policy = policy or AlertPolicy()
        self.notifier = notifier or NullNotifier()
        self._listeners: List[AlertListener] = list(listeners or [])
        self._lock = threading.Lock()
        self._log: List[AlertEvent] = []
        self._ids = itertools.count(1)
        self._state = AlertState.IDLE
        self._last_alert_time: Optional[float] = None
        self._last_snapshot: Optional[MetricSnapshot] = None
        self._skipped_ticks = 0
        self._raised = 0
        self._pending: Set[asyncio.Task] = set()

    # -------------------------
    # Read side
    # -------------------------
    @property
    def alerts(self) -> List[AlertEvent]:
        """Current notification log, newest first."""
        with self._lock:
            return list(self._log)

    @property
    def state(self) -> AlertState:
        return self._state

    @property
    def last_alert_time(self) -> Optional[float]:
        return self._last_alert_time

    def describe(self) -> AlertEngineState:
        with self._lock:
            return AlertEngineState(
                state=self._state,
                last_alert_time=self._last_alert_time,
                last_snapshot=self._last_snapshot,
                skipped_ticks=self._skipped_ticks,
                alerts=len(self._log),
            )

    # -------------------------
    # Listeners
    # -------------------------
    def subscribe(self, listener: AlertListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: AlertListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # -------------------------
    # Ticks
    # -------------------------
    def _derive_rate(self, snapshot: MetricSnapshot) -> Optional[float]:
        if snapshot.queries_per_minute is not None:
            return float(snapshot.queries_per_minute)
        prev = self._last_snapshot
        if prev is None:
            return None
        elapsed = snapshot.timestamp - prev.timestamp
        delta = snapshot.total_queries - prev.total_queries
        # counter reset or out-of-order timestamps: no rate for this tick
        if elapsed <= 0 or delta < 0:
            return None
        return delta * 60.0 / elapsed

    def on_tick(self, snapshot: MetricSnapshot, now: Optional[float] = None) -> Optional[AlertEvent]:
        """Evaluate one snapshot. Returns the raised AlertEvent, if any."""
        now = time.time() if now is None else now
        try:
            validate_snapshot(snapshot)
        except MalformedSnapshot as e:
            with self._lock:
                self._skipped_ticks += 1
            log.warning("Skipping malformed metrics snapshot: %s", e)
            return None

        with self._lock:
            self._state = AlertState.EVALUATING
            rate = self._derive_rate(snapshot)
            self._last_snapshot = snapshot

            if rate is None or rate < self.policy.qpm_threshold:
                self._state = AlertState.IDLE
                return None

            last = self._last_alert_time
            if last is not None and now - last < self.policy.debounce_seconds:
                self._state = AlertState.SUPPRESSED
                return None

            severity = AlertSeverity.CRITICAL if rate > self.policy.critical_qpm else AlertSeverity.WARNING
            event = AlertEvent(
                id=next(self._ids),
                severity=severity,
                title=ALERT_TITLE,
                message=(
                    f"{round(rate, 1):g} queries per minute detected - "
                    f"exceeding threshold of {self.policy.qpm_threshold:g} QPM"
                ),
                queries_per_minute=rate,
                created_at=now,
            )
            self._log.insert(0, event)
            del self._log[self.policy.max_notifications:]
            self._last_alert_time = now
            self._state = AlertState.RAISED
            self._raised += 1
            current = list(self._log)

        log.info("Raised %s alert #%d: %s", severity.value, event.id, event.message)
        self._spawn(lambda: self._deliver(event), "system notification")
        self._spawn(lambda: self._publish(current), "alert listeners")
        return event

    def dismiss(self, alert_id: int) -> bool:
        """Remove an alert from the log. Unknown ids are a no-op returning False."""
        with self._lock:
            before = len(self._log)
            self._log = [a for a in self._log if a.id != alert_id]
            removed = len(self._log) != before
            current = list(self._log)
        if removed:
            log.info("Dismissed alert #%d", alert_id)
            self._spawn(lambda: self._publish(current), "alert listeners")
        return removed

    # -------------------------
    # Fire-and-forget side effects
    # -------------------------
    def _spawn(self, factory: Callable[[], Awaitable[None]], what: str) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            log.debug("No running event loop, skipping %s", what)
            return
        task = loop.create_task(factory())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, event: AlertEvent) -> None:
        try:
            await self.notifier.notify(NOTIFICATION_TITLE, event.message)
        except Exception as exc:
            log.debug("System notification for alert #%d not delivered: %s", event.id, exc)

    async def _publish(self, alerts: List[AlertEvent]) -> None:
        for cb in list(self._listeners):
            try:
                await cb(alerts)
            except Exception as exc:
                log.exception("Alert listener failed: %s", exc)

    async def drain(self) -> None:
        """Wait for in-flight notifications and listener calls."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def aclose(self) -> None:
        await self.drain()
        await self.notifier.aclose()


_engine: Optional[AlertEngine] = None


def get_alert_engine() -> AlertEngine:
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = AlertEngine(AlertPolicy.from_settings(settings), build_notifier(settings))
    return _engine
