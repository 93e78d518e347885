"""
Metrics poller: one scheduled tick fetches the counters and feeds the alert
engine. Fetch failures and unparseable payloads are logged and the tick is
dropped; the engine's state is left as it was.
"""

from __future__ import annotations

import itertools
import time
from typing import Optional

from pydantic import ValidationError

from sqlguard.core.config import get_settings
from sqlguard.core.errors import GatewayUnavailable
from sqlguard.core.logger import get_logger
from sqlguard.schemas.alerts import AlertEvent
from sqlguard.schemas.metrics import MetricSnapshot
from sqlguard.services.alert_engine import AlertEngine, get_alert_engine
from sqlguard.services.detector_client import DetectorClient, get_detector_client

log = get_logger(__name__)


class MetricsPoller:
    def __init__(
        self,
        client: Optional[DetectorClient] = None,
        engine: Optional[AlertEngine] = None,
        fetch_timeout: Optional[float] = None,
    ) -> None:
        self.client = client or get_detector_client()
        self.engine = engine or get_alert_engine()
        self.fetch_timeout = fetch_timeout if fetch_timeout is not None else get_settings().METRICS_TIMEOUT
        self._seq = itertools.count(1)
        self._applied = 0

    async def poll_once(self) -> Optional[AlertEvent]:
        seq = next(self._seq)
        started = time.time()
        try:
            data = await self.client.fetch_metrics(timeout=self.fetch_timeout)
        except GatewayUnavailable as e:
            log.warning("Metrics fetch failed, alerting paused for this tick: %s", e)
            return None

        try:
            snapshot = MetricSnapshot(
                timestamp=started,
                total_queries=data.get("total_queries", data.get("totalQueries")),
                malicious_queries=data.get("malicious_queries", data.get("maliciousQueries")),
                queries_per_minute=data.get("queries_per_minute", data.get("queriesPerMinute")),
            )
        except ValidationError as e:
            log.warning("Unparseable metrics payload, skipping tick: %s", e.errors())
            return None

        # ticks overlap when a fetch is slow; never let an older reading win
        if seq < self._applied:
            log.debug("Dropping stale metrics tick %d (already applied %d)", seq, self._applied)
            return None
        self._applied = seq
        return self.engine.on_tick(snapshot, now=time.time())
