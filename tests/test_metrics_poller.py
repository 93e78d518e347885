import pytest

from sqlguard.core.errors import GatewayUnavailable
from sqlguard.schemas.alerts import AlertSeverity, AlertState
from sqlguard.services.alert_engine import AlertEngine
from sqlguard.workers.metrics_poller import MetricsPoller


class FakeMetricsClient:
    def __init__(self, *payloads):
        self.payloads = list(payloads)
        self.timeouts = []

    async def fetch_metrics(self, timeout=None):
        self.timeouts.append(timeout)
        item = self.payloads.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


@pytest.mark.asyncio
async def test_poll_feeds_engine():
    engine = AlertEngine()
    client = FakeMetricsClient({"total_queries": 120, "malicious_queries": 4, "queries_per_minute": 12})
    poller = MetricsPoller(client=client, engine=engine, fetch_timeout=1.5)

    event = await poller.poll_once()
    assert event is not None
    assert event.severity is AlertSeverity.CRITICAL
    assert client.timeouts == [1.5]
    assert engine.describe().last_snapshot.total_queries == 120


@pytest.mark.asyncio
async def test_camel_case_payload_is_accepted():
    engine = AlertEngine()
    client = FakeMetricsClient({"totalQueries": 10, "maliciousQueries": 1, "queriesPerMinute": 6})
    event = await MetricsPoller(client=client, engine=engine, fetch_timeout=1.0).poll_once()
    assert event.severity is AlertSeverity.WARNING


@pytest.mark.asyncio
async def test_fetch_failure_keeps_engine_state():
    engine = AlertEngine()
    client = FakeMetricsClient(
        {"total_queries": 50, "malicious_queries": 1, "queries_per_minute": 7},
        GatewayUnavailable("metrics endpoint down"),
    )
    poller = MetricsPoller(client=client, engine=engine, fetch_timeout=1.0)
    await poller.poll_once()
    before = engine.describe()

    assert await poller.poll_once() is None
    assert engine.describe() == before
    assert engine.state is AlertState.RAISED


@pytest.mark.asyncio
async def test_unparseable_payload_is_skipped():
    engine = AlertEngine()
    client = FakeMetricsClient({"queries_per_minute": "lots"})
    assert await MetricsPoller(client=client, engine=engine, fetch_timeout=1.0).poll_once() is None
    assert engine.describe().last_snapshot is None


@pytest.mark.asyncio
async def test_malformed_counters_skip_the_tick():
    engine = AlertEngine()
    client = FakeMetricsClient({"total_queries": 5, "malicious_queries": 10, "queries_per_minute": 30})
    assert await MetricsPoller(client=client, engine=engine, fetch_timeout=1.0).poll_once() is None
    assert engine.alerts == []
    assert engine.describe().skipped_ticks == 1
