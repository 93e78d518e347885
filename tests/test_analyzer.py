import asyncio

import httpx
import pytest

from sqlguard.core.config import EnsembleConfig
from sqlguard.core.errors import GatewayUnavailable
from sqlguard.schemas.detection import AssessmentSource, ThreatLevel
from sqlguard.services.analyzer import FALLBACK_NOTICE, analyze_query
from sqlguard.services.assessment_stats import AssessmentStats
from sqlguard.services.detector_client import DetectorClient
from sqlguard.services.ensemble import MONITOR_RECOMMENDATION


class FakeClient:
    def __init__(self, payload=None, error=None, delay=0.0):
        self.payload = payload
        self.error = error
        self.delay = delay
        self.calls = []

    async def analyze_query(self, query, model_choice="ensemble", mode="full"):
        self.calls.append((query, model_choice, mode))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return dict(self.payload)


LIVE_PAYLOAD = {
    "is_malicious": False,
    "confidence": 42,
    "per_model": {
        "random_forest": {"confidence": 40, "features_detected": []},
        "bert": {"confidence": 45, "attention": [{"token": "SELECT", "weight": 0.2}]},
    },
    "warnings": [],
    "recommendations": ["ignored"],
    "detection_id": "abc-123",
    "processing_time_ms": 12.5,
    "timestamp": 1700000000.0,
}


async def _analyze(client, query="SELECT name FROM users", **kwargs):
    kwargs.setdefault("stats", AssessmentStats())
    kwargs.setdefault("config", EnsembleConfig())
    return await analyze_query(query, client=client, **kwargs)


@pytest.mark.asyncio
async def test_live_confidence_is_used_verbatim():
    client = FakeClient(LIVE_PAYLOAD)
    out = await _analyze(client, model_choice="bert", mode="fast")
    a = out.assessment

    assert client.calls == [("SELECT name FROM users", "bert", "fast")]
    assert out.degraded is False
    assert out.notice is None
    assert a.source is AssessmentSource.LIVE
    assert a.confidence == 42
    assert a.is_malicious is False
    assert a.threat_level is ThreatLevel.LOW
    assert MONITOR_RECOMMENDATION in a.recommendations
    assert a.detection_id == "abc-123"
    assert a.processing_time_ms == 12.5
    assert a.timestamp == 1700000000.0
    assert list(a.model_signals) == ["random_forest", "bert"]
    assert a.model_signals["bert"].tokens[0].token == "SELECT"
    assert not any(s.synthetic for s in a.model_signals.values())


@pytest.mark.asyncio
async def test_live_without_combined_confidence_uses_weighted_mean():
    payload = {"per_model": {"random_forest": 80, "bert": {"score": 50}}}
    out = await _analyze(FakeClient(payload))
    assert out.assessment.source is AssessmentSource.LIVE
    assert out.assessment.confidence == 68
    assert out.assessment.is_malicious is True


@pytest.mark.asyncio
async def test_gateway_warnings_follow_local_ones():
    payload = {
        "confidence": 91,
        "per_model": {"random_forest": {"confidence": 90, "patterns": ["union", "comment", "stacked"]}},
        "warnings": ["Possible UNION attack detected"],
    }
    out = await _analyze(FakeClient(payload))
    warnings = out.assessment.warnings
    assert warnings[0].startswith("Random Forest model flagged")
    assert warnings[1] == "Multiple injection indicators detected"
    assert warnings[2] == "Possible UNION attack detected"


@pytest.mark.asyncio
async def test_gateway_failure_degrades_to_fallback():
    query = "SELECT * FROM users WHERE id = '1' OR '1'='1'"
    out = await _analyze(FakeClient(error=GatewayUnavailable("down", status_code=502)), query=query)
    a = out.assessment

    assert out.degraded is True
    assert out.notice == FALLBACK_NOTICE
    assert a.source is AssessmentSource.FALLBACK
    assert a.is_malicious is True
    assert "OR 1=1 tautology" in a.model_signals["random_forest"].evidence
    assert all(s.synthetic for s in a.model_signals.values())
    assert a.detection_id is None


@pytest.mark.asyncio
async def test_slow_gateway_times_out_to_fallback():
    out = await _analyze(FakeClient(LIVE_PAYLOAD, delay=1.0), timeout=0.05)
    assert out.assessment.source is AssessmentSource.FALLBACK


@pytest.mark.asyncio
async def test_response_without_scores_degrades_to_fallback():
    out = await _analyze(FakeClient({"detection_id": "x"}))
    assert out.assessment.source is AssessmentSource.FALLBACK


@pytest.mark.asyncio
async def test_live_and_fallback_statistics_are_kept_apart():
    stats = AssessmentStats()
    await _analyze(FakeClient(LIVE_PAYLOAD), stats=stats)
    await _analyze(FakeClient(error=GatewayUnavailable("down")), query="DROP TABLE users; --", stats=stats)

    summary = stats.summary()
    assert summary["live"]["analyses"] == 1
    assert summary["live"]["avg_confidence"] == 42
    assert summary["fallback"]["analyses"] == 1
    assert summary["fallback"]["malicious"] == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("query", ["", "   "])
async def test_empty_query_fails_fast(query):
    client = FakeClient(LIVE_PAYLOAD)
    with pytest.raises(ValueError):
        await _analyze(client, query=query)
    assert client.calls == []


def raw_gateway(body: bytes) -> DetectorClient:
    """A real client whose gateway answers 200 with a literal JSON body."""

    def handler(request):
        return httpx.Response(200, content=body, headers={"Content-Type": "application/json"})

    return DetectorClient(base_url="http://detector.test", timeout=1.0, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
@pytest.mark.parametrize("literal", [b"NaN", b"Infinity", b"-Infinity"])
async def test_non_finite_gateway_confidence_degrades_to_fallback(literal):
    client = raw_gateway(b'{"confidence": ' + literal + b"}")
    out = await _analyze(client, query="SELECT 1 OR 1=1")
    await client.aclose()

    assert out.assessment.source is AssessmentSource.FALLBACK
    assert out.degraded is True
    assert out.notice == FALLBACK_NOTICE


@pytest.mark.asyncio
async def test_non_finite_model_score_only_degrades_to_fallback():
    client = raw_gateway(b'{"per_model": {"random_forest": {"confidence": NaN}}}')
    out = await _analyze(client, query="SELECT 1 OR 1=1")
    await client.aclose()

    assert out.assessment.source is AssessmentSource.FALLBACK


@pytest.mark.asyncio
async def test_non_finite_model_score_is_dropped_from_live_result():
    client = raw_gateway(
        b'{"confidence": 42, "per_model": {"random_forest": {"confidence": NaN}, "bert": {"confidence": 45}}}'
    )
    out = await _analyze(client)
    await client.aclose()

    assert out.assessment.source is AssessmentSource.LIVE
    assert out.assessment.confidence == 42
    assert list(out.assessment.model_signals) == ["bert"]
