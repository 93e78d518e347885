import pytest

from sqlguard.services import alert_engine, assessment_stats, detector_client


@pytest.fixture(autouse=True)
def fresh_singletons(monkeypatch):
    """Every test gets its own engine, stats ledger and gateway client."""
    monkeypatch.setattr(alert_engine, "_engine", alert_engine.AlertEngine())
    monkeypatch.setattr(assessment_stats, "_stats", assessment_stats.AssessmentStats())
    monkeypatch.setattr(detector_client, "_client", None)
