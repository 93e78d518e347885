"""
Analyzer: runs one query through the detector gateway and builds the verdict.

Flow:
- Ask the detector gateway for per-model scores (bounded by a timeout).
- On GatewayUnavailable, switch to the fallback simulator and tag the result
  source=fallback, with a notice for the UI banner.
- Merge the signals with the ensemble combiner and wrap them in a
  ThreatAssessment.
"""

from __future__ import annotations

import asyncio
import math
import time
from typing import Any, Dict, Optional

from sqlguard.core.config import RULE_MODEL, SEMANTIC_MODEL, EnsembleConfig, get_settings
from sqlguard.core.errors import GatewayUnavailable
from sqlguard.core.logger import get_logger
from sqlguard.models import model_bert as bert_model
from sqlguard.models import model_random_forest as rf_model
from sqlguard.schemas.detection import (
    AnalyzeResponse,
    AssessmentSource,
    ModelSignal,
    ThreatAssessment,
)
from sqlguard.services.assessment_stats import AssessmentStats, get_assessment_stats
from sqlguard.services.detector_client import DetectorClient, get_detector_client
from sqlguard.services.ensemble import combine, signal_from_score, signals_in_order
from sqlguard.services.fallback import FallbackSimulator

log = get_logger(__name__)

FALLBACK_NOTICE = (
    "Detector service unavailable: showing a fallback heuristic result. "
    "Treat it as lower trust than a live detection."
)

_ADAPTERS = {
    RULE_MODEL: rf_model.to_signal,
    SEMANTIC_MODEL: bert_model.to_signal,
}


def signals_from_gateway(per_model: Any, config: EnsembleConfig) -> Dict[str, ModelSignal]:
    """Normalize the gateway's per-model mapping into ModelSignals.

    Entries without a usable confidence are dropped.
    """
    if not isinstance(per_model, dict):
        return {}
    signals: Dict[str, ModelSignal] = {}
    for name, payload in per_model.items():
        name = str(name)
        adapter = _ADAPTERS.get(name)
        if adapter is not None:
            sig = adapter(payload, config)
        else:
            score = rf_model.extract_confidence(payload)
            sig = None
            if score is not None:
                sig = signal_from_score(name, score, evidence=rf_model.extract_evidence(payload), config=config)
        if sig is None:
            log.debug("Dropping per-model entry %s without a confidence", name)
            continue
        signals[name] = sig
    return signals_in_order(signals)


def _optional_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


def assessment_from_gateway(query: str, resp: Dict[str, Any], config: EnsembleConfig, elapsed_ms: float) -> ThreatAssessment:
    signals = signals_from_gateway(resp.get("per_model") or resp.get("perModel"), config)
    raw_confidence = resp.get("confidence")
    confidence = _optional_float(raw_confidence)
    if raw_confidence is not None and confidence is None:
        raise GatewayUnavailable(f"gateway confidence is not a finite number: {raw_confidence!r}")
    if confidence is None and not signals:
        raise GatewayUnavailable("gateway response carried no confidence and no model scores")

    warnings = resp.get("warnings")
    extra = [str(w) for w in warnings] if isinstance(warnings, list) else []
    verdict = combine(signals, confidence=confidence, config=config, extra_warnings=extra)

    reported = resp.get("is_malicious")
    if isinstance(reported, bool) and reported != verdict.is_malicious:
        log.debug(
            "Gateway verdict %s differs from threshold verdict %s at confidence %d",
            reported, verdict.is_malicious, verdict.confidence,
        )

    processing = _optional_float(resp.get("processing_time_ms"))
    detection_id = resp.get("detection_id")
    return ThreatAssessment.from_verdict(
        query,
        verdict,
        signals,
        AssessmentSource.LIVE,
        processing_time_ms=processing if processing is not None else elapsed_ms,
        detection_id=str(detection_id) if detection_id is not None else None,
        timestamp=_optional_float(resp.get("timestamp")),
    )


def fallback_assessment(query: str, simulator: FallbackSimulator, started: float) -> ThreatAssessment:
    signals = simulator.simulate(query)
    verdict = combine(signals, config=simulator.config)
    return ThreatAssessment.from_verdict(
        query,
        verdict,
        signals,
        AssessmentSource.FALLBACK,
        processing_time_ms=round((time.perf_counter() - started) * 1000, 2),
    )


async def analyze_query(
    query: str,
    model_choice: str = "ensemble",
    mode: str = "full",
    client: Optional[DetectorClient] = None,
    simulator: Optional[FallbackSimulator] = None,
    config: Optional[EnsembleConfig] = None,
    stats: Optional[AssessmentStats] = None,
    timeout: Optional[float] = None,
) -> AnalyzeResponse:
    """Analyze a query, degrading to the fallback simulator if the gateway fails.

    Raises ValueError for an empty query.
    """
    if not isinstance(query, str) or not query.strip():
        raise ValueError("query must be a non-empty string")

    settings = get_settings()
    config = config or EnsembleConfig.from_settings(settings)
    client = client or get_detector_client()
    simulator = simulator or FallbackSimulator(config)
    stats = stats or get_assessment_stats()
    timeout = timeout if timeout is not None else settings.DETECTOR_TIMEOUT

    started = time.perf_counter()
    notice: Optional[str] = None
    try:
        try:
            resp = await asyncio.wait_for(client.analyze_query(query, model_choice, mode), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise GatewayUnavailable(f"detector did not answer within {timeout}s") from e
        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
        assessment = assessment_from_gateway(query, resp, config, elapsed_ms)
    except GatewayUnavailable as e:
        log.warning("Detector gateway unavailable, using fallback simulator: %s", e)
        assessment = fallback_assessment(query, simulator, started)
        notice = FALLBACK_NOTICE

    stats.record(assessment)
    log.info(
        "Analyzed query source=%s malicious=%s confidence=%d level=%s",
        assessment.source.value, assessment.is_malicious, assessment.confidence, assessment.threat_level.value,
    )
    return AnalyzeResponse(assessment=assessment, degraded=notice is not None, notice=notice)
