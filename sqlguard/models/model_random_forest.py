"""
Feature-based (random forest) signal adapter.

Normalizes the gateway's per-model payload for the rule/feature detector into
a ModelSignal. The detection service is not consistent about key names, so
confidence and evidence are looked up under a few aliases:

- confidence: `confidence`, `score`, `probability`
- evidence: `features_detected`, `features`, `patterns`, `evidence`

A bare number is accepted as the confidence.
"""

from __future__ import annotations

import math
from typing import Any, List, Optional

from sqlguard.core.config import RULE_MODEL, EnsembleConfig
from sqlguard.schemas.detection import ModelSignal
from sqlguard.services.ensemble import DEFAULT_CONFIG, signal_from_score

MODEL_NAME = RULE_MODEL

CONFIDENCE_KEYS = ("confidence", "score", "probability")
EVIDENCE_KEYS = ("features_detected", "features", "patterns", "evidence")


def _finite(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        score = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    # NaN and Infinity are valid JSON literals to the parser
    return score if math.isfinite(score) else None


def extract_confidence(payload: Any) -> Optional[float]:
    if isinstance(payload, (int, float)):
        return _finite(payload)
    if not isinstance(payload, dict):
        return None
    for key in CONFIDENCE_KEYS:
        score = _finite(payload.get(key))
        if score is not None:
            return score
    return None


def extract_evidence(payload: Any, keys=EVIDENCE_KEYS) -> List[str]:
    if not isinstance(payload, dict):
        return []
    for key in keys:
        value = payload.get(key)
        if isinstance(value, list):
            return [str(v) for v in value if v is not None and str(v)]
        if isinstance(value, dict):
            # {"union": true, "comment": false} style feature flags
            return [str(k) for k, v in value.items() if v]
    return []


def to_signal(payload: Any, config: EnsembleConfig = DEFAULT_CONFIG) -> Optional[ModelSignal]:
    """Return a ModelSignal, or None when the payload carries no usable score."""
    confidence = extract_confidence(payload)
    if confidence is None:
        return None
    return signal_from_score(MODEL_NAME, confidence, evidence=extract_evidence(payload), config=config)
