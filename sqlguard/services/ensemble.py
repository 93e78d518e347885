"""
Ensemble combiner: merges per-model signals into a single verdict.

The gateway usually sends a pre-combined confidence, which is authoritative
and used as-is. When combining locally (the fallback path) the confidence is
the weighted mean of the feature-based and semantic signals, using the
weights from EnsembleConfig.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Optional

from sqlguard.core.config import RULE_MODEL, SEMANTIC_MODEL, EnsembleConfig
from sqlguard.schemas.detection import ModelSignal, Verdict
from sqlguard.services.threat_level import classify

MULTI_INDICATOR_WARNING = "Multiple injection indicators detected"

MALICIOUS_RECOMMENDATIONS = (
    "Block query from reaching the database",
    "Review input validation on the originating endpoint",
    "Check logs for pattern recurrence from the same source",
)
SAFE_RECOMMENDATION = "Query appears safe to execute"
MONITOR_RECOMMENDATION = "Monitor for similar patterns"

MODEL_LABELS = {
    RULE_MODEL: "Random Forest",
    SEMANTIC_MODEL: "BERT",
}

DEFAULT_CONFIG = EnsembleConfig()


def model_label(model_name: str) -> str:
    return MODEL_LABELS.get(model_name, model_name.replace("_", " ").title())


def clamp_confidence(value: float) -> int:
    return int(round(min(max(float(value), 0.0), 100.0)))


def weighted_confidence(signals: Mapping[str, ModelSignal], config: EnsembleConfig = DEFAULT_CONFIG) -> float:
    """Weighted mean of the signals the config assigns a weight to.

    With both the rule and semantic signals present this is exactly
    rule_weight * rule + semantic_weight * semantic. Weights of absent models
    are dropped and the rest renormalised; if no signal carries a weight, the
    plain mean is used.
    """
    if not signals:
        raise ValueError("cannot combine an empty set of model signals")
    weights = config.weights
    weighted = [(weights[name], sig.confidence) for name, sig in signals.items() if weights.get(name, 0.0) > 0]
    if not weighted:
        return sum(sig.confidence for sig in signals.values()) / len(signals)
    total = sum(w for w, _ in weighted)
    return sum(w * c for w, c in weighted) / total


def build_warnings(signals: Mapping[str, ModelSignal], extra: Iterable[str] = ()) -> List[str]:
    warnings: List[str] = []
    for name, sig in signals.items():
        if sig.is_malicious:
            warnings.append(
                f"{model_label(name)} model flagged the query as malicious ({sig.confidence:.0f}% confidence)"
            )
    rule = signals.get(RULE_MODEL)
    if rule is not None and len(rule.evidence) > 2:
        warnings.append(MULTI_INDICATOR_WARNING)
    for item in extra:
        if item and item not in warnings:
            warnings.append(item)
    return warnings


def build_recommendations(is_malicious: bool, confidence: float, config: EnsembleConfig = DEFAULT_CONFIG) -> List[str]:
    if is_malicious:
        return list(MALICIOUS_RECOMMENDATIONS)
    recs = [SAFE_RECOMMENDATION]
    if confidence > config.monitor_threshold:
        recs.append(MONITOR_RECOMMENDATION)
    return recs


def combine(
    signals: Mapping[str, ModelSignal],
    confidence: Optional[float] = None,
    config: EnsembleConfig = DEFAULT_CONFIG,
    extra_warnings: Iterable[str] = (),
) -> Verdict:
    """Merge model signals (and an optional authoritative confidence) into a Verdict."""
    if confidence is None:
        confidence = weighted_confidence(signals, config)
    score = clamp_confidence(confidence)
    is_malicious = score >= config.malicious_threshold
    return Verdict(
        is_malicious=is_malicious,
        confidence=score,
        threat_level=classify(score),
        warnings=build_warnings(signals, extra_warnings),
        recommendations=build_recommendations(is_malicious, score, config),
    )


def signal_from_score(
    model_name: str,
    confidence: float,
    evidence: Optional[List[str]] = None,
    config: EnsembleConfig = DEFAULT_CONFIG,
    **extra,
) -> ModelSignal:
    """Build a ModelSignal whose verdict follows the model's own cutoff."""
    value = min(max(float(confidence), 0.0), 100.0)
    return ModelSignal(
        model_name=model_name,
        confidence=value,
        is_malicious=value >= config.cutoff_for(model_name),
        evidence=list(evidence or []),
        **extra,
    )


def signals_in_order(signals: Dict[str, ModelSignal]) -> Dict[str, ModelSignal]:
    """Order signals rule model first, semantic second, then the rest by name."""
    known = [name for name in (RULE_MODEL, SEMANTIC_MODEL) if name in signals]
    rest = sorted(name for name in signals if name not in known)
    return {name: signals[name] for name in known + rest}
