"""
Semantic (BERT) signal adapter.

The semantic detector reports per-token attention as either
`[{"token": ..., "weight": ..., "suspicious": ...}]` or parallel
`tokens` / `attention` lists. Each token becomes one evidence entry.
"""

from __future__ import annotations

import math
from typing import Any, List, Optional

from sqlguard.core.config import SEMANTIC_MODEL, EnsembleConfig
from sqlguard.models.model_random_forest import extract_confidence, extract_evidence
from sqlguard.schemas.detection import ModelSignal, TokenAttention
from sqlguard.services.ensemble import DEFAULT_CONFIG, signal_from_score

MODEL_NAME = SEMANTIC_MODEL


def _as_float(value: Any, default: float = 0.0) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return default
    return number if math.isfinite(number) else default


def extract_tokens(payload: Any) -> List[TokenAttention]:
    if not isinstance(payload, dict):
        return []
    attention = payload.get("attention") or payload.get("attention_weights")
    if isinstance(attention, list) and attention and isinstance(attention[0], dict):
        return [
            TokenAttention(
                token=str(item.get("token", "")),
                attention=_as_float(item.get("weight", item.get("attention"))),
                suspicious=bool(item.get("suspicious", False)),
            )
            for item in attention
            if isinstance(item, dict)
        ]
    tokens = payload.get("tokens")
    if isinstance(tokens, list) and isinstance(attention, list):
        return [
            TokenAttention(token=str(tok), attention=_as_float(w))
            for tok, w in zip(tokens, attention)
        ]
    return []


def to_signal(payload: Any, config: EnsembleConfig = DEFAULT_CONFIG) -> Optional[ModelSignal]:
    confidence = extract_confidence(payload)
    if confidence is None:
        return None
    tokens = extract_tokens(payload)
    if tokens:
        evidence = [
            f"{t.token} (attention {t.attention:.3f}{', suspicious' if t.suspicious else ''})"
            for t in tokens
        ]
    else:
        evidence = extract_evidence(payload)
    return signal_from_score(MODEL_NAME, confidence, evidence=evidence, config=config, tokens=tokens)
