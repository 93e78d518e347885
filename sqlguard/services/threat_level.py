from __future__ import annotations

import math
from typing import Tuple

from sqlguard.schemas.detection import ThreatLevel

# Evaluated top-down, first match wins.
LEVEL_THRESHOLDS: Tuple[Tuple[float, ThreatLevel], ...] = (
    (90.0, ThreatLevel.CRITICAL),
    (70.0, ThreatLevel.HIGH),
    (50.0, ThreatLevel.MEDIUM),
)


def classify(confidence: float) -> ThreatLevel:
    """Map a confidence in [0, 100] to a threat level.

    Raises ValueError for anything outside the closed interval; callers are
    expected to clamp before classifying.
    """
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        raise ValueError(f"confidence must be a number, got {type(confidence).__name__}")
    if math.isnan(confidence) or confidence < 0 or confidence > 100:
        raise ValueError(f"confidence must be within [0, 100], got {confidence}")
    for floor, level in LEVEL_THRESHOLDS:
        if confidence >= floor:
            return level
    return ThreatLevel.LOW
