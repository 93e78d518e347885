from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from sqlguard.schemas.detection import AssessmentSource, ThreatAssessment, ThreatLevel


@dataclass
class _Bucket:
    analyses: int = 0
    malicious: int = 0
    confidence_total: int = 0
    levels: Dict[str, int] = field(default_factory=lambda: {lvl.value: 0 for lvl in ThreatLevel})

    def add(self, assessment: ThreatAssessment) -> None:
        self.analyses += 1
        self.malicious += int(assessment.is_malicious)
        self.confidence_total += assessment.confidence
        self.levels[assessment.threat_level.value] += 1

    def summary(self) -> Dict[str, Any]:
        avg = round(self.confidence_total / self.analyses, 2) if self.analyses else None
        return {
            "analyses": self.analyses,
            "malicious": self.malicious,
            "safe": self.analyses - self.malicious,
            "avg_confidence": avg,
            "threat_levels": dict(self.levels),
        }


class AssessmentStats:
    """In-memory counters over analyses, one bucket per source.

    Fallback confidences are synthetic, so they are never averaged together
    with live detector confidences.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._buckets: Dict[AssessmentSource, _Bucket] = {src: _Bucket() for src in AssessmentSource}

    def record(self, assessment: ThreatAssessment) -> None:
        with self._lock:
            self._buckets[assessment.source].add(assessment)

    def summary(self) -> Dict[str, Any]:
        with self._lock:
            return {src.value: bucket.summary() for src, bucket in self._buckets.items()}


_stats: Optional[AssessmentStats] = None


def get_assessment_stats() -> AssessmentStats:
    global _stats
    if _stats is None:
        _stats = AssessmentStats()
    return _stats
