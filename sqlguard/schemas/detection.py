from __future__ import annotations

import time
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ThreatLevel(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class AssessmentSource(str, Enum):
    LIVE = "live"
    FALLBACK = "fallback"


class TokenAttention(BaseModel):
    model_config = ConfigDict(frozen=True)

    token: str
    attention: float
    suspicious: bool = False


class ModelSignal(BaseModel):
    """One detector's opinion about a single query."""

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    model_name: str
    confidence: float = Field(ge=0.0, le=100.0)
    is_malicious: bool
    evidence: List[str] = Field(default_factory=list)
    # True when produced by the fallback generator rather than a real model
    synthetic: bool = False
    tokens: List[TokenAttention] = Field(default_factory=list)


class Verdict(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_malicious: bool
    confidence: int = Field(ge=0, le=100)
    threat_level: ThreatLevel
    warnings: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)


class ThreatAssessment(BaseModel):
    """Unified result of one analysis; never mutated after creation."""

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    query: str
    is_malicious: bool
    confidence: int = Field(ge=0, le=100)
    threat_level: ThreatLevel
    model_signals: Dict[str, ModelSignal] = Field(default_factory=dict)
    warnings: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    source: AssessmentSource
    processing_time_ms: Optional[float] = None
    detection_id: Optional[str] = None
    timestamp: float = Field(default_factory=time.time)

    @classmethod
    def from_verdict(
        cls,
        query: str,
        verdict: Verdict,
        signals: Dict[str, ModelSignal],
        source: AssessmentSource,
        processing_time_ms: Optional[float] = None,
        detection_id: Optional[str] = None,
        timestamp: Optional[float] = None,
    ) -> "ThreatAssessment":
        extra = {"timestamp": timestamp} if timestamp is not None else {}
        return cls(
            query=query,
            is_malicious=verdict.is_malicious,
            confidence=verdict.confidence,
            threat_level=verdict.threat_level,
            model_signals=dict(signals),
            warnings=list(verdict.warnings),
            recommendations=list(verdict.recommendations),
            source=source,
            processing_time_ms=processing_time_ms,
            detection_id=detection_id,
            **extra,
        )


class AnalyzeRequest(BaseModel):
    """Body of POST /detection/analyze."""

    model_config = ConfigDict(protected_namespaces=())

    query: str
    model_choice: str = "ensemble"
    mode: str = "full"


class AnalyzeResponse(BaseModel):
    assessment: ThreatAssessment
    degraded: bool = False
    notice: Optional[str] = None
