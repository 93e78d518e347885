"""
Fallback heuristic simulator used when the detector gateway is unreachable.

Produces synthetic signals shaped like the live ones so the response stays
usable: a feature-based signal from a fixed vocabulary of injection markers,
and a semantic signal with one entry per token. Nothing here is a model.
Confidences are deterministic heuristics and every signal is marked
`synthetic`; assessments built from them carry source=fallback.
"""

from __future__ import annotations

import hashlib
import random
import re
from dataclasses import dataclass
from typing import Dict, List, Protocol, Sequence, Tuple

from sqlguard.core.config import RULE_MODEL, SEMANTIC_MODEL, EnsembleConfig
from sqlguard.core.logger import get_logger
from sqlguard.schemas.detection import ModelSignal, TokenAttention
from sqlguard.services.ensemble import DEFAULT_CONFIG, signal_from_score

log = get_logger(__name__)


@dataclass(frozen=True)
class InjectionMarker:
    label: str
    pattern: re.Pattern
    weight: float


# Scan order is the evidence order.
INJECTION_MARKERS: Tuple[InjectionMarker, ...] = (
    InjectionMarker("UNION keyword", re.compile(r"\bunion\b", re.IGNORECASE), 35.0),
    # OR 1=1 and quoted variants such as OR '1'='1'
    InjectionMarker(
        "OR 1=1 tautology",
        re.compile(r"\bor\s+(['\"]?)(\w+)\1\s*=\s*(['\"]?)\2\3", re.IGNORECASE),
        45.0,
    ),
    InjectionMarker("Comment sequence (--)", re.compile(r"--"), 25.0),
    InjectionMarker("Statement terminator (;)", re.compile(r";"), 15.0),
    InjectionMarker("DROP statement", re.compile(r"\bdrop\b", re.IGNORECASE), 35.0),
    InjectionMarker("SELECT statement", re.compile(r"\bselect\b", re.IGNORECASE), 10.0),
)

SUSPICIOUS_TOKENS = frozenset({"union", "or", "drop", "--", ";", "1=1"})
SUSPICIOUS_FRAGMENTS = ("--", ";", "1=1")

RULE_BASE_SCORE = 10.0
SEMANTIC_BASE_SCORE = 15.0
SEMANTIC_TOKEN_SCORE = 35.0
MAX_SYNTHETIC_SCORE = 98.0


class SyntheticEvidenceGenerator(Protocol):
    """Produces cosmetic per-token attention weights for the semantic signal."""

    def attention(self, query: str, tokens: Sequence[str], suspicious: Sequence[bool]) -> List[float]:
        ...


class SeededAttentionGenerator:
    """Deterministic attention weights seeded from the query text.

    Suspicious tokens draw from a higher band so the output reads sensibly,
    but the numbers carry no statistical meaning.
    """

    def __init__(self, suspicious_band: Tuple[float, float] = (0.6, 0.95), benign_band: Tuple[float, float] = (0.05, 0.4)) -> None:
        self.suspicious_band = suspicious_band
        self.benign_band = benign_band

    def attention(self, query: str, tokens: Sequence[str], suspicious: Sequence[bool]) -> List[float]:
        seed = int.from_bytes(hashlib.sha256(query.encode("utf-8")).digest()[:8], "big")
        rng = random.Random(seed)
        weights = []
        for flag in suspicious:
            low, high = self.suspicious_band if flag else self.benign_band
            weights.append(round(rng.uniform(low, high), 3))
        return weights


def _normalize_token(token: str) -> str:
    return token.lower().replace("'", "").replace('"', "")


def is_suspicious_token(token: str) -> bool:
    norm = _normalize_token(token)
    if norm in SUSPICIOUS_TOKENS:
        return True
    return any(fragment in norm for fragment in SUSPICIOUS_FRAGMENTS)


def scan_markers(query: str) -> List[InjectionMarker]:
    """Return the injection markers present in the query, in scan order."""
    return [marker for marker in INJECTION_MARKERS if marker.pattern.search(query)]


class FallbackSimulator:
    def __init__(
        self,
        config: EnsembleConfig = DEFAULT_CONFIG,
        generator: SyntheticEvidenceGenerator | None = None,
    ) -> None:
        self.config = config
        self.generator = generator or SeededAttentionGenerator()

    def simulate(self, query: str) -> Dict[str, ModelSignal]:
        if not query or not query.strip():
            raise ValueError("query must be a non-empty string")
        signals = {
            RULE_MODEL: self._feature_signal(query),
            SEMANTIC_MODEL: self._semantic_signal(query),
        }
        log.debug(
            "Fallback signals: rule=%.1f semantic=%.1f",
            signals[RULE_MODEL].confidence,
            signals[SEMANTIC_MODEL].confidence,
        )
        return signals

    def _feature_signal(self, query: str) -> ModelSignal:
        markers = scan_markers(query)
        score = min(RULE_BASE_SCORE + sum(m.weight for m in markers), MAX_SYNTHETIC_SCORE)
        return signal_from_score(
            RULE_MODEL,
            score,
            evidence=[m.label for m in markers],
            config=self.config,
            synthetic=True,
        )

    def _semantic_signal(self, query: str) -> ModelSignal:
        tokens = query.split()
        flags = [is_suspicious_token(t) for t in tokens]
        weights = self.generator.attention(query, tokens, flags)
        attention = [
            TokenAttention(token=tok, attention=w, suspicious=flag)
            for tok, w, flag in zip(tokens, weights, flags)
        ]
        evidence = [
            f"{a.token} (attention {a.attention:.3f}{', suspicious' if a.suspicious else ''})"
            for a in attention
        ]
        score = min(SEMANTIC_BASE_SCORE + SEMANTIC_TOKEN_SCORE * sum(flags), MAX_SYNTHETIC_SCORE)
        return signal_from_score(
            SEMANTIC_MODEL,
            score,
            evidence=evidence,
            config=self.config,
            synthetic=True,
            tokens=attention,
        )
