from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, List

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

RULE_MODEL = "random_forest"
SEMANTIC_MODEL = "bert"


class Settings(BaseSettings):
    # Detector gateway (external detection service)
    DETECTOR_BASE_URL: str = "http://localhost:5000/api"
    DETECTOR_API_KEY: str = ""
    DETECTOR_TIMEOUT: float = 5.0

    # Metrics polling
    POLL_INTERVAL: float = 3.0
    METRICS_TIMEOUT: float = 2.5

    # Alerting
    ALERT_QPM_THRESHOLD: float = 5.0
    ALERT_CRITICAL_QPM: float = 10.0
    ALERT_DEBOUNCE_SECONDS: float = 60.0
    MAX_NOTIFICATIONS: int = 5

    # Ensemble policy
    ENSEMBLE_RULE_WEIGHT: float = 0.6
    ENSEMBLE_SEMANTIC_WEIGHT: float = 0.4
    MALICIOUS_THRESHOLD: int = 65
    RULE_MODEL_CUTOFF: float = 60.0
    SEMANTIC_MODEL_CUTOFF: float = 70.0
    MONITOR_THRESHOLD: int = 30

    # Out-of-band system notifications
    NOTIFICATIONS_ENABLED: bool = False
    NOTIFY_WEBHOOK_URL: str = ""

    # General
    CORS_ORIGINS: List[str] = ["http://localhost:3000"]
    ENV: str = os.getenv("ENV", "development")

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )


@dataclass(frozen=True)
class EnsembleConfig:
    """Tunable policy for merging per-model signals into one verdict.

    The weights express relative trust in the feature-based and semantic
    signal families; they are policy, not a law, and tests probe them by
    injecting a different instance.
    """

    rule_weight: float = 0.6
    semantic_weight: float = 0.4
    malicious_threshold: int = 65
    model_cutoffs: Dict[str, float] = field(
        default_factory=lambda: {RULE_MODEL: 60.0, SEMANTIC_MODEL: 70.0}
    )
    monitor_threshold: int = 30

    @property
    def weights(self) -> Dict[str, float]:
        return {RULE_MODEL: self.rule_weight, SEMANTIC_MODEL: self.semantic_weight}

    def cutoff_for(self, model_name: str) -> float:
        return self.model_cutoffs.get(model_name, float(self.malicious_threshold))

    @classmethod
    def from_settings(cls, settings: Settings) -> "EnsembleConfig":
        return cls(
            rule_weight=settings.ENSEMBLE_RULE_WEIGHT,
            semantic_weight=settings.ENSEMBLE_SEMANTIC_WEIGHT,
            malicious_threshold=settings.MALICIOUS_THRESHOLD,
            model_cutoffs={
                RULE_MODEL: settings.RULE_MODEL_CUTOFF,
                SEMANTIC_MODEL: settings.SEMANTIC_MODEL_CUTOFF,
            },
            monitor_threshold=settings.MONITOR_THRESHOLD,
        )


@dataclass(frozen=True)
class AlertPolicy:
    qpm_threshold: float = 5.0
    critical_qpm: float = 10.0
    debounce_seconds: float = 60.0
    max_notifications: int = 5

    @classmethod
    def from_settings(cls, settings: Settings) -> "AlertPolicy":
        return cls(
            qpm_threshold=settings.ALERT_QPM_THRESHOLD,
            critical_qpm=settings.ALERT_CRITICAL_QPM,
            debounce_seconds=settings.ALERT_DEBOUNCE_SECONDS,
            max_notifications=settings.MAX_NOTIFICATIONS,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    # Ensure .env is loaded once
    load_dotenv(override=False)
    return Settings()
