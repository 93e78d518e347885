from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict

from sqlguard.schemas.metrics import MetricSnapshot


class AlertSeverity(str, Enum):
    WARNING = "warning"
    CRITICAL = "critical"


class AlertState(str, Enum):
    IDLE = "idle"
    EVALUATING = "evaluating"
    SUPPRESSED = "suppressed"
    RAISED = "raised"


class AlertEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    severity: AlertSeverity
    title: str
    message: str
    queries_per_minute: float
    created_at: float


class AlertLog(BaseModel):
    alerts: List[AlertEvent]


class AlertEngineState(BaseModel):
    state: AlertState
    last_alert_time: Optional[float] = None
    last_snapshot: Optional[MetricSnapshot] = None
    skipped_ticks: int = 0
    alerts: int = 0


class DismissResult(BaseModel):
    id: int
    dismissed: bool
