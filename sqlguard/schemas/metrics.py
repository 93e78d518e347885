from __future__ import annotations

import time
from typing import List, Optional

from pydantic import BaseModel, Field

from sqlguard.core.errors import MalformedSnapshot


class MetricSnapshot(BaseModel):
    """Counters reported by the metrics feed at one instant.

    Field types are checked, but the counter invariants are not: a snapshot
    that breaks them still reaches the alert engine, which rejects the tick.
    """

    timestamp: float = Field(default_factory=time.time)
    total_queries: int
    malicious_queries: int
    queries_per_minute: Optional[float] = None

    def problems(self) -> List[str]:
        found: List[str] = []
        if self.total_queries < 0:
            found.append(f"total_queries is negative ({self.total_queries})")
        if self.malicious_queries < 0:
            found.append(f"malicious_queries is negative ({self.malicious_queries})")
        if self.malicious_queries > self.total_queries:
            found.append(
                f"malicious_queries ({self.malicious_queries}) exceeds total_queries ({self.total_queries})"
            )
        if self.queries_per_minute is not None and self.queries_per_minute < 0:
            found.append(f"queries_per_minute is negative ({self.queries_per_minute})")
        return found


def validate_snapshot(snapshot: MetricSnapshot) -> MetricSnapshot:
    problems = snapshot.problems()
    if problems:
        raise MalformedSnapshot(problems)
    return snapshot
