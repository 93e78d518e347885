"""Failure taxonomy shared by the detection and alerting paths."""

from __future__ import annotations

from typing import List, Optional


class SQLGuardError(Exception):
    """Base class for errors raised by sqlguard."""


class GatewayUnavailable(SQLGuardError):
    """The detector gateway could not produce a usable response.

    Covers network errors, timeouts, non-2xx statuses and undecodable bodies.
    """

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MalformedSnapshot(SQLGuardError):
    """A metrics snapshot violates the counter invariants."""

    def __init__(self, problems: List[str]) -> None:
        super().__init__("; ".join(problems))
        self.problems = problems


class NotificationDeliveryFailure(SQLGuardError):
    """A best-effort system notification could not be delivered."""
