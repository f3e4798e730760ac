"""Delivery task and outcome models.

A DeliveryTask is the ephemeral unit of work for one event and one
registration. Each HTTP attempt produces an AttemptResult; the last one
becomes the task's DeliveryOutcome, which is what the ledger records.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from .base import utc_now
from .events import DomainEvent


class OutcomeKind(str, Enum):
    """Classification of a delivery attempt."""

    SUCCESS = "success"
    RETRYABLE = "retryable"  # Timeout, connection error, 5xx, 429
    FATAL = "fatal"  # Endpoint will never accept this request
    CONFIGURATION = "configuration"  # Broken registration, no request was sent


@dataclass(frozen=True)
class AttemptResult:
    """Result of exactly one delivery attempt.

    Attributes:
        kind: How the attempt was classified.
        status_code: HTTP status of the response, None if none was received.
        reason: Failure description (None on success).
        duration_ms: Time spent on the attempt.
    """

    kind: OutcomeKind
    status_code: int | None = None
    reason: str | None = None
    duration_ms: int = 0

    @property
    def succeeded(self) -> bool:
        return self.kind == OutcomeKind.SUCCESS

    @property
    def retryable(self) -> bool:
        return self.kind == OutcomeKind.RETRYABLE

    @classmethod
    def success(cls, status_code: int, duration_ms: int = 0) -> AttemptResult:
        return cls(OutcomeKind.SUCCESS, status_code, None, duration_ms)

    @classmethod
    def retryable_failure(
        cls, status_code: int | None, reason: str, duration_ms: int = 0
    ) -> AttemptResult:
        return cls(OutcomeKind.RETRYABLE, status_code, reason, duration_ms)

    @classmethod
    def fatal_failure(
        cls, status_code: int | None, reason: str, duration_ms: int = 0
    ) -> AttemptResult:
        return cls(OutcomeKind.FATAL, status_code, reason, duration_ms)

    @classmethod
    def configuration_failure(cls, reason: str) -> AttemptResult:
        return cls(OutcomeKind.CONFIGURATION, None, reason, 0)


@dataclass
class DeliveryTask:
    """One logical delivery of one event to one registration.

    Attributes:
        registration_id: Target registration.
        event: Event being delivered.
        attempt: Current attempt number, 1-indexed.
        next_attempt_at: When the current attempt is due.
    """

    registration_id: str
    event: DomainEvent
    attempt: int = 1
    next_attempt_at: datetime = field(default_factory=utc_now)

    @property
    def dedup_key(self) -> tuple[str, str]:
        """At most one task per key may be in flight."""
        return (self.registration_id, self.event.id)

    @property
    def delivery_id(self) -> str:
        """Stable identifier sent to receivers for idempotent processing."""
        return f"{self.registration_id}:{self.event.id}"


class DeliveryOutcome(BaseModel):
    """Terminal outcome of a delivery task.

    Attributes:
        registration_id: Registration the task delivered to.
        event_id: Event that was delivered.
        kind: Classification of the final attempt.
        response_code: HTTP status of the final attempt, if any.
        reason: Failure description (None on success).
        attempts: Number of HTTP attempts made (0 for configuration failures).
        exhausted: True when the task ended because retries ran out.
        completed_at: When the task terminated.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    registration_id: str
    event_id: str
    kind: OutcomeKind
    response_code: int | None = Field(default=None)
    reason: str | None = Field(default=None)
    attempts: int = Field(default=1, ge=0)
    exhausted: bool = Field(default=False)
    completed_at: datetime = Field(default_factory=utc_now)

    @property
    def succeeded(self) -> bool:
        return self.kind == OutcomeKind.SUCCESS

    @classmethod
    def from_attempt(
        cls,
        task: DeliveryTask,
        result: AttemptResult,
        attempts: int,
        exhausted: bool = False,
    ) -> DeliveryOutcome:
        """Build the terminal outcome from a task's final attempt."""
        reason = result.reason
        if exhausted and reason is not None:
            reason = f"Max retries exceeded after {attempts} attempts: {reason}"
        return cls(
            registration_id=task.registration_id,
            event_id=task.event.id,
            kind=result.kind,
            response_code=result.status_code,
            reason=reason,
            attempts=attempts,
            exhausted=exhausted,
        )


__all__ = [
    "AttemptResult",
    "DeliveryOutcome",
    "DeliveryTask",
    "OutcomeKind",
]
