"""Endpoint circuit breaker as pure state transitions.

Every function takes a registration and returns an updated copy; nothing
here performs I/O, so transitions are testable without a store.

    ACTIVE --3 consecutive failures--> FAILING --success--> ACTIVE
    ACTIVE/FAILING --disable_after_failures--> DISABLED (terminal)
    ACTIVE/FAILING <--pause/resume--> PAUSED

A paused registration keeps the status it would otherwise have in
``paused_from`` and returns to it on resume.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from courier.exceptions import InvalidTransitionError
from courier.models import FAILING_THRESHOLD, WebhookStatus, utc_now

if TYPE_CHECKING:
    from courier.models import DeliveryOutcome, WebhookRegistration


def _status_after_success(status: WebhookStatus) -> WebhookStatus:
    if status == WebhookStatus.FAILING:
        return WebhookStatus.ACTIVE
    return status


def _status_after_failure(status: WebhookStatus, consecutive_failures: int) -> WebhookStatus:
    if status == WebhookStatus.DISABLED:
        return status
    if consecutive_failures >= FAILING_THRESHOLD:
        return WebhookStatus.FAILING
    return status


def record_success(
    registration: WebhookRegistration,
    response_code: int | None,
    at: datetime | None = None,
) -> WebhookRegistration:
    """Apply a successful delivery."""
    now = at or utc_now()
    update: dict[str, object] = {
        "total_deliveries": registration.total_deliveries + 1,
        "successful_deliveries": registration.successful_deliveries + 1,
        "consecutive_failures": 0,
        "last_delivery_at": now,
        "last_success_at": now,
        "last_response_code": response_code,
        "updated_at": now,
    }
    if registration.status == WebhookStatus.PAUSED:
        if registration.paused_from is not None:
            update["paused_from"] = _status_after_success(registration.paused_from)
    else:
        update["status"] = _status_after_success(registration.status)
    return registration.model_copy(update=update)


def record_failure(
    registration: WebhookRegistration,
    response_code: int | None,
    reason: str | None,
    at: datetime | None = None,
) -> WebhookRegistration:
    """Apply a failed delivery (fatal, configuration or retries exhausted)."""
    now = at or utc_now()
    failures = registration.consecutive_failures + 1
    update: dict[str, object] = {
        "total_deliveries": registration.total_deliveries + 1,
        "failed_deliveries": registration.failed_deliveries + 1,
        "consecutive_failures": failures,
        "last_delivery_at": now,
        "last_failure_at": now,
        "last_failure_reason": reason[:1000] if reason else None,
        "last_response_code": response_code,
        "updated_at": now,
    }

    if failures >= registration.disable_after_failures:
        update["status"] = WebhookStatus.DISABLED
        update["is_active"] = False
        update["paused_from"] = None
    elif registration.status == WebhookStatus.PAUSED:
        if registration.paused_from is not None:
            update["paused_from"] = _status_after_failure(registration.paused_from, failures)
    else:
        update["status"] = _status_after_failure(registration.status, failures)

    return registration.model_copy(update=update)


def apply_outcome(
    registration: WebhookRegistration,
    outcome: DeliveryOutcome,
) -> WebhookRegistration:
    """Apply a terminal delivery outcome to a registration.

    Args:
        registration: Current registration state.
        outcome: Terminal outcome of one delivery task.

    Returns:
        New registration state with ledger fields and status updated.
    """
    if outcome.succeeded:
        return record_success(registration, outcome.response_code, outcome.completed_at)
    return record_failure(
        registration, outcome.response_code, outcome.reason, outcome.completed_at
    )


def pause(registration: WebhookRegistration, at: datetime | None = None) -> WebhookRegistration:
    """Suspend deliveries without touching counters.

    Raises:
        InvalidTransitionError: If the registration is disabled or already paused.
    """
    if registration.status in (WebhookStatus.DISABLED, WebhookStatus.PAUSED):
        raise InvalidTransitionError(registration.status.value, "pause")
    return registration.model_copy(
        update={
            "status": WebhookStatus.PAUSED,
            "paused_from": registration.status,
            "updated_at": at or utc_now(),
        }
    )


def resume(registration: WebhookRegistration, at: datetime | None = None) -> WebhookRegistration:
    """Return a paused registration to the status it had (or would have had).

    Raises:
        InvalidTransitionError: If the registration is not paused.
    """
    if registration.status != WebhookStatus.PAUSED:
        raise InvalidTransitionError(registration.status.value, "resume")
    return registration.model_copy(
        update={
            "status": registration.paused_from or WebhookStatus.ACTIVE,
            "paused_from": None,
            "updated_at": at or utc_now(),
        }
    )
