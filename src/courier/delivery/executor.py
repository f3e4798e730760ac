"""Single delivery attempt over HTTP.

The executor builds the signed request for a task, sends it once with the
registration's timeout and classifies what happened. It never touches
registration state; recording outcomes is the ledger's job.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

import httpx
from pydantic_core import to_json

from courier.exceptions import ConfigurationError
from courier.models import AttemptResult, OutcomeKind, generate_id, utc_now

from .signing import signature_headers
from .template import render_body

if TYPE_CHECKING:
    from courier.models import DeliveryTask, WebhookRegistration

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "Courier-Webhooks/0.1"

EVENT_HEADER = "X-Webhook-Event"
DELIVERY_HEADER = "X-Webhook-Delivery"
ATTEMPT_HEADER = "X-Webhook-Attempt"

TEST_EVENT = "TEST"


def classify_status(status_code: int) -> OutcomeKind:
    """Classify an HTTP status code.

    2xx succeeds; 429 and 5xx are worth retrying; anything else (4xx,
    unfollowed redirects) means the endpoint will not accept this request.
    """
    if 200 <= status_code < 300:
        return OutcomeKind.SUCCESS
    if status_code == 429 or status_code >= 500:
        return OutcomeKind.RETRYABLE
    return OutcomeKind.FATAL


def validate_url(raw_url: str) -> httpx.URL:
    """Parse a registration URL, rejecting anything that is not absolute http(s).

    Raises:
        ConfigurationError: If the URL is malformed.
    """
    try:
        url = httpx.URL(raw_url)
    except httpx.InvalidURL as e:
        raise ConfigurationError(f"Malformed URL: {e}") from e
    if url.scheme not in ("http", "https") or not url.host:
        raise ConfigurationError(f"Malformed URL: {raw_url!r}")
    return url


class DeliveryExecutor:
    """Performs exactly one HTTP request per call to execute().

    Example:
        ```python
        executor = DeliveryExecutor()
        result = await executor.execute(registration, task)
        if result.retryable:
            ...
        ```
    """

    def __init__(
        self,
        user_agent: str = DEFAULT_USER_AGENT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            user_agent: User-Agent header for deliveries.
            transport: Optional httpx transport (e.g. a proxy or a MockTransport).
        """
        self._user_agent = user_agent
        self._transport = transport

    def _headers(
        self,
        registration: WebhookRegistration,
        body: bytes,
        event_name: str,
        delivery_id: str,
        attempt: int,
        timestamp: int | None,
    ) -> dict[str, str]:
        # Engine headers override custom and auth headers
        headers: dict[str, str] = dict(registration.custom_headers)
        if registration.auth_header and registration.auth_value is not None:
            headers[registration.auth_header] = registration.auth_value
        headers.update(signature_headers(body, registration.secret, timestamp))
        headers.update(
            {
                "Content-Type": registration.content_type,
                "User-Agent": self._user_agent,
                EVENT_HEADER: event_name,
                DELIVERY_HEADER: delivery_id,
                ATTEMPT_HEADER: str(attempt),
            }
        )
        return headers

    def build_request(
        self,
        registration: WebhookRegistration,
        task: DeliveryTask,
        timestamp: int | None = None,
    ) -> tuple[httpx.URL, dict[str, str], bytes]:
        """Build URL, headers and body for an attempt.

        Raises:
            ConfigurationError: On a malformed URL, missing secret or broken template.
        """
        url = validate_url(registration.url)
        body = render_body(registration, task.event)
        headers = self._headers(
            registration,
            body,
            task.event.event_type.value,
            task.delivery_id,
            task.attempt,
            timestamp,
        )
        return url, headers, body

    def build_test_request(
        self,
        registration: WebhookRegistration,
        timestamp: int | None = None,
    ) -> tuple[httpx.URL, dict[str, str], bytes]:
        """Build a signed TEST ping carrying a fixed body instead of an event."""
        url = validate_url(registration.url)
        body = to_json(
            {
                "event_type": TEST_EVENT,
                "timestamp": utc_now().isoformat(),
                "tenant_id": registration.tenant_id,
                "data": {"test": True, "message": "This is a test webhook delivery"},
            }
        )
        headers = self._headers(
            registration, body, TEST_EVENT, generate_id("test"), 1, timestamp
        )
        return url, headers, body

    async def execute(
        self,
        registration: WebhookRegistration,
        task: DeliveryTask,
    ) -> AttemptResult:
        """Attempt one delivery.

        Args:
            registration: Target registration.
            task: Task being attempted.

        Returns:
            The classified AttemptResult. Never raises for delivery errors.
        """
        try:
            request = self.build_request(registration, task)
        except ConfigurationError as e:
            logger.warning(
                "Webhook %s misconfigured, not sending: %s", registration.id, e.message
            )
            return AttemptResult.configuration_failure(e.message)

        result = await self._send(registration, *request)
        if result.succeeded:
            logger.info(
                "Webhook delivered: %s to %s (status %d, attempt %d)",
                task.event.event_type.value,
                registration.url,
                result.status_code,
                task.attempt,
            )
        elif result.kind == OutcomeKind.FATAL and result.status_code is not None:
            logger.warning(
                "Webhook rejected: %s to %s (status %d)",
                task.event.event_type.value,
                registration.url,
                result.status_code,
            )
        return result

    async def send_test(self, registration: WebhookRegistration) -> AttemptResult:
        """Send a single TEST ping to a registration. Nothing is retried."""
        try:
            request = self.build_test_request(registration)
        except ConfigurationError as e:
            return AttemptResult.configuration_failure(e.message)
        return await self._send(registration, *request)

    async def _send(
        self,
        registration: WebhookRegistration,
        url: httpx.URL,
        headers: dict[str, str],
        body: bytes,
    ) -> AttemptResult:
        started = time.perf_counter()
        try:
            async with httpx.AsyncClient(
                timeout=registration.timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.request(
                    registration.http_method.value,
                    url,
                    content=body,
                    headers=headers,
                )
        except httpx.TimeoutException:
            return AttemptResult.retryable_failure(
                None, "Request timeout", _elapsed_ms(started)
            )
        except httpx.RequestError as e:
            return AttemptResult.retryable_failure(
                None, str(e) or type(e).__name__, _elapsed_ms(started)
            )
        except Exception as e:
            logger.exception("Webhook delivery error: %s", e)
            return AttemptResult.fatal_failure(
                None, f"Unexpected error: {e}", _elapsed_ms(started)
            )

        duration_ms = _elapsed_ms(started)
        status_code = response.status_code
        kind = classify_status(status_code)
        if kind == OutcomeKind.SUCCESS:
            return AttemptResult.success(status_code, duration_ms)

        reason = f"HTTP {status_code}"
        if response.text:
            reason = f"{reason}: {response.text[:200]}"
        if kind == OutcomeKind.RETRYABLE:
            return AttemptResult.retryable_failure(status_code, reason, duration_ms)
        return AttemptResult.fatal_failure(status_code, reason, duration_ms)


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)
