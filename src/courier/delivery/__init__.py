"""Webhook delivery pipeline.

Components:
    - signing: HMAC-SHA256 payload signatures
    - template: Payload template validation and rendering
    - executor: One HTTP attempt, classified
    - retry: Exponential backoff with jitter
    - state: Endpoint circuit breaker transitions
    - ledger: Atomic outcome recording
    - dispatcher: Event routing and per-task retry loop
"""

from .dispatcher import EventDispatcher
from .executor import DeliveryExecutor, classify_status, validate_url
from .ledger import Ledger
from .retry import RetryScheduler, backoff_delay, base_delay
from .signing import generate_secret, sign_payload, signature_headers, verify_signature
from .template import render_body, render_template, validate_template

__all__ = [
    "DeliveryExecutor",
    "EventDispatcher",
    "Ledger",
    "RetryScheduler",
    "backoff_delay",
    "base_delay",
    "classify_status",
    "generate_secret",
    "render_body",
    "render_template",
    "sign_payload",
    "signature_headers",
    "validate_template",
    "validate_url",
    "verify_signature",
]
