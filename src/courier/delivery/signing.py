"""HMAC-SHA256 payload signing.

The signature covers the delivery timestamp and the exact body bytes:

    X-Webhook-Signature: sha256=<hex(HMAC(secret, f"{timestamp}." + body))>
    X-Webhook-Timestamp: <unix seconds>

Receivers recompute the HMAC and reject requests whose timestamp falls
outside their replay window.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import secrets
import time

from courier.config import settings
from courier.exceptions import SigningError

SIGNATURE_HEADER = "X-Webhook-Signature"
TIMESTAMP_HEADER = "X-Webhook-Timestamp"
SIGNATURE_PREFIX = "sha256="

MIN_SECRET_LENGTH = 16


def _check_secret(secret: str | None) -> str:
    if secret is None or not secret.strip():
        raise SigningError("Webhook secret is missing")
    if len(secret) < MIN_SECRET_LENGTH:
        raise SigningError(f"Webhook secret must be at least {MIN_SECRET_LENGTH} characters")
    return secret


def sign_payload(payload: bytes, secret: str | None, timestamp: int) -> str:
    """Compute the signature header value for a payload.

    Args:
        payload: Exact request body bytes.
        secret: Registration secret.
        timestamp: Unix timestamp (seconds) sent alongside the signature.

    Returns:
        Signature in format "sha256=<hex_digest>".

    Raises:
        SigningError: If the secret is missing or malformed.
    """
    key = _check_secret(secret)
    digest = hmac.new(
        key=key.encode("utf-8"),
        msg=f"{timestamp}.".encode() + payload,
        digestmod=hashlib.sha256,
    ).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def signature_headers(
    payload: bytes,
    secret: str | None,
    timestamp: int | None = None,
) -> dict[str, str]:
    """Build the signature and timestamp headers for a payload.

    Raises:
        SigningError: If the secret is missing or malformed.
    """
    if timestamp is None:
        timestamp = int(time.time())
    return {
        SIGNATURE_HEADER: sign_payload(payload, secret, timestamp),
        TIMESTAMP_HEADER: str(timestamp),
    }


def verify_signature(
    payload: bytes,
    secret: str,
    signature: str,
    timestamp: int,
    tolerance_seconds: int | None = None,
    now: float | None = None,
) -> bool:
    """Verify a received signature (receiver side).

    Args:
        payload: Body bytes as received.
        secret: Shared secret.
        signature: Value of X-Webhook-Signature.
        timestamp: Value of X-Webhook-Timestamp.
        tolerance_seconds: Maximum accepted age (and clock skew) of the timestamp.
            Defaults to settings.signature_tolerance_seconds.
        now: Current unix time, defaults to time.time().

    Returns:
        True if the signature matches and the timestamp is within the window.
    """
    if tolerance_seconds is None:
        tolerance_seconds = settings.signature_tolerance_seconds
    current = time.time() if now is None else now
    if abs(current - timestamp) > tolerance_seconds:
        return False
    try:
        expected = sign_payload(payload, secret, timestamp)
    except SigningError:
        return False
    return hmac.compare_digest(expected, signature)


def generate_secret() -> str:
    """Generate a new registration secret (32 random bytes, URL-safe base64)."""
    return base64.urlsafe_b64encode(secrets.token_bytes(32)).rstrip(b"=").decode("ascii")
