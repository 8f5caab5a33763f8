"""
Webhook Signatures
HMAC-SHA256 scheme used by the voice provider for post-call webhooks

Header format: `t=<unix timestamp>,v0=<hex digest>` where the digest is
HMAC-SHA256(secret, f"{t}.{raw_body}").
"""
import hashlib
import hmac
import time
from typing import Optional

from dialer.domain.errors import SignatureInvalid

SIGNATURE_HEADER = "ElevenLabs-Signature"


def compute_signature(secret: str, timestamp: int, body: bytes) -> str:
    message = f"{timestamp}.".encode("utf-8") + body
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def build_signature_header(secret: str, body: bytes, timestamp: Optional[int] = None) -> str:
    """Signature header for `body`, as the provider would send it."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    return f"t={timestamp},v0={compute_signature(secret, timestamp, body)}"


def verify_signature(
    secret: str,
    body: bytes,
    header: Optional[str],
    tolerance_seconds: int = 1800,
    now: Optional[float] = None
) -> None:
    """
    Check a webhook signature header against the raw request body.

    Raises:
        SignatureInvalid: secret not configured, header missing or malformed,
            timestamp outside the tolerance window, or digest mismatch
    """
    if not secret:
        raise SignatureInvalid("Webhook secret not configured")
    if not header:
        raise SignatureInvalid("Missing webhook signature")

    parts = {}
    for item in header.split(","):
        key, sep, value = item.strip().partition("=")
        if sep:
            parts[key] = value

    timestamp_raw = parts.get("t")
    digest = parts.get("v0")
    if not timestamp_raw or not digest:
        raise SignatureInvalid("Malformed webhook signature")

    try:
        timestamp = int(timestamp_raw)
    except ValueError:
        raise SignatureInvalid("Malformed webhook signature timestamp")

    now = time.time() if now is None else now
    if abs(now - timestamp) > tolerance_seconds:
        raise SignatureInvalid("Webhook signature timestamp outside tolerance")

    expected = compute_signature(secret, timestamp, body)
    if not hmac.compare_digest(expected, digest):
        raise SignatureInvalid("Webhook signature mismatch")
