"""
Webhook Security Module

Signature verification for the payment provider's webhook. The signature
header has the form "t=<timestamp>,v1=<hex hmac>[,v1=...]" where each v1 is
HMAC-SHA256 over "<timestamp>.<raw body>". Comparison is constant-time and
timestamps outside the tolerance are rejected to stop replays.
"""

import hashlib
import hmac
import logging
import time
from typing import Optional

from fastapi import Request

from .errors import AuthError, UpstreamError

logger = logging.getLogger(__name__)

# Maximum age of webhook in seconds (5 minutes)
MAX_WEBHOOK_AGE_SECONDS = 300

STRIPE_SIGNATURE_HEADER = "Stripe-Signature"


def constant_time_compare(a: str, b: str) -> bool:
    """
    Compare two strings in constant time to prevent timing attacks.
    Uses hmac.compare_digest which is designed for this purpose.
    """
    if not a or not b:
        return False
    return hmac.compare_digest(a, b)


def compute_hmac_sha256(secret: str, payload: bytes) -> str:
    """Compute HMAC-SHA256 signature of payload"""
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify_timestamp(timestamp: Optional[str], max_age: int = MAX_WEBHOOK_AGE_SECONDS, now: Optional[float] = None) -> bool:
    """
    Verify webhook timestamp is within acceptable range.
    Prevents replay attacks by rejecting old webhooks.
    """
    if not timestamp:
        return False

    try:
        webhook_time = int(timestamp)
    except (ValueError, TypeError):
        logger.warning(f"Invalid webhook timestamp format: {timestamp}")
        return False

    current_time = int(time.time() if now is None else now)
    age = abs(current_time - webhook_time)
    if age > max_age:
        logger.warning(f"Webhook timestamp too old: {age}s (max: {max_age}s)")
        return False
    return True


def parse_signature_header(signature_header: str) -> tuple[Optional[str], list[str]]:
    timestamp = None
    signatures = []
    for item in signature_header.split(","):
        key, sep, value = item.strip().partition("=")
        if not sep:
            continue
        if key == "t":
            timestamp = value
        elif key == "v1":
            signatures.append(value)
    return timestamp, signatures


def verify_stripe_signature(
    raw_body: bytes,
    signature_header: Optional[str],
    secret: str,
    tolerance: int = MAX_WEBHOOK_AGE_SECONDS,
    now: Optional[float] = None,
) -> None:
    """
    Raises:
        AuthError: If the header is missing, malformed, stale or does not match
    """
    if not signature_header:
        logger.warning("Stripe webhook missing signature header")
        raise AuthError("Missing webhook signature")

    timestamp, signatures = parse_signature_header(signature_header)
    if not timestamp or not signatures:
        logger.warning("Stripe webhook invalid signature format")
        raise AuthError("Invalid signature format")

    if not verify_timestamp(timestamp, max_age=tolerance, now=now):
        raise AuthError("Webhook timestamp expired")

    signed_payload = timestamp.encode("utf-8") + b"." + raw_body
    expected_signature = compute_hmac_sha256(secret, signed_payload)

    if not any(constant_time_compare(expected_signature, sig) for sig in signatures):
        logger.warning("Stripe webhook signature mismatch")
        raise AuthError("Invalid webhook signature")

    logger.debug("Stripe webhook signature verified")


async def verify_stripe_webhook(request: Request, secret: Optional[str]) -> bytes:
    """Verify the request's signature and return the raw body"""
    if not secret:
        logger.error("STRIPE_WEBHOOK_SECRET not configured")
        raise UpstreamError("Webhook not configured")

    raw_body = await request.body()
    verify_stripe_signature(raw_body, request.headers.get(STRIPE_SIGNATURE_HEADER), secret)
    return raw_body


def create_stripe_signature(secret: str, payload: bytes, timestamp: Optional[int] = None) -> str:
    """Build a signature header in the provider's format, for outgoing or test payloads"""
    timestamp = int(time.time()) if timestamp is None else timestamp
    sig = compute_hmac_sha256(secret, str(timestamp).encode("utf-8") + b"." + payload)
    return f"t={timestamp},v1={sig}"
