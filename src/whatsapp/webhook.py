"""Webhook signature verification (HMAC-SHA256 over the raw request body)."""

import hashlib
import hmac

SIGNATURE_PREFIX = "sha256="


def compute_signature(payload: bytes, secret: str) -> str:
    return hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()


def verify_webhook_signature(payload: bytes | str, signature: str | None, secret: str) -> bool:
    """True if ``signature`` matches the payload. Accepts a ``sha256=`` prefix."""
    if not signature or not secret:
        return False
    if isinstance(payload, str):
        payload = payload.encode()
    if signature.startswith(SIGNATURE_PREFIX):
        signature = signature[len(SIGNATURE_PREFIX) :]
    expected = compute_signature(payload, secret)
    return hmac.compare_digest(expected.encode(), signature.strip().lower().encode())
