from __future__ import annotations

import hashlib
import hmac


def compute_signature(raw_body: bytes, secret: str) -> str:
    """Hex MD5-HMAC of the raw body, the scheme Patreon signs webhooks with."""
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.md5).hexdigest()


def verify_signature(raw_body: bytes, signature: str | None, secret: str | None) -> bool:
    """Check a webhook signature against the byte-exact request body.

    Never raises: any malformed input is reported as a failed verification.
    """
    if not secret or not signature:
        return False
    try:
        expected = compute_signature(bytes(raw_body), secret)
        return hmac.compare_digest(expected, signature.strip().lower())
    except (TypeError, ValueError, UnicodeError):
        return False
