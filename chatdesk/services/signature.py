"""X-Hub-Signature-256 verification for Meta webhooks."""

import hashlib
import hmac
from typing import Optional

SIGNATURE_PREFIX = "sha256="


class SignatureError(Exception):
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


def compute_signature(raw_body: bytes, app_secret: str) -> str:
    digest = hmac.new(app_secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(raw_body: bytes, signature_header: Optional[str], app_secret: Optional[str]) -> None:
    """Raise SignatureError unless the header is a valid HMAC-SHA256 of the raw body."""
    if not signature_header:
        raise SignatureError("missing_signature")
    if not app_secret:
        raise SignatureError("missing_app_secret")
    if not signature_header.startswith(SIGNATURE_PREFIX) or len(signature_header) != len(SIGNATURE_PREFIX) + 64:
        raise SignatureError("malformed_signature")

    expected = compute_signature(raw_body, app_secret)
    if not hmac.compare_digest(expected, signature_header.lower()):
        raise SignatureError("signature_mismatch")
