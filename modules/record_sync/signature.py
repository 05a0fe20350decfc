"""
Webhook signature verification for Tracker deliveries.

The Tracker signs every delivery with HMAC-SHA256(secret, raw body) in the
``X-Hook-Secret`` header. During subscription setup it sends a one-time
"secret verification" request and expects the HMAC of the presented header
value back in the same header.
"""

import hashlib
import hmac
import logging
from dataclasses import dataclass
from typing import Any, Optional

from .exceptions import AuthenticityFailure

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = 'X-Hook-Secret'
HANDSHAKE_REQUEST_TYPE = 'WebHook secret verification'


@dataclass(frozen=True)
class CapturedRequest:
    """Exact request bytes, captured before decoding, plus the decoded body."""
    raw_body: bytes
    payload: Any
    signature: Optional[str] = None

    @property
    def is_handshake(self) -> bool:
        return isinstance(self.payload, dict) and self.payload.get('requestType') == HANDSHAKE_REQUEST_TYPE


def compute_signature(secret: str, message) -> str:
    """Hex HMAC-SHA256 of message (bytes or str) under secret."""
    if isinstance(message, str):
        message = message.encode('utf-8')
    return hmac.new(secret.encode('utf-8'), message, hashlib.sha256).hexdigest()


def handshake_response(secret: str, presented: str) -> str:
    """Header value answering a secret-verification handshake."""
    return compute_signature(secret, presented)


def is_valid_signature(secret: str, raw_body: bytes, presented: Optional[str]) -> bool:
    if not presented:
        return False
    expected = compute_signature(secret, raw_body)
    return hmac.compare_digest(expected.encode('utf-8'), presented.strip().encode('utf-8'))


def verify_request(secret: str, captured: CapturedRequest):
    """
    Reject a delivery that did not come from the Tracker.

    Raises AuthenticityFailure with status 400 when the signature header is
    missing and 401 when it does not match the raw body.
    """
    if not captured.signature:
        raise AuthenticityFailure(f"Missing {SIGNATURE_HEADER} header", status=400)

    if not is_valid_signature(secret, captured.raw_body, captured.signature):
        logger.warning(
            f"Signature mismatch: presented {captured.signature[:12]}..., "
            f"body {len(captured.raw_body)} bytes"
        )
        raise AuthenticityFailure("Invalid hash", status=401)
