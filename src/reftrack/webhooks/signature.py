"""Webhook signature verification.

Whop signs webhooks with the Standard Webhooks scheme (``webhook-id``,
``webhook-timestamp``, ``webhook-signature``), which the ``svix`` library
verifies. Older deliveries carry a plain HMAC-SHA256 over
``"{timestamp}.{body}"``, base64 encoded, optionally prefixed with ``v1,``.
The structured scheme is tried first; the legacy scheme is the fallback.
"""

import base64
import binascii
import hashlib
import hmac
import json
from dataclasses import dataclass
from typing import Mapping

from svix.webhooks import Webhook, WebhookVerificationError

from reftrack.logging_config import get_logger

logger = get_logger(__name__)

HEADER_ID = "webhook-id"
HEADER_TIMESTAMP = "webhook-timestamp"
HEADER_SIGNATURE = "webhook-signature"

REASON_MISSING_SECRET = "missing_secret"
REASON_MISSING_HEADERS = "missing_headers"
REASON_BAD_FORMAT = "bad_signature_format"
REASON_MISMATCH = "signature_mismatch"


@dataclass(frozen=True)
class Verified:
    strategy: str
    ok: bool = True


@dataclass(frozen=True)
class Rejected:
    reason: str
    ok: bool = False


VerificationResult = Verified | Rejected


def _lower_headers(headers: Mapping[str, str]) -> dict[str, str]:
    return {str(k).lower(): str(v) for k, v in headers.items() if v is not None}


def verify_structured(raw_body: bytes, headers: Mapping[str, str], secret: str) -> VerificationResult:
    """Verify a Standard Webhooks signature with the provider library."""
    try:
        Webhook(secret).verify(raw_body, dict(headers))
    except WebhookVerificationError:
        return Rejected(REASON_MISMATCH)
    except json.JSONDecodeError:
        # The library only parses the body after a signature matched.
        return Verified("structured")
    except (ValueError, TypeError, RuntimeError, binascii.Error):
        return Rejected(REASON_BAD_FORMAT)
    return Verified("structured")


def verify_legacy(raw_body: bytes, timestamp: str | None, signature: str | None, secret: str) -> VerificationResult:
    """Verify a legacy ``v1,<base64 hmac>`` signature.

    The HMAC key is the secret as configured; the signed message is
    ``"{timestamp}.{raw body}"``.
    """
    if not secret:
        return Rejected(REASON_MISSING_SECRET)
    if not timestamp or not signature:
        return Rejected(REASON_MISSING_HEADERS)

    provided = signature.strip()
    if "," in provided:
        parts = [p.strip() for p in provided.split(",")]
        if parts[0] != "v1":
            return Rejected(REASON_BAD_FORMAT)
        provided = parts[1]
    if not provided:
        return Rejected(REASON_BAD_FORMAT)

    message = timestamp.encode("utf-8") + b"." + raw_body
    expected = base64.b64encode(
        hmac.new(secret.encode("utf-8"), message, hashlib.sha256).digest()
    )

    if hmac.compare_digest(expected, provided.encode("utf-8")):
        return Verified("legacy")
    return Rejected(REASON_MISMATCH)


class SignatureVerifier:
    """Validates that an inbound webhook came from the payment provider."""

    def __init__(self, secret: str | None):
        self.secret = (secret or "").strip()

    def verify(self, raw_body: bytes, headers: Mapping[str, str]) -> VerificationResult:
        """Verify a webhook request.

        Args:
            raw_body: Untouched request body
            headers: Request headers (any casing)

        Returns:
            Verified or Rejected(reason)
        """
        if not self.secret:
            return Rejected(REASON_MISSING_SECRET)

        h = _lower_headers(headers)
        msg_id = h.get(HEADER_ID)
        timestamp = h.get(HEADER_TIMESTAMP)
        signature = h.get(HEADER_SIGNATURE)

        if msg_id and timestamp and signature:
            result = verify_structured(
                raw_body,
                {HEADER_ID: msg_id, HEADER_TIMESTAMP: timestamp, HEADER_SIGNATURE: signature},
                self.secret,
            )
            if result.ok:
                return result
            logger.debug("structured_verification_failed", reason=result.reason)

        return verify_legacy(raw_body, timestamp, signature, self.secret)
