"""
Slack request signature verification.

Slack signs every Events API request with the app's signing secret:
    v0=hex(HMAC-SHA256(secret, "v0:{timestamp}:{raw body}"))
The timestamp is checked first so a correctly signed but stale request
is still rejected.
"""

from typing import Optional, Union, Callable
import hashlib
import hmac
import logging
import time

logger = logging.getLogger(__name__)

SIGNATURE_VERSION = "v0"
DEFAULT_TOLERANCE_SECONDS = 300


def compute_signature(body: Union[bytes, str], timestamp: str, signing_secret: str) -> str:
    """Compute the v0 signature Slack would send for this body and timestamp."""
    if isinstance(body, bytes):
        body = body.decode("utf-8")
    base_string = f"{SIGNATURE_VERSION}:{timestamp}:{body}"
    digest = hmac.new(
        signing_secret.encode("utf-8"),
        base_string.encode("utf-8"),
        hashlib.sha256
    ).hexdigest()
    return f"{SIGNATURE_VERSION}={digest}"


class SignatureVerifier:
    """Verifies inbound Slack requests against a tenant's signing secret."""

    def __init__(self, tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS, clock: Callable[[], float] = time.time):
        self.tolerance_seconds = tolerance_seconds
        self._clock = clock

    def verify(
        self,
        body: Union[bytes, str],
        timestamp: Optional[str],
        signature: Optional[str],
        signing_secret: str
    ) -> bool:
        """Return True only for a fresh request carrying a matching signature."""
        if not timestamp or not signature or not signing_secret:
            logger.warning("Slack request is missing signature headers")
            return False

        try:
            request_time = int(timestamp)
        except (TypeError, ValueError):
            logger.warning("Slack request timestamp is not an integer")
            return False

        if abs(self._clock() - request_time) > self.tolerance_seconds:
            logger.warning("Slack request timestamp outside the replay window")
            return False

        try:
            expected = compute_signature(body, timestamp, signing_secret)
        except UnicodeDecodeError:
            logger.warning("Slack request body is not valid UTF-8")
            return False

        if not hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8")):
            logger.warning("Slack request signature mismatch")
            return False

        return True
