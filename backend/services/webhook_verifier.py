"""Plaid webhook signature verification.

Plaid signs every webhook with an ES256 JWT sent in the
``Plaid-Verification`` header. The JWT header names the signing key
(``kid``), which is fetched from Plaid and cached; the claims carry the
SHA-256 of the raw request body and the signing time.
"""

import hashlib
import hmac
import logging
import threading
import time
from typing import Protocol

from jose import JWTError, jwt

from config import settings
from integrations.provider_protocol import ProviderResult

logger = logging.getLogger(__name__)

WEBHOOK_ALGORITHM = "ES256"


class WebhookKeySource(Protocol):
    def get_webhook_verification_key(self, key_id: str) -> ProviderResult[dict]:
        ...


class WebhookVerificationError(Exception):
    """Raised when a webhook's signature cannot be trusted."""


class PlaidWebhookVerifier:
    """Verifies ``Plaid-Verification`` tokens against the raw body."""

    def __init__(
        self,
        key_source: WebhookKeySource,
        max_token_age: float | None = None,
        key_cache_seconds: float | None = None,
        clock=time.time,
    ):
        self._key_source = key_source
        self._max_token_age = (
            max_token_age if max_token_age is not None
            else settings.WEBHOOK_MAX_TOKEN_AGE_SECONDS
        )
        self._key_cache_seconds = (
            key_cache_seconds if key_cache_seconds is not None
            else settings.WEBHOOK_KEY_CACHE_SECONDS
        )
        self._clock = clock
        self._keys: dict[str, tuple[dict, float]] = {}  # kid -> (jwk, expires_at)
        self._lock = threading.Lock()

    def verify(self, body: bytes, token: str) -> dict:
        """Check ``token`` signs ``body``.

        Returns:
            The verified JWT claims.

        Raises:
            WebhookVerificationError: On any signature, age or body mismatch.
        """
        try:
            header = jwt.get_unverified_header(token)
        except JWTError as e:
            raise WebhookVerificationError(f"Malformed verification token: {e}") from e

        if header.get("alg") != WEBHOOK_ALGORITHM:
            raise WebhookVerificationError(f"Unexpected algorithm {header.get('alg')!r}")
        kid = header.get("kid")
        if not kid:
            raise WebhookVerificationError("Verification token has no key id")

        key = self._get_key(kid)
        try:
            claims = jwt.decode(token, key, algorithms=[WEBHOOK_ALGORITHM])
        except JWTError as e:
            # A rotated key is re-fetched on the next webhook
            self._evict(kid)
            raise WebhookVerificationError(f"Invalid signature: {e}") from e

        issued_at = claims.get("iat")
        if not isinstance(issued_at, (int, float)):
            raise WebhookVerificationError("Verification token has no issue time")
        if self._clock() - issued_at > self._max_token_age:
            raise WebhookVerificationError("Verification token is too old")

        expected = claims.get("request_body_sha256")
        if not expected:
            raise WebhookVerificationError("Verification token has no body hash")
        actual = hashlib.sha256(body).hexdigest()
        if not hmac.compare_digest(actual, str(expected)):
            raise WebhookVerificationError("Request body hash mismatch")
        return claims

    def _get_key(self, kid: str) -> dict:
        now = self._clock()
        with self._lock:
            cached = self._keys.get(kid)
            if cached and cached[1] > now:
                return cached[0]

        result = self._key_source.get_webhook_verification_key(kid)
        if not result.ok:
            raise WebhookVerificationError(
                f"Could not fetch verification key {kid}: {result.error}"
            )
        key = result.value
        if key.get("expired_at"):
            raise WebhookVerificationError(f"Verification key {kid} has expired")

        with self._lock:
            self._keys[kid] = (key, now + self._key_cache_seconds)
        logger.debug("Cached Plaid webhook verification key %s", kid)
        return key

    def _evict(self, kid: str) -> None:
        with self._lock:
            self._keys.pop(kid, None)
