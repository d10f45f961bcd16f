"""Provider-specific webhook signature validation.

Validation never raises: a malformed or missing signature simply fails.
"""

from __future__ import annotations

import hashlib
import hmac
import logging

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

logger = logging.getLogger(__name__)

GITHUB_PREFIX = "sha256="
SLACK_PREFIX = "v0="
SLACK_VERSION = "v0"

_ED25519_PUBLIC_KEY_BYTES = 32
_ED25519_SIGNATURE_BYTES = 64


def _to_bytes(body: bytes | str | None) -> bytes:
    if body is None:
        return b""
    if isinstance(body, str):
        return body.encode("utf-8")
    return body


def compute_hmac_sha256(body: bytes | str, secret: str) -> str:
    """Hex HMAC-SHA256 of body keyed by secret."""
    return hmac.new(secret.encode("utf-8"), _to_bytes(body), hashlib.sha256).hexdigest()


class SignatureValidator:
    """Validates inbound webhook signatures per provider."""

    def validate(
        self,
        provider: str | None,
        raw_body: bytes | str | None,
        signature_header: str | None,
        shared_secret: str | None,
        timestamp_header: str | None = None,
    ) -> bool:
        """Check a webhook signature.

        Args:
            provider: Provider key (github, slack, discord, google, anything else = generic)
            raw_body: Request body exactly as received
            signature_header: Value of the provider's signature header
            shared_secret: HMAC secret, or the hex public key for discord
            timestamp_header: Request timestamp header (slack, discord)

        Returns:
            True if the signature is valid
        """
        provider_key = (provider or "generic").strip().lower()

        try:
            if provider_key == "google":
                # Google push notifications are authenticated upstream
                logger.debug("Google webhook signature check delegated upstream")
                return True

            if not shared_secret or not shared_secret.strip():
                logger.warning(f"No webhook secret configured for provider {provider_key}")
                return False

            if not signature_header:
                logger.debug(f"Missing signature header for provider {provider_key}")
                return False

            body = _to_bytes(raw_body)

            if provider_key == "github":
                return self._validate_github(body, signature_header, shared_secret)
            if provider_key == "slack":
                return self._validate_slack(body, signature_header, shared_secret, timestamp_header)
            if provider_key == "discord":
                return self._validate_discord(
                    body, signature_header, shared_secret, timestamp_header
                )
            return self._validate_generic(body, signature_header, shared_secret)
        except Exception as e:
            logger.error(f"Error validating {provider_key} webhook signature: {e}")
            return False

    def _validate_github(self, body: bytes, signature: str, secret: str) -> bool:
        if not signature.startswith(GITHUB_PREFIX):
            logger.debug("GitHub signature without sha256= prefix rejected")
            return False
        expected = GITHUB_PREFIX + compute_hmac_sha256(body, secret)
        return hmac.compare_digest(expected, signature)

    def _validate_slack(
        self, body: bytes, signature: str, secret: str, timestamp: str | None
    ) -> bool:
        if not signature.startswith(SLACK_PREFIX):
            logger.debug("Slack signature without v0= prefix rejected")
            return False
        if not timestamp:
            logger.debug("Slack signature without timestamp rejected")
            return False
        base_string = f"{SLACK_VERSION}:{timestamp}:".encode() + body
        expected = SLACK_PREFIX + compute_hmac_sha256(base_string, secret)
        return hmac.compare_digest(expected, signature)

    def _validate_discord(
        self, body: bytes, signature: str, public_key_hex: str, timestamp: str | None
    ) -> bool:
        if not timestamp:
            logger.debug("Discord signature without timestamp rejected")
            return False
        try:
            key_bytes = bytes.fromhex(public_key_hex.strip())
            signature_bytes = bytes.fromhex(signature.strip())
        except ValueError:
            logger.debug("Discord key or signature is not valid hex")
            return False
        if len(key_bytes) != _ED25519_PUBLIC_KEY_BYTES:
            logger.warning("Discord public key must be 32 bytes")
            return False
        if len(signature_bytes) != _ED25519_SIGNATURE_BYTES:
            return False

        public_key = Ed25519PublicKey.from_public_bytes(key_bytes)
        try:
            public_key.verify(signature_bytes, timestamp.encode("utf-8") + body)
        except InvalidSignature:
            return False
        return True

    def _validate_generic(self, body: bytes, signature: str, secret: str) -> bool:
        # Accept both raw hex and sha256= prefixed digests
        if signature.startswith(GITHUB_PREFIX):
            signature = signature[len(GITHUB_PREFIX) :]
        expected = compute_hmac_sha256(body, secret)
        return hmac.compare_digest(expected, signature)


_validator = SignatureValidator()


def validate_signature(
    provider: str | None,
    raw_body: bytes | str | None,
    signature_header: str | None,
    shared_secret: str | None,
    timestamp_header: str | None = None,
) -> bool:
    """Module-level shortcut for SignatureValidator.validate."""
    return _validator.validate(
        provider, raw_body, signature_header, shared_secret, timestamp_header
    )
