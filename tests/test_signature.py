"""Tests for webhook signature validation."""

import hashlib
import hmac

import pytest
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from area_engine.webhooks.signature import (
    SignatureValidator,
    compute_hmac_sha256,
    validate_signature,
)

SECRET = "s3cr3t"
BODY = b'{"action":"opened","number":42}'


def _hmac(message: bytes, secret: str = SECRET) -> str:
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


@pytest.fixture
def validator():
    return SignatureValidator()


class TestGitHub:
    """GitHub X-Hub-Signature-256 validation."""

    def test_valid_signature(self, validator):
        """A correct sha256= digest is accepted."""
        assert validator.validate("github", BODY, "sha256=" + _hmac(BODY), SECRET)

    def test_tampered_body(self, validator):
        """A digest over a different body is rejected."""
        signature = "sha256=" + _hmac(BODY)
        assert not validator.validate("github", BODY + b" ", signature, SECRET)

    def test_sha1_prefix_rejected(self, validator):
        """Only sha256= signatures are accepted."""
        assert not validator.validate("github", BODY, "sha1=" + _hmac(BODY), SECRET)

    def test_missing_prefix_rejected(self, validator):
        """A raw hex digest without prefix is rejected for GitHub."""
        assert not validator.validate("github", BODY, _hmac(BODY), SECRET)

    def test_wrong_secret(self, validator):
        signature = "sha256=" + _hmac(BODY, "other")
        assert not validator.validate("github", BODY, signature, SECRET)

    def test_provider_is_case_insensitive(self, validator):
        assert validator.validate("GitHub", BODY, "sha256=" + _hmac(BODY), SECRET)

    def test_str_body(self, validator):
        """A str body is validated against its UTF-8 bytes."""
        text = BODY.decode()
        assert validator.validate("github", text, "sha256=" + _hmac(BODY), SECRET)


class TestSlack:
    """Slack v0 signature validation."""

    def test_valid_signature(self, validator):
        timestamp = "1700000000"
        base = f"v0:{timestamp}:".encode() + BODY
        assert validator.validate("slack", BODY, "v0=" + _hmac(base), SECRET, timestamp)

    def test_blank_secret(self, validator):
        """An empty secret never validates."""
        timestamp = "1700000000"
        base = f"v0:{timestamp}:".encode() + BODY
        assert not validator.validate("slack", BODY, "v0=" + _hmac(base), "", timestamp)
        assert not validator.validate("slack", BODY, "v0=" + _hmac(base), "   ", timestamp)

    def test_missing_timestamp(self, validator):
        base = b"v0::" + BODY
        assert not validator.validate("slack", BODY, "v0=" + _hmac(base), SECRET, None)

    def test_wrong_timestamp(self, validator):
        base = b"v0:1700000000:" + BODY
        assert not validator.validate("slack", BODY, "v0=" + _hmac(base), SECRET, "1700000001")

    def test_wrong_prefix(self, validator):
        timestamp = "1700000000"
        base = f"v0:{timestamp}:".encode() + BODY
        assert not validator.validate("slack", BODY, "v1=" + _hmac(base), SECRET, timestamp)


class TestGoogle:
    def test_always_valid(self, validator):
        """Google notifications are trusted even without signature or secret."""
        assert validator.validate("google", None, None, None, None)
        assert validator.validate("google", BODY, "garbage", "")


class TestDiscord:
    """Discord Ed25519 validation."""

    @pytest.fixture
    def keypair(self):
        private_key = Ed25519PrivateKey.generate()
        public_hex = (
            private_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw).hex()
        )
        return private_key, public_hex

    def test_valid_signature(self, validator, keypair):
        private_key, public_hex = keypair
        timestamp = "1700000000"
        signature = private_key.sign(timestamp.encode() + BODY).hex()
        assert validator.validate("discord", BODY, signature, public_hex, timestamp)

    def test_tampered_body(self, validator, keypair):
        private_key, public_hex = keypair
        timestamp = "1700000000"
        signature = private_key.sign(timestamp.encode() + BODY).hex()
        assert not validator.validate("discord", BODY + b"x", signature, public_hex, timestamp)

    def test_missing_timestamp(self, validator, keypair):
        private_key, public_hex = keypair
        signature = private_key.sign(BODY).hex()
        assert not validator.validate("discord", BODY, signature, public_hex, None)

    def test_malformed_key(self, validator, keypair):
        private_key, _ = keypair
        timestamp = "1700000000"
        signature = private_key.sign(timestamp.encode() + BODY).hex()
        assert not validator.validate("discord", BODY, signature, "not-hex", timestamp)
        assert not validator.validate("discord", BODY, signature, "abcd", timestamp)

    def test_malformed_signature(self, validator, keypair):
        _, public_hex = keypair
        assert not validator.validate("discord", BODY, "zz", public_hex, "1700000000")


class TestGeneric:
    def test_raw_hex(self, validator):
        assert validator.validate("generic", BODY, _hmac(BODY), SECRET)

    def test_prefixed_hex(self, validator):
        assert validator.validate("generic", BODY, "sha256=" + _hmac(BODY), SECRET)

    def test_unknown_provider_uses_generic(self, validator):
        """Providers without a dedicated scheme fall back to plain HMAC."""
        assert validator.validate("trello", BODY, _hmac(BODY), SECRET)
        assert not validator.validate("trello", BODY, _hmac(b"other"), SECRET)

    def test_none_provider_uses_generic(self, validator):
        assert validator.validate(None, BODY, _hmac(BODY), SECRET)

    def test_missing_signature(self, validator):
        assert not validator.validate("generic", BODY, None, SECRET)

    def test_non_ascii_signature_does_not_raise(self, validator):
        """Comparison errors are reported as an invalid signature."""
        assert not validator.validate("generic", BODY, "é" * 64, SECRET)


def test_compute_hmac_sha256_matches_hmac_module():
    assert compute_hmac_sha256(BODY, SECRET) == _hmac(BODY)


def test_module_level_shortcut():
    assert validate_signature("github", BODY, "sha256=" + _hmac(BODY), SECRET)
