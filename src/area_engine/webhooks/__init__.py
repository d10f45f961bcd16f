"""Webhook signature validation, idempotency and ingestion."""

from .dedup import KEY_PREFIX, DeduplicationService
from .ingest import InboundWebhook, WebhookIngestionService, WebhookResult, WebhookStatus
from .signature import SignatureValidator, compute_hmac_sha256, validate_signature

__all__ = [
    "KEY_PREFIX",
    "DeduplicationService",
    "InboundWebhook",
    "SignatureValidator",
    "WebhookIngestionService",
    "WebhookResult",
    "WebhookStatus",
    "compute_hmac_sha256",
    "validate_signature",
]
